"""Rule suggestions from the categories a user already has documents for."""

import logging

from gapguard.db.context import RequestContext
from gapguard.db.repositories import DocumentRepository, RuleRepository
from gapguard.llm.client import LLMClient
from gapguard.models.gaps import ChecklistRule, RuleStatus

logger = logging.getLogger(__name__)


def _normalize_name(name: str) -> str:
    return name.strip().lower()


async def suggest_rules(
    ctx: RequestContext,
    *,
    documents: DocumentRepository,
    rules: RuleRepository,
    llm: LLMClient,
    max_suggestions: int = 5,
) -> list[ChecklistRule]:
    """Ask the model for related rules and store the new ones as ``suggested``.

    Args:
        ctx: Request context
        documents: Source of the user's document categories
        rules: Rule repository (existing names and storage)
        llm: Model client
        max_suggestions: Cap on stored suggestions

    Returns:
        Newly stored suggested rules (empty when there is nothing to suggest)

    Raises:
        LLMError: Model call failed
    """
    categories: list[str] = []
    for document in await documents.list_documents(ctx):
        if document.category and document.category not in categories:
            categories.append(document.category)

    if not categories:
        logger.info(f"No document categories for user {ctx.user_id}, nothing to suggest")
        return []

    suggestions = await llm.suggest_rules(categories=categories)

    existing = {_normalize_name(rule.name) for rule in await rules.list_rules(ctx)}
    fresh = []
    for suggestion in suggestions:
        key = _normalize_name(suggestion.rule_name)
        if not key or key in existing:
            continue
        existing.add(key)
        fresh.append(suggestion)

    stored: list[ChecklistRule] = []
    for suggestion in fresh[:max_suggestions]:
        name = suggestion.rule_name.strip()
        stored.append(
            await rules.create(
                ctx,
                name=name,
                description=suggestion.reason,
                required_categories=[name],
                status=RuleStatus.suggested,
            )
        )

    logger.info(f"Stored {len(stored)} suggested rules for user {ctx.user_id}")
    return stored
