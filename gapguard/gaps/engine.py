"""Gap engine - compliance status of each required category for one user."""

import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from uuid import UUID

from gapguard.db.context import RequestContext
from gapguard.db.repositories import DocumentRepository, GapRepository, RuleRepository
from gapguard.models.documents import DocumentStatus, UserDocument
from gapguard.models.gaps import ChecklistRule, Gap, GapStatus, RuleStatus

logger = logging.getLogger(__name__)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def build_checklist(rules: list[ChecklistRule]) -> list[tuple[str, UUID]]:
    """Union of required categories across rules, first occurrence wins.

    Args:
        rules: Active rules in creation order

    Returns:
        Ordered (category, rule_id) pairs; rule_id is the first rule requiring it
    """
    checklist: list[tuple[str, UUID]] = []
    seen: set[str] = set()
    for rule in rules:
        for category in rule.required_categories:
            if category in seen:
                continue
            seen.add(category)
            checklist.append((category, rule.rule_id))
    return checklist


def pick_document(candidates: list[UserDocument]) -> UserDocument | None:
    """Pick the document that decides a category's status.

    Candidates are ordered newest first (created_at desc, then id desc). The
    first one that finished processing wins; otherwise the newest one.
    """
    ordered = sorted(candidates, key=lambda d: (d.created_at, str(d.document_id)), reverse=True)
    if not ordered:
        return None
    return next((d for d in ordered if d.status != DocumentStatus.processing), ordered[0])


def resolve_gap(
    *,
    user_id: str,
    category: str,
    checklist_id: UUID | None,
    candidates: list[UserDocument],
    today: date,
    expiring_soon_days: int = 30,
) -> Gap:
    """Compute the gap for one required category.

    Args:
        user_id: Owning user
        category: Required category label
        checklist_id: Rule that introduced the category
        candidates: The user's documents classified under ``category``
        today: Reference date (UTC)
        expiring_soon_days: Inclusive upper bound of the expiring-soon window

    Returns:
        Gap with status, chosen document and days left
    """
    document = pick_document(candidates)
    if document is None:
        return Gap(
            user_id=user_id,
            checklist_id=checklist_id,
            required_category=category,
            status=GapStatus.missing,
        )

    days_left: int | None = None
    if document.expiry_date is None:
        if document.status == DocumentStatus.processing:
            status = GapStatus.processing
        else:
            status = GapStatus.valid
    else:
        days_left = (document.expiry_date - today).days
        if days_left < 0:
            status = GapStatus.expired
        elif days_left <= expiring_soon_days:
            status = GapStatus.expiring_soon
        else:
            status = GapStatus.valid

    return Gap(
        user_id=user_id,
        checklist_id=checklist_id,
        required_category=category,
        status=status,
        document_id=document.document_id,
        days_left=days_left,
    )


class GapEngine:
    """Recomputes and stores a user's gaps from rules and documents."""

    def __init__(
        self,
        *,
        documents: DocumentRepository,
        rules: RuleRepository,
        gaps: GapRepository,
        expiring_soon_days: int = 30,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._documents = documents
        self._rules = rules
        self._gaps = gaps
        self._expiring_soon_days = expiring_soon_days
        self._today = today

    async def compute_gaps(self, ctx: RequestContext) -> list[Gap]:
        """Recompute every gap for the caller.

        Idempotent: running it twice with unchanged inputs stores the same rows.
        Gaps for categories no active rule requires any more are deleted.

        Args:
            ctx: Request context

        Returns:
            Gaps in checklist order
        """
        active_rules = await self._rules.list_rules(ctx, status=RuleStatus.active)
        checklist = build_checklist(active_rules)

        by_category: dict[str, list[UserDocument]] = {}
        for document in await self._documents.list_documents(ctx):
            if document.category is not None:
                by_category.setdefault(document.category, []).append(document)

        today = self._today()
        gaps = [
            resolve_gap(
                user_id=ctx.user_id,
                category=category,
                checklist_id=rule_id,
                candidates=by_category.get(category, []),
                today=today,
                expiring_soon_days=self._expiring_soon_days,
            )
            for category, rule_id in checklist
        ]

        for gap in gaps:
            await self._gaps.upsert(ctx, gap)
        removed = await self._gaps.delete_except(ctx, {category for category, _ in checklist})

        logger.info(
            f"Computed {len(gaps)} gaps for user {ctx.user_id}",
            extra={
                "structured": {
                    "user_id": ctx.user_id,
                    "gaps": len(gaps),
                    "missing": sum(1 for g in gaps if g.status == GapStatus.missing),
                    "removed": removed,
                }
            },
        )
        return gaps
