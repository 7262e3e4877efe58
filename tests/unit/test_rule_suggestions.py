"""Unit tests for rule suggestions."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from gapguard.db.context import RequestContext
from gapguard.db.inmemory import InMemoryDocumentRepository, InMemoryRuleRepository
from gapguard.errors import LLMError
from gapguard.models.documents import DocumentStatus, UserDocument
from gapguard.models.gaps import RuleStatus, RuleSuggestion
from gapguard.rules.suggest import suggest_rules


class ScriptedLLM:
    def __init__(self, names: list[str] | None = None, error: Exception | None = None) -> None:
        self.names = names or []
        self.error = error
        self.calls: list[list[str]] = []

    async def suggest_rules(self, *, categories: list[str]) -> list[RuleSuggestion]:
        self.calls.append(categories)
        if self.error is not None:
            raise self.error
        return [RuleSuggestion(rule_name=name, reason="related") for name in self.names]


def _document(ctx: RequestContext, category: str | None, minute: int) -> UserDocument:
    created = datetime(2025, 1, 1, 9, minute, tzinfo=timezone.utc)
    return UserDocument(
        document_id=uuid4(),
        user_id=ctx.user_id,
        file_name=f"doc-{minute}",
        file_url="https://files/doc",
        mime_type="application/pdf",
        status=DocumentStatus.valid,
        category=category,
        created_at=created,
        updated_at=created,
    )


@pytest.fixture
def documents() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def rules() -> InMemoryRuleRepository:
    return InMemoryRuleRepository()


@pytest.mark.asyncio
async def test_no_categories_means_no_model_call(ctx: RequestContext, documents, rules) -> None:
    documents.add_document(_document(ctx, None, 1))
    llm = ScriptedLLM(["Visa"])

    assert await suggest_rules(ctx, documents=documents, rules=rules, llm=llm) == []
    assert llm.calls == []


@pytest.mark.asyncio
async def test_suggestions_are_stored_as_suggested(ctx: RequestContext, documents, rules) -> None:
    documents.add_document(_document(ctx, "Passport", 1))
    documents.add_document(_document(ctx, "Lease Agreement", 2))
    documents.add_document(_document(ctx, "Passport", 3))
    llm = ScriptedLLM(["Visa", "Renter's Insurance"])

    stored = await suggest_rules(ctx, documents=documents, rules=rules, llm=llm)

    # Distinct categories, newest document first
    assert llm.calls == [["Passport", "Lease Agreement"]]
    assert [r.name for r in stored] == ["Visa", "Renter's Insurance"]
    assert all(r.status == RuleStatus.suggested for r in stored)
    assert stored[0].required_categories == ["Visa"]
    assert await rules.list_rules(ctx, status=RuleStatus.suggested) == stored


@pytest.mark.asyncio
async def test_existing_rule_names_are_not_suggested_again(
    ctx: RequestContext, documents, rules
) -> None:
    documents.add_document(_document(ctx, "Passport", 1))
    await rules.create(ctx, name="Visa", required_categories=["Visa"], status=RuleStatus.inactive)
    llm = ScriptedLLM([" visa ", "Proof of Address", "proof of address", " "])

    stored = await suggest_rules(ctx, documents=documents, rules=rules, llm=llm)

    assert [r.name for r in stored] == ["Proof of Address"]


@pytest.mark.asyncio
async def test_suggestions_are_capped(ctx: RequestContext, documents, rules) -> None:
    documents.add_document(_document(ctx, "Passport", 1))
    llm = ScriptedLLM([f"Doc {i}" for i in range(4)])

    stored = await suggest_rules(ctx, documents=documents, rules=rules, llm=llm, max_suggestions=2)

    assert [r.name for r in stored] == ["Doc 0", "Doc 1"]


@pytest.mark.asyncio
async def test_model_failure_propagates(ctx: RequestContext, documents, rules) -> None:
    documents.add_document(_document(ctx, "Passport", 1))
    llm = ScriptedLLM(error=LLMError("Rule suggestion failed: timeout"))

    with pytest.raises(LLMError):
        await suggest_rules(ctx, documents=documents, rules=rules, llm=llm)

    assert await rules.list_rules(ctx) == []
