"""Unit tests for gap computation."""

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from gapguard.db.context import RequestContext
from gapguard.db.inmemory import (
    InMemoryDocumentRepository,
    InMemoryGapRepository,
    InMemoryRuleRepository,
)
from gapguard.gaps.engine import GapEngine, build_checklist, pick_document, resolve_gap
from gapguard.models.documents import DocumentStatus, UserDocument
from gapguard.models.gaps import ChecklistRule, GapStatus, RuleStatus

TODAY = date(2026, 3, 1)
BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _doc(
    category: str,
    *,
    user_id: str = "user_alice",
    minutes: int = 0,
    status: DocumentStatus = DocumentStatus.valid,
    expiry: date | None = None,
    document_id: uuid.UUID | None = None,
) -> UserDocument:
    created = BASE_TIME + timedelta(minutes=minutes)
    return UserDocument(
        document_id=document_id or uuid.uuid4(),
        user_id=user_id,
        file_name=f"{category}-{minutes}.pdf",
        file_url=f"https://files.example.com/{category}-{minutes}.pdf",
        mime_type="application/pdf",
        status=status,
        category=category,
        expiry_date=expiry,
        created_at=created,
        updated_at=created,
    )


def _resolve(candidates: list[UserDocument], category: str = "Passport"):
    return resolve_gap(
        user_id="user_alice",
        category=category,
        checklist_id=None,
        candidates=candidates,
        today=TODAY,
    )


@pytest.mark.parametrize(
    ("offset_days", "expected_status"),
    [
        (-1, GapStatus.expired),
        (0, GapStatus.expiring_soon),
        (30, GapStatus.expiring_soon),
        (31, GapStatus.valid),
    ],
)
def test_expiry_boundaries(offset_days: int, expected_status: GapStatus) -> None:
    doc = _doc("Passport", expiry=TODAY + timedelta(days=offset_days))

    gap = _resolve([doc])

    assert gap.status == expected_status
    assert gap.days_left == offset_days
    assert gap.document_id == doc.document_id


def test_passport_expiring_in_15_days() -> None:
    gap = _resolve([_doc("Passport", expiry=TODAY + timedelta(days=15))])

    assert gap.status == GapStatus.expiring_soon
    assert gap.days_left == 15


def test_missing_category() -> None:
    gap = _resolve([], category="Visa")

    assert gap.status == GapStatus.missing
    assert gap.document_id is None
    assert gap.days_left is None


def test_no_expiry_uses_processing_state() -> None:
    processing = _doc("Lease", status=DocumentStatus.processing)
    indexed = _doc("Lease", status=DocumentStatus.valid)

    assert _resolve([processing], "Lease").status == GapStatus.processing
    assert _resolve([indexed], "Lease").status == GapStatus.valid
    assert _resolve([indexed], "Lease").days_left is None


def test_prefers_newest_non_processing_document() -> None:
    older_valid = _doc("Passport", minutes=0, expiry=TODAY + timedelta(days=200))
    newer_processing = _doc("Passport", minutes=10, status=DocumentStatus.processing)

    assert pick_document([newer_processing, older_valid]) == older_valid


def test_falls_back_to_newest_when_all_processing() -> None:
    older = _doc("Passport", minutes=0, status=DocumentStatus.processing)
    newer = _doc("Passport", minutes=5, status=DocumentStatus.processing)

    assert pick_document([older, newer]) == newer


def test_equal_created_at_breaks_tie_by_id_desc() -> None:
    low = _doc("Passport", document_id=uuid.UUID(int=1))
    high = _doc("Passport", document_id=uuid.UUID(int=2))

    assert pick_document([low, high]) == high


def test_checklist_union_keeps_first_rule() -> None:
    first = ChecklistRule(
        rule_id=uuid.uuid4(),
        user_id="user_alice",
        name="Travel",
        required_categories=["Passport", "Visa"],
        created_at=BASE_TIME,
    )
    second = ChecklistRule(
        rule_id=uuid.uuid4(),
        user_id="user_alice",
        name="Housing",
        required_categories=["Visa", "Lease"],
        created_at=BASE_TIME + timedelta(days=1),
    )

    assert build_checklist([first, second]) == [
        ("Passport", first.rule_id),
        ("Visa", first.rule_id),
        ("Lease", second.rule_id),
    ]


@pytest.fixture
def repos() -> tuple[InMemoryDocumentRepository, InMemoryRuleRepository, InMemoryGapRepository]:
    return InMemoryDocumentRepository(), InMemoryRuleRepository(), InMemoryGapRepository()


@pytest.mark.asyncio
async def test_compute_gaps_end_to_end(ctx: RequestContext, repos) -> None:
    documents, rules, gaps = repos
    passport = _doc("Passport", expiry=TODAY + timedelta(days=15))
    documents.add_document(passport)
    documents.add_document(_doc("Visa", user_id="user_bob"))

    travel = await rules.create(ctx, name="Travel", required_categories=["Passport", "Visa"])
    await rules.create(
        ctx, name="Ignored", required_categories=["Lease"], status=RuleStatus.suggested
    )

    engine = GapEngine(documents=documents, rules=rules, gaps=gaps, today=lambda: TODAY)
    result = await engine.compute_gaps(ctx)

    assert [(g.required_category, g.status, g.days_left) for g in result] == [
        ("Passport", GapStatus.expiring_soon, 15),
        ("Visa", GapStatus.missing, None),
    ]
    assert all(g.checklist_id == travel.rule_id for g in result)
    assert result[0].document_id == passport.document_id


@pytest.mark.asyncio
async def test_compute_gaps_is_idempotent(ctx: RequestContext, repos) -> None:
    documents, rules, gaps = repos
    documents.add_document(_doc("Passport", expiry=TODAY + timedelta(days=90)))
    await rules.create(ctx, name="Travel", required_categories=["Passport", "Visa"])
    engine = GapEngine(documents=documents, rules=rules, gaps=gaps, today=lambda: TODAY)

    first = await engine.compute_gaps(ctx)
    stored_first = await gaps.list_gaps(ctx)
    second = await engine.compute_gaps(ctx)
    stored_second = await gaps.list_gaps(ctx)

    assert first == second
    assert stored_first == stored_second
    assert len(stored_second) == 2


@pytest.mark.asyncio
async def test_compute_gaps_removes_categories_no_longer_required(
    ctx: RequestContext, repos
) -> None:
    documents, rules, gaps = repos
    travel = await rules.create(ctx, name="Travel", required_categories=["Passport"])
    housing = await rules.create(ctx, name="Housing", required_categories=["Lease"])
    engine = GapEngine(documents=documents, rules=rules, gaps=gaps, today=lambda: TODAY)
    await engine.compute_gaps(ctx)

    await rules.set_status(ctx, housing.rule_id, RuleStatus.inactive)
    result = await engine.compute_gaps(ctx)

    assert [g.required_category for g in result] == ["Passport"]
    assert [g.required_category for g in await gaps.list_gaps(ctx)] == ["Passport"]
    assert result[0].checklist_id == travel.rule_id


@pytest.mark.asyncio
async def test_compute_gaps_without_rules_clears_gaps(ctx: RequestContext, repos) -> None:
    documents, rules, gaps = repos
    rule = await rules.create(ctx, name="Travel", required_categories=["Passport"])
    engine = GapEngine(documents=documents, rules=rules, gaps=gaps, today=lambda: TODAY)
    await engine.compute_gaps(ctx)

    await rules.set_status(ctx, rule.rule_id, RuleStatus.inactive)

    assert await engine.compute_gaps(ctx) == []
    assert await gaps.list_gaps(ctx) == []
