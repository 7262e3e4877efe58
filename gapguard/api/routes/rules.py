"""Checklist rule endpoints - list, create, change status, suggest."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from gapguard.api.auth import get_current_context
from gapguard.api.dependencies import (
    SettingsDep,
    get_document_repository,
    get_llm,
    get_rule_repository,
)
from gapguard.db.context import RequestContext
from gapguard.db.sql_repositories import SqlDocumentRepository, SqlRuleRepository
from gapguard.errors import NotFoundError, ValidationError
from gapguard.llm.client import LLMClient
from gapguard.models.gaps import ChecklistRule, RuleStatus
from gapguard.rules.suggest import suggest_rules

router = APIRouter(prefix="/rules", tags=["rules"])


class CreateRuleRequest(BaseModel):
    """Request body for POST /rules."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    required_categories: list[str] = Field(..., min_length=1)
    status: RuleStatus = RuleStatus.active


class UpdateRuleRequest(BaseModel):
    """Request body for PATCH /rules/{id}."""

    status: RuleStatus


class RuleListResponse(BaseModel):
    """Response for GET /rules."""

    rules: list[ChecklistRule]


class SuggestRulesResponse(BaseModel):
    """Response for POST /rules/suggest."""

    suggestions: list[ChecklistRule]


@router.get("", response_model=RuleListResponse)
async def list_rules(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    rules: Annotated[SqlRuleRepository, Depends(get_rule_repository)],
    rule_status: Annotated[RuleStatus | None, Query(alias="status")] = None,
) -> RuleListResponse:
    """List the caller's rules in creation order."""
    return RuleListResponse(rules=await rules.list_rules(ctx, status=rule_status))


@router.post("", response_model=ChecklistRule, status_code=status.HTTP_201_CREATED)
async def create_rule(
    request: CreateRuleRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    rules: Annotated[SqlRuleRepository, Depends(get_rule_repository)],
) -> ChecklistRule:
    """Create a checklist rule."""
    categories = [c.strip() for c in request.required_categories if c.strip()]
    if not categories:
        raise ValidationError("requiredCategories must contain a non-blank category")

    return await rules.create(
        ctx,
        name=request.name.strip(),
        description=request.description,
        required_categories=categories,
        status=request.status,
    )


@router.patch("/{rule_id}", response_model=ChecklistRule)
async def update_rule(
    rule_id: UUID,
    request: UpdateRuleRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    rules: Annotated[SqlRuleRepository, Depends(get_rule_repository)],
) -> ChecklistRule:
    """Change a rule's status (e.g. accept a suggestion by activating it)."""
    rule = await rules.set_status(ctx, rule_id, request.status)
    if rule is None:
        raise NotFoundError(f"Rule {rule_id} not found")
    return rule


@router.post("/suggest", response_model=SuggestRulesResponse)
async def suggest(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    settings: SettingsDep,
    documents: Annotated[SqlDocumentRepository, Depends(get_document_repository)],
    rules: Annotated[SqlRuleRepository, Depends(get_rule_repository)],
    llm: Annotated[LLMClient, Depends(get_llm)],
) -> SuggestRulesResponse:
    """Suggest related rules from the caller's document categories."""
    stored = await suggest_rules(
        ctx,
        documents=documents,
        rules=rules,
        llm=llm,
        max_suggestions=settings.max_rule_suggestions,
    )
    return SuggestRulesResponse(suggestions=stored)
