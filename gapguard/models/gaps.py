"""Checklist rule and gap domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class RuleStatus(str, Enum):
    """Checklist rule status."""

    active = "active"
    suggested = "suggested"
    inactive = "inactive"


class GapStatus(str, Enum):
    """Resolved compliance status of one required category."""

    missing = "missing"
    valid = "valid"
    expiring_soon = "expiring_soon"
    expired = "expired"
    processing = "processing"


class ChecklistRule(BaseModel):
    """Named set of required document categories."""

    rule_id: UUID
    user_id: str
    name: str
    description: str | None = None
    status: RuleStatus = RuleStatus.active
    required_categories: list[str] = Field(default_factory=list)
    created_at: datetime


class Gap(BaseModel):
    """Computed status of one required category for one user."""

    user_id: str
    checklist_id: UUID | None = None
    required_category: str
    status: GapStatus
    document_id: UUID | None = None
    days_left: int | None = None


class RuleSuggestion(BaseModel):
    """Rule proposed by the language model."""

    rule_name: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
