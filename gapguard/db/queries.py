"""Tenancy-safe query helpers."""

from sqlalchemy import Select, select

from gapguard.db.context import RequestContext
from gapguard.db.models import ChatSession, ChecklistRule, Document, DocumentChunk, Gap


def select_documents(ctx: RequestContext) -> Select:
    """Select document rows with user scoping enforced.

    Args:
        ctx: Request context with user_id

    Returns:
        Select filtered by user_id
    """
    return select(Document).where(Document.user_id == ctx.user_id)


def select_chunks(ctx: RequestContext) -> Select:
    """Select chunk rows with user scoping enforced."""
    return select(DocumentChunk).where(DocumentChunk.user_id == ctx.user_id)


def select_rules(ctx: RequestContext) -> Select:
    """Select checklist rule rows with user scoping enforced."""
    return select(ChecklistRule).where(ChecklistRule.user_id == ctx.user_id)


def select_gaps(ctx: RequestContext) -> Select:
    """Select gap rows with user scoping enforced."""
    return select(Gap).where(Gap.user_id == ctx.user_id)


def select_chat_sessions(ctx: RequestContext) -> Select:
    """Select chat session rows with user scoping enforced."""
    return select(ChatSession).where(ChatSession.user_id == ctx.user_id)
