"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17

Creates:
- document, document_chunk
- checklist_rule, gap
- chat_session, chat_message
- processing_log
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    """Create all tables."""
    # document table
    op.create_table(
        "document",
        sa.Column("document_id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=False),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("mime_type", sa.Text(), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="processing"),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("reasoning", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("user_id", "file_name", name="uq_document_user_file"),
        sa.CheckConstraint(
            "status IN ('processing', 'valid', 'expiring_soon', 'expired')",
            name="ck_document_status",
        ),
    )
    op.create_index("idx_document_user_category", "document", ["user_id", "category"])

    # document_chunk table
    op.create_table(
        "document_chunk",
        sa.Column("chunk_id", sa.Uuid(), primary_key=True),
        sa.Column(
            "document_id",
            sa.Uuid(),
            sa.ForeignKey("document.document_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", JSON_TYPE, nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint("document_id", "chunk_index", name="uq_chunk_document_index"),
        sa.CheckConstraint("chunk_index >= 0", name="ck_chunk_index_non_negative"),
    )
    op.create_index("idx_chunk_user", "document_chunk", ["user_id"])

    # checklist_rule table
    op.create_table(
        "checklist_rule",
        sa.Column("rule_id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("required_categories", JSON_TYPE, nullable=False),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "status IN ('active', 'suggested', 'inactive')", name="ck_checklist_rule_status"
        ),
    )
    op.create_index("idx_rule_user_status", "checklist_rule", ["user_id", "status"])

    # gap table
    op.create_table(
        "gap",
        sa.Column("gap_id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column(
            "checklist_id",
            sa.Uuid(),
            sa.ForeignKey("checklist_rule.rule_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("required_category", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column(
            "document_id",
            sa.Uuid(),
            sa.ForeignKey("document.document_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("days_left", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("user_id", "required_category", name="uq_gap_user_category"),
        sa.CheckConstraint(
            "status IN ('missing', 'valid', 'expiring_soon', 'expired', 'processing')",
            name="ck_gap_status",
        ),
    )

    # chat_session table
    op.create_table(
        "chat_session",
        sa.Column("session_id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        _timestamp("created_at"),
        _timestamp("last_message_at", nullable=True),
    )
    op.create_index("idx_chat_session_user", "chat_session", ["user_id", "last_message_at"])

    # chat_message table
    op.create_table(
        "chat_message",
        sa.Column("message_id", sa.Uuid(), primary_key=True),
        sa.Column(
            "session_id",
            sa.Uuid(),
            sa.ForeignKey("chat_session.session_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint("session_id", "position", name="uq_chat_message_position"),
        sa.CheckConstraint("role IN ('user', 'assistant')", name="ck_chat_message_role"),
    )

    # processing_log table
    op.create_table(
        "processing_log",
        sa.Column("log_id", sa.Uuid(), primary_key=True),
        sa.Column("request_id", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column(
            "document_id",
            sa.Uuid(),
            sa.ForeignKey("document.document_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("outcome", sa.Text(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=False),
        sa.Column("details", JSON_TYPE, nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("idx_processing_log_user", "processing_log", ["user_id", "created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("processing_log")
    op.drop_table("chat_message")
    op.drop_table("chat_session")
    op.drop_table("gap")
    op.drop_table("checklist_rule")
    op.drop_table("document_chunk")
    op.drop_table("document")
