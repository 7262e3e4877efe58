"""Document upload attempt token

Revision ID: 002
Revises: 001
Create Date: 2026-10-17

Adds document.attempt_id, stamped by each upload so an older, overlapping
ingestion of the same file cannot write chunks or mark it valid.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Add the attempt token column."""
    op.add_column("document", sa.Column("attempt_id", sa.Uuid(), nullable=True))


def downgrade() -> None:
    """Drop the attempt token column."""
    op.drop_column("document", "attempt_id")
