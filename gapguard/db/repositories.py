"""Repository protocol interfaces for data access."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from gapguard.db.context import RequestContext
from gapguard.models.chat import ChatMessage, ChatSession
from gapguard.models.documents import (
    Classification,
    DocChunk,
    IngestRequest,
    ProcessingLogEntry,
    UserDocument,
)
from gapguard.models.gaps import ChecklistRule, Gap, RuleStatus


class DocumentRepository(Protocol):
    """Repository for documents and their chunks."""

    async def get_by_name(self, ctx: RequestContext, file_name: str) -> UserDocument | None:
        """Get the caller's document with this file name, if any."""
        ...

    async def get(self, ctx: RequestContext, document_id: UUID) -> UserDocument | None:
        """Get document by ID.

        Args:
            ctx: Request context (enforces ownership)
            document_id: Document ID

        Returns:
            Document or None if not found
        """
        ...

    async def upsert(self, ctx: RequestContext, request: IngestRequest) -> UserDocument:
        """Create or reset the document keyed by (user, file_name).

        An existing row gets the new URL/type/size, status ``processing``,
        cleared classification, its previous chunk set deleted, and a fresh
        ``attempt_id``. Done as one insert-or-update so concurrent first
        uploads of the same name converge on a single row.

        Args:
            ctx: Request context
            request: Ingestion request

        Returns:
            The document in ``processing`` state, carrying the new attempt_id
        """
        ...

    async def set_classification(
        self,
        ctx: RequestContext,
        document_id: UUID,
        classification: Classification,
        *,
        attempt_id: UUID,
    ) -> None:
        """Store classifier output on the document if ``attempt_id`` still owns it."""
        ...

    async def add_chunk(
        self,
        ctx: RequestContext,
        document_id: UUID,
        chunk_index: int,
        text: str,
        vector: list[float],
        *,
        attempt_id: UUID,
    ) -> DocChunk:
        """Persist one embedded chunk.

        Args:
            ctx: Request context
            document_id: Owning document
            chunk_index: 0-based position within the document
            text: Chunk text
            vector: Embedding vector
            attempt_id: Token returned by the upsert that started this ingestion

        Returns:
            The stored chunk

        Raises:
            SupersededError: A newer upsert replaced ``attempt_id``
            NotFoundError: The document was deleted
        """
        ...

    async def mark_valid(self, ctx: RequestContext, document_id: UUID, *, attempt_id: UUID) -> None:
        """Flip the document from ``processing`` to ``valid`` if ``attempt_id`` still owns it.

        Raises:
            SupersededError: A newer upsert replaced ``attempt_id``
            NotFoundError: The document was deleted
        """
        ...

    async def list_documents(
        self, ctx: RequestContext, category: str | None = None
    ) -> list[UserDocument]:
        """List the caller's documents, newest first (ties broken by id desc).

        Args:
            ctx: Request context
            category: Optional category filter

        Returns:
            List of documents
        """
        ...

    async def delete(self, ctx: RequestContext, document_id: UUID) -> bool:
        """Delete a document and its chunks. Returns False if not found."""
        ...

    async def list_chunks(self, ctx: RequestContext, document_id: UUID) -> list[DocChunk]:
        """List a document's chunks ordered by chunk_index."""
        ...

    async def list_searchable_chunks(self, ctx: RequestContext) -> list[DocChunk]:
        """List the caller's chunks whose document is not ``processing``."""
        ...


class ProcessingLogRepository(Protocol):
    """Repository for ingestion attempt logs."""

    async def record(self, entry: ProcessingLogEntry) -> None:
        """Append one processing log row."""
        ...


class RuleRepository(Protocol):
    """Repository for checklist rules."""

    async def create(
        self,
        ctx: RequestContext,
        *,
        name: str,
        required_categories: list[str],
        description: str | None = None,
        status: RuleStatus = RuleStatus.active,
    ) -> ChecklistRule:
        """Create a checklist rule."""
        ...

    async def list_rules(
        self, ctx: RequestContext, status: RuleStatus | None = None
    ) -> list[ChecklistRule]:
        """List the caller's rules in creation order.

        Args:
            ctx: Request context
            status: Optional status filter

        Returns:
            List of rules, oldest first
        """
        ...

    async def set_status(
        self, ctx: RequestContext, rule_id: UUID, status: RuleStatus
    ) -> ChecklistRule | None:
        """Change a rule's status. Returns None if not found."""
        ...


class GapRepository(Protocol):
    """Repository for derived gap rows."""

    async def upsert(self, ctx: RequestContext, gap: Gap) -> None:
        """Insert or replace the gap keyed by (user, required_category)."""
        ...

    async def delete_except(self, ctx: RequestContext, categories: set[str]) -> int:
        """Delete the caller's gaps whose category is not in ``categories``.

        Returns:
            Number of rows deleted
        """
        ...

    async def list_gaps(self, ctx: RequestContext) -> list[Gap]:
        """List the caller's gaps ordered by required_category."""
        ...


class ChatRepository(Protocol):
    """Repository for chat sessions and messages."""

    async def create_session(self, ctx: RequestContext, title: str) -> ChatSession:
        """Create a new chat session."""
        ...

    async def get_session(self, ctx: RequestContext, session_id: UUID) -> ChatSession | None:
        """Get session by ID, scoped to the caller."""
        ...

    async def append_messages(
        self, ctx: RequestContext, session_id: UUID, turns: list[tuple[str, str]]
    ) -> list[ChatMessage]:
        """Append (role, content) turns in order after the session's last message.

        Args:
            ctx: Request context
            session_id: Session ID (must belong to the caller)
            turns: Ordered (role, content) pairs

        Returns:
            The stored messages
        """
        ...

    async def list_messages(self, ctx: RequestContext, session_id: UUID) -> list[ChatMessage]:
        """List a session's messages ordered by position."""
        ...


@dataclass
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class RateLimiter(Protocol):
    """Rate limiter interface."""

    async def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Count one request against the key's window and check the quota.

        Args:
            key: Rate limit key
            now: Current timestamp

        Returns:
            RetryAfter if over quota, None if allowed
        """
        ...
