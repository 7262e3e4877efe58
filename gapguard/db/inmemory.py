"""In-memory implementations of repository interfaces."""

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from gapguard.db.context import RequestContext
from gapguard.db.repositories import RetryAfter
from gapguard.errors import NotFoundError, PersistenceError, SupersededError
from gapguard.models.chat import ChatMessage, ChatSession
from gapguard.models.documents import (
    Classification,
    DocChunk,
    DocumentStatus,
    IngestRequest,
    ProcessingLogEntry,
    UserDocument,
)
from gapguard.models.gaps import ChecklistRule, Gap, RuleStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _newest_first(doc: UserDocument) -> tuple[datetime, str]:
    return (doc.created_at, str(doc.document_id))


class InMemoryDocumentRepository:
    """In-memory implementation of DocumentRepository."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._documents: dict[uuid.UUID, UserDocument] = {}
        self._chunks: dict[uuid.UUID, list[DocChunk]] = {}

    def add_document(self, document: UserDocument) -> None:
        """Seed a document directly (for tests)."""
        self._documents[document.document_id] = document
        self._chunks.setdefault(document.document_id, [])

    def _owned(self, ctx: RequestContext, document_id: uuid.UUID) -> UserDocument | None:
        doc = self._documents.get(document_id)
        # Enforce tenancy
        if doc is None or doc.user_id != ctx.user_id:
            return None
        return doc

    async def get_by_name(self, ctx: RequestContext, file_name: str) -> UserDocument | None:
        """Get the caller's document with this file name, if any."""
        for doc in self._documents.values():
            if doc.user_id == ctx.user_id and doc.file_name == file_name:
                return doc
        return None

    async def get(self, ctx: RequestContext, document_id: uuid.UUID) -> UserDocument | None:
        """Get document by ID."""
        return self._owned(ctx, document_id)

    async def upsert(self, ctx: RequestContext, request: IngestRequest) -> UserDocument:
        """Create or reset the document keyed by (user, file_name)."""
        now = self._clock()
        existing = await self.get_by_name(ctx, request.file_name)

        if existing is None:
            doc = UserDocument(
                document_id=uuid.uuid4(),
                user_id=ctx.user_id,
                file_name=request.file_name,
                file_url=request.file_url,
                mime_type=request.mime_type,
                file_size=request.file_size,
                created_at=now,
                updated_at=now,
                attempt_id=uuid.uuid4(),
            )
        else:
            doc = existing.model_copy(
                update={
                    "file_url": request.file_url,
                    "mime_type": request.mime_type,
                    "file_size": request.file_size,
                    "status": DocumentStatus.processing,
                    "category": None,
                    "expiry_date": None,
                    "issue_date": None,
                    "confidence_score": None,
                    "reasoning": None,
                    "attempt_id": uuid.uuid4(),
                    "updated_at": now,
                }
            )

        self._documents[doc.document_id] = doc
        self._chunks[doc.document_id] = []
        return doc

    def _claimed(
        self, ctx: RequestContext, document_id: uuid.UUID, attempt_id: uuid.UUID
    ) -> UserDocument:
        """Return the document if ``attempt_id`` still owns it, else raise."""
        doc = self._owned(ctx, document_id)
        if doc is None:
            raise NotFoundError("Document was deleted during ingestion", document_id=document_id)
        if doc.attempt_id != attempt_id:
            raise SupersededError(
                "Document was replaced by a newer upload of the same file", document_id=document_id
            )
        return doc

    async def set_classification(
        self,
        ctx: RequestContext,
        document_id: uuid.UUID,
        classification: Classification,
        *,
        attempt_id: uuid.UUID,
    ) -> None:
        """Store classifier output on the document."""
        doc = self._claimed(ctx, document_id, attempt_id)
        self._documents[document_id] = doc.model_copy(
            update={**classification.model_dump(), "updated_at": self._clock()}
        )

    async def add_chunk(
        self,
        ctx: RequestContext,
        document_id: uuid.UUID,
        chunk_index: int,
        text: str,
        vector: list[float],
        *,
        attempt_id: uuid.UUID,
    ) -> DocChunk:
        """Persist one embedded chunk."""
        self._claimed(ctx, document_id, attempt_id)

        chunks = self._chunks.setdefault(document_id, [])
        if any(c.chunk_index == chunk_index for c in chunks):
            raise PersistenceError(f"add_chunk failed: duplicate chunk_index {chunk_index}")

        chunk = DocChunk(
            chunk_id=uuid.uuid4(),
            document_id=document_id,
            user_id=ctx.user_id,
            chunk_index=chunk_index,
            text=text,
            vector=list(vector),
        )
        chunks.append(chunk)
        return chunk

    async def mark_valid(
        self, ctx: RequestContext, document_id: uuid.UUID, *, attempt_id: uuid.UUID
    ) -> None:
        """Flip the document to ``valid``."""
        doc = self._claimed(ctx, document_id, attempt_id)
        self._documents[document_id] = doc.model_copy(
            update={"status": DocumentStatus.valid, "updated_at": self._clock()}
        )

    async def list_documents(
        self, ctx: RequestContext, category: str | None = None
    ) -> list[UserDocument]:
        """List the caller's documents, newest first."""
        docs = [
            doc
            for doc in self._documents.values()
            if doc.user_id == ctx.user_id and (category is None or doc.category == category)
        ]
        return sorted(docs, key=_newest_first, reverse=True)

    async def delete(self, ctx: RequestContext, document_id: uuid.UUID) -> bool:
        """Delete a document and its chunks."""
        if self._owned(ctx, document_id) is None:
            return False
        del self._documents[document_id]
        self._chunks.pop(document_id, None)
        return True

    async def list_chunks(self, ctx: RequestContext, document_id: uuid.UUID) -> list[DocChunk]:
        """List a document's chunks ordered by chunk_index."""
        if self._owned(ctx, document_id) is None:
            return []
        return sorted(self._chunks.get(document_id, []), key=lambda c: c.chunk_index)

    async def list_searchable_chunks(self, ctx: RequestContext) -> list[DocChunk]:
        """List the caller's chunks whose document is not ``processing``."""
        chunks: list[DocChunk] = []
        for document_id, doc_chunks in self._chunks.items():
            doc = self._documents.get(document_id)
            if doc is None or doc.user_id != ctx.user_id:
                continue
            if doc.status == DocumentStatus.processing:
                continue
            chunks.extend(doc_chunks)
        return chunks


class InMemoryProcessingLogRepository:
    """In-memory implementation of ProcessingLogRepository."""

    def __init__(self) -> None:
        self.entries: list[ProcessingLogEntry] = []

    async def record(self, entry: ProcessingLogEntry) -> None:
        """Append one processing log row."""
        self.entries.append(entry)


class InMemoryRuleRepository:
    """In-memory implementation of RuleRepository."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._rules: list[ChecklistRule] = []

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
        rule = ChecklistRule(
            rule_id=uuid.uuid4(),
            user_id=ctx.user_id,
            name=name,
            description=description,
            status=status,
            required_categories=list(required_categories),
            created_at=self._clock(),
        )
        self._rules.append(rule)
        return rule

    async def list_rules(
        self, ctx: RequestContext, status: RuleStatus | None = None
    ) -> list[ChecklistRule]:
        """List the caller's rules in creation order."""
        return [
            rule
            for rule in self._rules
            if rule.user_id == ctx.user_id and (status is None or rule.status == status)
        ]

    async def set_status(
        self, ctx: RequestContext, rule_id: uuid.UUID, status: RuleStatus
    ) -> ChecklistRule | None:
        """Change a rule's status."""
        for i, rule in enumerate(self._rules):
            if rule.rule_id == rule_id and rule.user_id == ctx.user_id:
                updated = rule.model_copy(update={"status": status})
                self._rules[i] = updated
                return updated
        return None


class InMemoryGapRepository:
    """In-memory implementation of GapRepository."""

    def __init__(self) -> None:
        self._gaps: dict[tuple[str, str], Gap] = {}

    async def upsert(self, ctx: RequestContext, gap: Gap) -> None:
        """Insert or replace the gap keyed by (user, required_category)."""
        self._gaps[(ctx.user_id, gap.required_category)] = gap

    async def delete_except(self, ctx: RequestContext, categories: set[str]) -> int:
        """Delete the caller's gaps whose category is not in ``categories``."""
        stale = [
            key for key in self._gaps if key[0] == ctx.user_id and key[1] not in categories
        ]
        for key in stale:
            del self._gaps[key]
        return len(stale)

    async def list_gaps(self, ctx: RequestContext) -> list[Gap]:
        """List the caller's gaps ordered by required_category."""
        return [
            gap
            for (user_id, _), gap in sorted(self._gaps.items())
            if user_id == ctx.user_id
        ]


class InMemoryChatRepository:
    """In-memory implementation of ChatRepository."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._sessions: dict[uuid.UUID, ChatSession] = {}
        self._messages: dict[uuid.UUID, list[ChatMessage]] = {}

    async def create_session(self, ctx: RequestContext, title: str) -> ChatSession:
        """Create a new chat session."""
        session = ChatSession(
            session_id=uuid.uuid4(),
            user_id=ctx.user_id,
            title=title,
            created_at=self._clock(),
        )
        self._sessions[session.session_id] = session
        self._messages[session.session_id] = []
        return session

    async def get_session(self, ctx: RequestContext, session_id: uuid.UUID) -> ChatSession | None:
        """Get session by ID, scoped to the caller."""
        session = self._sessions.get(session_id)
        if session is None or session.user_id != ctx.user_id:
            return None
        return session

    async def append_messages(
        self, ctx: RequestContext, session_id: uuid.UUID, turns: list[tuple[str, str]]
    ) -> list[ChatMessage]:
        """Append (role, content) turns in order."""
        session = await self.get_session(ctx, session_id)
        if session is None:
            raise NotFoundError(f"Unknown session {session_id}")

        history = self._messages[session_id]
        stored: list[ChatMessage] = []
        for role, content in turns:
            message = ChatMessage(
                message_id=uuid.uuid4(),
                session_id=session_id,
                position=len(history),
                role=role,
                content=content,
                created_at=self._clock(),
            )
            history.append(message)
            stored.append(message)

        if stored:
            self._sessions[session_id] = session.model_copy(
                update={"last_message_at": stored[-1].created_at}
            )
        return stored

    async def list_messages(self, ctx: RequestContext, session_id: uuid.UUID) -> list[ChatMessage]:
        """List a session's messages ordered by position."""
        if await self.get_session(ctx, session_id) is None:
            return []
        return list(self._messages[session_id])


class InMemoryRateLimiter:
    """In-memory implementation of RateLimiter using fixed window."""

    def __init__(self, max_requests: int, window_seconds: int = 86400) -> None:
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 24h)
        """
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._windows: dict[str, tuple[datetime, int]] = {}

    async def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available.

        Read-modify-write with no await point, so it is atomic on the event loop.
        """
        window = timedelta(seconds=self._window_seconds)

        if key in self._windows:
            window_start, count = self._windows[key]

            # Check if window expired
            if now >= window_start + window:
                self._windows[key] = (now, 1)
                return None

            if count >= self._max_requests:
                seconds_remaining = int((window_start + window - now).total_seconds())
                return RetryAfter(seconds=max(1, seconds_remaining))

            self._windows[key] = (window_start, count + 1)
            return None

        # First request
        self._windows[key] = (now, 1)
        return None
