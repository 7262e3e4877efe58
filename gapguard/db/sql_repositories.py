"""SQL implementations of repository interfaces."""

import functools
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, ParamSpec, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gapguard.db import models as orm
from gapguard.db.context import RequestContext
from gapguard.db.queries import (
    select_chat_sessions,
    select_chunks,
    select_documents,
    select_gaps,
    select_rules,
)
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

P = ParamSpec("P")
T = TypeVar("T")


def _translate_errors(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Roll back and re-raise SQLAlchemy failures as PersistenceError."""

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await fn(*args, **kwargs)
        except SQLAlchemyError as e:
            session: AsyncSession = args[0]._session  # type: ignore[attr-defined]
            await session.rollback()
            raise PersistenceError(f"{fn.__name__} failed: {type(e).__name__}") from e

    return wrapper


_DIALECT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _dialect_insert(session: AsyncSession) -> Callable[..., Any]:
    """INSERT construct with ON CONFLICT support for the session's backend."""
    dialect = session.get_bind().dialect.name
    try:
        return _DIALECT_INSERTS[dialect]
    except KeyError:
        raise PersistenceError(f"Upserts are not supported on {dialect}") from None


def _to_document(row: orm.Document) -> UserDocument:
    return UserDocument(
        document_id=row.document_id,
        user_id=row.user_id,
        file_name=row.file_name,
        file_url=row.file_url,
        mime_type=row.mime_type,
        file_size=row.file_size,
        status=DocumentStatus(row.status),
        category=row.category,
        expiry_date=row.expiry_date,
        issue_date=row.issue_date,
        confidence_score=row.confidence_score,
        reasoning=row.reasoning,
        created_at=row.created_at,
        updated_at=row.updated_at,
        attempt_id=row.attempt_id,
    )


def _to_chunk(row: orm.DocumentChunk) -> DocChunk:
    return DocChunk(
        chunk_id=row.chunk_id,
        document_id=row.document_id,
        user_id=row.user_id,
        chunk_index=row.chunk_index,
        text=row.content,
        vector=list(row.embedding),
    )


def _to_rule(row: orm.ChecklistRule) -> ChecklistRule:
    return ChecklistRule(
        rule_id=row.rule_id,
        user_id=row.user_id,
        name=row.name,
        description=row.description,
        status=RuleStatus(row.status),
        required_categories=list(row.required_categories or []),
        created_at=row.created_at,
    )


def _to_gap(row: orm.Gap) -> Gap:
    return Gap(
        user_id=row.user_id,
        checklist_id=row.checklist_id,
        required_category=row.required_category,
        status=row.status,
        document_id=row.document_id,
        days_left=row.days_left,
    )


def _to_session(row: orm.ChatSession) -> ChatSession:
    return ChatSession(
        session_id=row.session_id,
        user_id=row.user_id,
        title=row.title,
        created_at=row.created_at,
        last_message_at=row.last_message_at,
    )


def _to_message(row: orm.ChatMessage) -> ChatMessage:
    return ChatMessage(
        message_id=row.message_id,
        session_id=row.session_id,
        position=row.position,
        role=row.role,
        content=row.content,
        created_at=row.created_at,
    )


class SqlDocumentRepository:
    """SQL implementation of DocumentRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _get_row(self, ctx: RequestContext, document_id: uuid.UUID) -> orm.Document | None:
        stmt = select_documents(ctx).where(orm.Document.document_id == document_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    @_translate_errors
    async def get_by_name(self, ctx: RequestContext, file_name: str) -> UserDocument | None:
        """Get the caller's document with this file name, if any."""
        stmt = select_documents(ctx).where(orm.Document.file_name == file_name)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _to_document(row) if row is not None else None

    @_translate_errors
    async def get(self, ctx: RequestContext, document_id: uuid.UUID) -> UserDocument | None:
        """Get document by ID."""
        row = await self._get_row(ctx, document_id)
        return _to_document(row) if row is not None else None

    @_translate_errors
    async def upsert(self, ctx: RequestContext, request: IngestRequest) -> UserDocument:
        """Create or reset the document keyed by (user, file_name)."""
        now = datetime.now(timezone.utc)
        reset: dict[str, Any] = {
            "file_url": request.file_url,
            "mime_type": request.mime_type,
            "file_size": request.file_size,
            "status": DocumentStatus.processing.value,
            "category": None,
            "expiry_date": None,
            "issue_date": None,
            "confidence_score": None,
            "reasoning": None,
            "attempt_id": uuid.uuid4(),
            "updated_at": now,
        }
        stmt = (
            _dialect_insert(self._session)(orm.Document)
            .values(
                document_id=uuid.uuid4(),
                user_id=ctx.user_id,
                file_name=request.file_name,
                created_at=now,
                **reset,
            )
            .on_conflict_do_update(index_elements=["user_id", "file_name"], set_=reset)
            .returning(orm.Document.document_id)
        )
        document_id = (await self._session.execute(stmt)).scalar_one()
        await self._session.execute(
            delete(orm.DocumentChunk).where(orm.DocumentChunk.document_id == document_id)
        )
        await self._session.commit()

        row = await self._session.get(orm.Document, document_id, populate_existing=True)
        return _to_document(row)

    async def _claim(
        self, ctx: RequestContext, document_id: uuid.UUID, attempt_id: uuid.UUID, **values: Any
    ) -> None:
        """UPDATE the row only while ``attempt_id`` still owns it, else raise.

        The row lock taken here is held until commit, so a concurrent upsert
        cannot clear the chunk set between this check and the caller's write.
        """
        result = await self._session.execute(
            update(orm.Document)
            .where(
                orm.Document.document_id == document_id,
                orm.Document.user_id == ctx.user_id,
                orm.Document.attempt_id == attempt_id,
            )
            .values(updated_at=datetime.now(timezone.utc), **values)
        )
        if result.rowcount == 1:
            return

        await self._session.rollback()
        if await self._get_row(ctx, document_id) is None:
            raise NotFoundError("Document was deleted during ingestion", document_id=document_id)
        raise SupersededError(
            "Document was replaced by a newer upload of the same file", document_id=document_id
        )

    @_translate_errors
    async def set_classification(
        self,
        ctx: RequestContext,
        document_id: uuid.UUID,
        classification: Classification,
        *,
        attempt_id: uuid.UUID,
    ) -> None:
        """Store classifier output on the document."""
        await self._claim(ctx, document_id, attempt_id, **classification.model_dump())
        await self._session.commit()

    @_translate_errors
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
        await self._claim(ctx, document_id, attempt_id)

        row = orm.DocumentChunk(
            chunk_id=uuid.uuid4(),
            document_id=document_id,
            user_id=ctx.user_id,
            chunk_index=chunk_index,
            content=text,
            embedding=list(vector),
        )
        self._session.add(row)
        await self._session.commit()
        return _to_chunk(row)

    @_translate_errors
    async def mark_valid(
        self, ctx: RequestContext, document_id: uuid.UUID, *, attempt_id: uuid.UUID
    ) -> None:
        """Flip the document to ``valid``."""
        await self._claim(ctx, document_id, attempt_id, status=DocumentStatus.valid.value)
        await self._session.commit()

    @_translate_errors
    async def list_documents(
        self, ctx: RequestContext, category: str | None = None
    ) -> list[UserDocument]:
        """List the caller's documents, newest first."""
        stmt = select_documents(ctx)
        if category is not None:
            stmt = stmt.where(orm.Document.category == category)
        stmt = stmt.order_by(orm.Document.created_at.desc(), orm.Document.document_id.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_to_document(row) for row in rows]

    @_translate_errors
    async def delete(self, ctx: RequestContext, document_id: uuid.UUID) -> bool:
        """Delete a document and its chunks."""
        row = await self._get_row(ctx, document_id)
        if row is None:
            return False

        # Chunks first; sqlite does not enforce ON DELETE CASCADE by default
        await self._session.execute(
            delete(orm.DocumentChunk).where(orm.DocumentChunk.document_id == document_id)
        )
        await self._session.execute(
            delete(orm.Document).where(orm.Document.document_id == document_id)
        )
        await self._session.commit()
        return True

    @_translate_errors
    async def list_chunks(self, ctx: RequestContext, document_id: uuid.UUID) -> list[DocChunk]:
        """List a document's chunks ordered by chunk_index."""
        stmt = (
            select_chunks(ctx)
            .where(orm.DocumentChunk.document_id == document_id)
            .order_by(orm.DocumentChunk.chunk_index)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_to_chunk(row) for row in rows]

    @_translate_errors
    async def list_searchable_chunks(self, ctx: RequestContext) -> list[DocChunk]:
        """List the caller's chunks whose document is not ``processing``."""
        stmt = (
            select_chunks(ctx)
            .join(orm.Document, orm.Document.document_id == orm.DocumentChunk.document_id)
            .where(
                orm.Document.user_id == ctx.user_id,
                orm.Document.status != DocumentStatus.processing.value,
            )
            .order_by(orm.DocumentChunk.document_id, orm.DocumentChunk.chunk_index)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_to_chunk(row) for row in rows]


class SqlProcessingLogRepository:
    """SQL implementation of ProcessingLogRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @_translate_errors
    async def record(self, entry: ProcessingLogEntry) -> None:
        """Append one processing log row."""
        self._session.add(
            orm.ProcessingLog(
                log_id=uuid.uuid4(),
                request_id=entry.request_id,
                user_id=entry.user_id,
                document_id=entry.document_id,
                outcome=entry.outcome,
                error_message=entry.error_message,
                processing_time_ms=entry.processing_time_ms,
            )
        )
        await self._session.commit()


class SqlRuleRepository:
    """SQL implementation of RuleRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @_translate_errors
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
        row = orm.ChecklistRule(
            rule_id=uuid.uuid4(),
            user_id=ctx.user_id,
            name=name,
            description=description,
            status=status.value,
            required_categories=list(required_categories),
        )
        self._session.add(row)
        await self._session.commit()
        await self._session.refresh(row)
        return _to_rule(row)

    @_translate_errors
    async def list_rules(
        self, ctx: RequestContext, status: RuleStatus | None = None
    ) -> list[ChecklistRule]:
        """List the caller's rules in creation order."""
        stmt = select_rules(ctx)
        if status is not None:
            stmt = stmt.where(orm.ChecklistRule.status == status.value)
        stmt = stmt.order_by(orm.ChecklistRule.created_at, orm.ChecklistRule.rule_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_to_rule(row) for row in rows]

    @_translate_errors
    async def set_status(
        self, ctx: RequestContext, rule_id: uuid.UUID, status: RuleStatus
    ) -> ChecklistRule | None:
        """Change a rule's status."""
        stmt = select_rules(ctx).where(orm.ChecklistRule.rule_id == rule_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None

        row.status = status.value
        await self._session.commit()
        return _to_rule(row)


class SqlGapRepository:
    """SQL implementation of GapRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @_translate_errors
    async def upsert(self, ctx: RequestContext, gap: Gap) -> None:
        """Insert or replace the gap keyed by (user, required_category)."""
        values: dict[str, Any] = {
            "checklist_id": gap.checklist_id,
            "status": gap.status.value,
            "document_id": gap.document_id,
            "days_left": gap.days_left,
        }
        stmt = (
            _dialect_insert(self._session)(orm.Gap)
            .values(
                gap_id=uuid.uuid4(),
                user_id=ctx.user_id,
                required_category=gap.required_category,
                **values,
            )
            .on_conflict_do_update(index_elements=["user_id", "required_category"], set_=values)
        )
        await self._session.execute(stmt)
        await self._session.commit()

    @_translate_errors
    async def delete_except(self, ctx: RequestContext, categories: set[str]) -> int:
        """Delete the caller's gaps whose category is not in ``categories``."""
        stmt = delete(orm.Gap).where(orm.Gap.user_id == ctx.user_id)
        if categories:
            stmt = stmt.where(orm.Gap.required_category.not_in(categories))
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount or 0

    @_translate_errors
    async def list_gaps(self, ctx: RequestContext) -> list[Gap]:
        """List the caller's gaps ordered by required_category."""
        # Upserts bypass the identity map, so reload rows this session already holds
        stmt = (
            select_gaps(ctx)
            .order_by(orm.Gap.required_category)
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_to_gap(row) for row in rows]


class SqlChatRepository:
    """SQL implementation of ChatRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _get_row(self, ctx: RequestContext, session_id: uuid.UUID) -> orm.ChatSession | None:
        stmt = select_chat_sessions(ctx).where(orm.ChatSession.session_id == session_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    @_translate_errors
    async def create_session(self, ctx: RequestContext, title: str) -> ChatSession:
        """Create a new chat session."""
        row = orm.ChatSession(session_id=uuid.uuid4(), user_id=ctx.user_id, title=title)
        self._session.add(row)
        await self._session.commit()
        await self._session.refresh(row)
        return _to_session(row)

    @_translate_errors
    async def get_session(self, ctx: RequestContext, session_id: uuid.UUID) -> ChatSession | None:
        """Get session by ID, scoped to the caller."""
        row = await self._get_row(ctx, session_id)
        return _to_session(row) if row is not None else None

    @_translate_errors
    async def append_messages(
        self, ctx: RequestContext, session_id: uuid.UUID, turns: list[tuple[str, str]]
    ) -> list[ChatMessage]:
        """Append (role, content) turns in order."""
        session_row = await self._get_row(ctx, session_id)
        if session_row is None:
            raise NotFoundError(f"Unknown session {session_id}")

        last_position = (
            await self._session.execute(
                select(func.max(orm.ChatMessage.position)).where(
                    orm.ChatMessage.session_id == session_id
                )
            )
        ).scalar_one_or_none()
        next_position = 0 if last_position is None else last_position + 1

        rows: list[orm.ChatMessage] = []
        for offset, (role, content) in enumerate(turns):
            row = orm.ChatMessage(
                message_id=uuid.uuid4(),
                session_id=session_id,
                position=next_position + offset,
                role=role,
                content=content,
                created_at=datetime.now(timezone.utc),
            )
            self._session.add(row)
            rows.append(row)

        if rows:
            session_row.last_message_at = rows[-1].created_at

        await self._session.commit()
        return [_to_message(row) for row in rows]

    @_translate_errors
    async def list_messages(self, ctx: RequestContext, session_id: uuid.UUID) -> list[ChatMessage]:
        """List a session's messages ordered by position."""
        if await self._get_row(ctx, session_id) is None:
            return []

        stmt = (
            select(orm.ChatMessage)
            .where(orm.ChatMessage.session_id == session_id)
            .order_by(orm.ChatMessage.position)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_to_message(row) for row in rows]
