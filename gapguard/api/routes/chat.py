"""Chat endpoints - sessions, message history and questions."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from gapguard.api.auth import get_current_context
from gapguard.api.dependencies import get_chat_repository, get_chat_responder
from gapguard.chat.responder import ChatResponder
from gapguard.db.context import RequestContext
from gapguard.db.sql_repositories import SqlChatRepository
from gapguard.errors import NotFoundError
from gapguard.models.chat import ChatAnswer, ChatMessage, ChatQuery, ChatSession

router = APIRouter(prefix="/chat", tags=["chat"])


class CreateSessionRequest(BaseModel):
    """Request body for POST /chat/sessions."""

    title: str | None = Field(None, max_length=200)


class MessageListResponse(BaseModel):
    """Response for GET /chat/sessions/{id}/messages."""

    messages: list[ChatMessage]


class ChatQueryRequest(BaseModel):
    """Request body for POST /chat/query."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question: str = Field(..., min_length=1, max_length=2000)
    session_id: UUID


@router.post("/sessions", response_model=ChatSession, status_code=status.HTTP_201_CREATED)
async def create_session(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    responder: Annotated[ChatResponder, Depends(get_chat_responder)],
    request: CreateSessionRequest | None = None,
) -> ChatSession:
    """Open a new chat session."""
    return await responder.start_session(ctx, request.title if request else None)


@router.get("/sessions/{session_id}/messages", response_model=MessageListResponse)
async def list_messages(
    session_id: UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    chats: Annotated[SqlChatRepository, Depends(get_chat_repository)],
) -> MessageListResponse:
    """List a session's messages in order."""
    if await chats.get_session(ctx, session_id) is None:
        raise NotFoundError(f"Chat session {session_id} not found", stage="chat")
    return MessageListResponse(messages=await chats.list_messages(ctx, session_id))


@router.post("/query", response_model=ChatAnswer)
async def query(
    request: ChatQueryRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    responder: Annotated[ChatResponder, Depends(get_chat_responder)],
) -> ChatAnswer:
    """Answer a question from the caller's own documents."""
    return await responder.answer(
        ctx, ChatQuery(question=request.question, session_id=request.session_id)
    )
