"""Chat domain models."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class ChatSession(BaseModel):
    """Conversation container for one user."""

    session_id: UUID
    user_id: str
    title: str
    created_at: datetime
    last_message_at: datetime | None = None


class ChatMessage(BaseModel):
    """Single turn in a chat session."""

    message_id: UUID
    session_id: UUID
    position: int
    role: Literal["user", "assistant"]
    content: str
    created_at: datetime


class ChunkMatch(BaseModel):
    """Retrieved chunk with its similarity to the question."""

    document_id: UUID
    chunk_index: int
    text: str
    similarity: float


class ChatAnswer(BaseModel):
    """Answer returned to the caller."""

    answer: str
    sources: list[ChunkMatch]


class ChatQuery(BaseModel):
    """Question asked within a chat session."""

    question: str = Field(..., min_length=1)
    session_id: UUID
