"""Document domain models."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    """Document lifecycle status."""

    processing = "processing"
    valid = "valid"
    expiring_soon = "expiring_soon"
    expired = "expired"


class UserDocument(BaseModel):
    """User document metadata."""

    document_id: UUID
    user_id: str
    file_name: str
    file_url: str
    mime_type: str
    file_size: int | None = None
    status: DocumentStatus = DocumentStatus.processing
    category: str | None = None
    expiry_date: date | None = None
    issue_date: date | None = None
    confidence_score: float | None = None
    reasoning: str | None = None
    created_at: datetime
    updated_at: datetime
    # Token of the upload currently allowed to write chunks; internal only
    attempt_id: UUID | None = Field(default=None, exclude=True)


class DocChunk(BaseModel):
    """Document chunk with its embedding vector."""

    chunk_id: UUID
    document_id: UUID
    user_id: str
    chunk_index: int  # 0-based
    text: str
    vector: list[float] = Field(default_factory=list, repr=False)


class Classification(BaseModel):
    """Category and dates inferred for a document."""

    category: str | None = None
    expiry_date: date | None = None
    issue_date: date | None = None
    confidence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    reasoning: str | None = None


class IngestRequest(BaseModel):
    """Upload event handed to the ingestion pipeline."""

    file_url: str
    file_name: str
    mime_type: str
    file_size: int | None = None


class IngestResult(BaseModel):
    """Successful ingestion outcome."""

    document_id: UUID
    chunk_count: int


class ProcessingLogEntry(BaseModel):
    """One ingestion attempt, successful or not."""

    request_id: str
    user_id: str
    document_id: UUID | None = None
    outcome: str  # "success" or an error code
    error_message: str | None = None
    processing_time_ms: int
