"""Document endpoints - POST /documents/process, GET /documents, DELETE /documents/{id}."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from gapguard.api.auth import get_current_context
from gapguard.api.dependencies import get_document_repository, get_ingestion_pipeline
from gapguard.db.context import RequestContext
from gapguard.db.sql_repositories import SqlDocumentRepository
from gapguard.docs.ingest import IngestionPipeline
from gapguard.errors import NotFoundError
from gapguard.models.documents import IngestRequest, UserDocument

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


class ProcessDocumentRequest(BaseModel):
    """Request body for POST /documents/process."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    file_url: str = Field(..., description="Location of the uploaded file")
    file_name: str = Field(..., description="Display name; unique per user")
    mime_type: str = Field(..., description="MIME type of the file")
    file_size: int | None = Field(None, description="Size in bytes")


class ProcessDocumentResponse(BaseModel):
    """Response for POST /documents/process."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    document_id: UUID
    chunk_count: int


class DocumentListResponse(BaseModel):
    """Response for GET /documents."""

    documents: list[UserDocument]


@router.post("/process", response_model=ProcessDocumentResponse)
async def process_document(
    request: ProcessDocumentRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    pipeline: Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)],
) -> ProcessDocumentResponse:
    """Extract, classify, chunk and embed an uploaded document.

    Errors are rendered by the GapGuardError handler with
    ``{error, code, stage, documentId}``.
    """
    result = await pipeline.ingest(
        ctx,
        IngestRequest(
            file_url=request.file_url,
            file_name=request.file_name,
            mime_type=request.mime_type,
            file_size=request.file_size,
        ),
    )
    return ProcessDocumentResponse(document_id=result.document_id, chunk_count=result.chunk_count)


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    documents: Annotated[SqlDocumentRepository, Depends(get_document_repository)],
    category: Annotated[str | None, Query(description="Filter by category")] = None,
) -> DocumentListResponse:
    """List the caller's documents, newest first."""
    return DocumentListResponse(documents=await documents.list_documents(ctx, category=category))


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    documents: Annotated[SqlDocumentRepository, Depends(get_document_repository)],
) -> Response:
    """Delete a document and all of its chunks."""
    if not await documents.delete(ctx, document_id):
        raise NotFoundError(f"Document {document_id} not found", document_id=document_id)

    logger.info(f"Deleted document {document_id} for user {ctx.user_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
