"""Document ingestion - extract, classify, chunk, embed and persist.

The document stays ``processing`` until every chunk has been embedded and
stored; only then is it flipped to ``valid``. A failure at any stage leaves it
``processing`` and whatever chunks were already written stay in place until
the next upload of the same file name replaces them.

Each upload gets a fresh attempt token from the upsert. Chunk writes and the
final flip present it, so an older run overlapping a re-upload of the same
file fails with SupersededError instead of marking the newer row valid.
"""

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Protocol
from uuid import UUID, uuid4

from gapguard.config import Settings, get_settings
from gapguard.db.context import RequestContext
from gapguard.db.repositories import DocumentRepository, ProcessingLogRepository, RateLimiter
from gapguard.docs.chunker import chunk_text
from gapguard.docs.extract import DOCX_MIME, SUPPORTED_MIME_TYPES, TextExtractor
from gapguard.embeddings.provider import EmbeddingMode, EmbeddingProvider
from gapguard.errors import (
    ConflictError,
    ContentError,
    GapGuardError,
    PayloadTooLargeError,
    PersistenceError,
    RateLimitError,
    ValidationError,
)
from gapguard.models.documents import Classification, IngestRequest, IngestResult, ProcessingLogEntry
from gapguard.ratelimit import make_rate_limit_key
from gapguard.utils.logging import log_ingestion_outcome
from gapguard.utils.metrics import record_ingestion

logger = logging.getLogger(__name__)

RATE_LIMIT_BUCKET = "ingest"


class DocumentClassifier(Protocol):
    """Anything that can infer category and dates from document text."""

    async def classify_document(self, *, text: str, file_name: str) -> Classification:
        """Classify extracted text."""
        ...


@contextmanager
def _stage(name: str, document_id: UUID | None = None) -> Iterator[None]:
    """Tag domain errors raised inside the block with stage and document."""
    try:
        yield
    except GapGuardError as e:
        raise e.with_context(stage=name, document_id=document_id)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionPipeline:
    """Orchestrates one upload from URL to searchable chunks."""

    def __init__(
        self,
        *,
        documents: DocumentRepository,
        logs: ProcessingLogRepository,
        extractor: TextExtractor,
        embedder: EmbeddingProvider,
        rate_limiter: RateLimiter,
        classifier: DocumentClassifier | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize pipeline.

        Args:
            documents: Document/chunk repository
            logs: Processing log repository
            extractor: Text extractor (dispatches on MIME type)
            embedder: Embedding provider
            rate_limiter: Per-user ingestion quota
            classifier: Optional category/expiry classifier
            settings: Limits and chunking parameters (default: get_settings())
            clock: Current time source for rate limiting
        """
        self._documents = documents
        self._logs = logs
        self._extractor = extractor
        self._embedder = embedder
        self._rate_limiter = rate_limiter
        self._classifier = classifier
        self._settings = settings or get_settings()
        self._clock = clock

    async def ingest(
        self, ctx: RequestContext, request: IngestRequest, *, request_id: str | None = None
    ) -> IngestResult:
        """Ingest one document.

        Args:
            ctx: Request context of the uploading user
            request: File location and metadata
            request_id: Correlation id (generated if omitted)

        Returns:
            IngestResult with the document id and stored chunk count

        Raises:
            ValidationError: Bad name/URL/type/size (PayloadTooLargeError for size ceilings)
            RateLimitError: User quota exhausted
            ConflictError: Same file name stored with a different MIME type
            SupersededError: A newer upload of the same file took over mid-flight
            NotFoundError: The document was deleted mid-flight
            ExtractionError: File could not be read
            ContentError: Extracted text too short
            ClassificationError: Classifier failed
            EmbeddingError: Embedding backend failed for some chunk
            PersistenceError: Storage write failed
        """
        request_id = request_id or str(uuid4())
        start = time.monotonic()

        try:
            result = await self._run(ctx, request)
        except GapGuardError as e:
            await self._finish(
                ctx,
                request_id,
                start,
                document_id=e.document_id,
                outcome=e.code,
                stage=e.stage,
                error_message=e.message,
            )
            raise
        except Exception as e:
            await self._finish(
                ctx,
                request_id,
                start,
                document_id=None,
                outcome="internal_error",
                error_message=f"{type(e).__name__}: {e}",
            )
            raise

        await self._finish(ctx, request_id, start, document_id=result.document_id, outcome="success")
        return result

    async def _run(self, ctx: RequestContext, request: IngestRequest) -> IngestResult:
        settings = self._settings

        with _stage("validate"):
            self._validate(request)

        with _stage("rate_limit"):
            key = make_rate_limit_key(ctx, RATE_LIMIT_BUCKET)
            retry = await self._rate_limiter.check_quota(key, self._clock())
            if retry is not None:
                raise RateLimitError(
                    f"Ingestion limit of {settings.ingest_max_requests} requests reached",
                    retry_after=retry.seconds,
                )

        with _stage("conflict"):
            existing = await self._documents.get_by_name(ctx, request.file_name)
            if existing is not None and existing.mime_type != request.mime_type:
                raise ConflictError(
                    f"'{request.file_name}' already exists as {existing.mime_type}",
                    document_id=existing.document_id,
                )

        with _stage("persist"):
            document = await self._documents.upsert(ctx, request)
        document_id = document.document_id
        attempt_id = document.attempt_id

        with _stage("extract", document_id):
            text = await self._extractor.extract(request.file_url, request.mime_type)
            if len(text.strip()) < settings.min_text_length:
                raise ContentError("No readable text found in document")

        if self._classifier is not None:
            with _stage("classify", document_id):
                classification = await self._classifier.classify_document(
                    text=text, file_name=request.file_name
                )
            with _stage("persist", document_id):
                await self._documents.set_classification(
                    ctx, document_id, classification, attempt_id=attempt_id
                )

        chunks = chunk_text(
            text,
            chunk_size=settings.chunk_size,
            overlap=settings.chunk_overlap,
            min_chunk_chars=settings.min_chunk_chars,
        )
        if not chunks:
            raise ContentError("Document produced no chunks", stage="chunk", document_id=document_id)

        # Sequential: a failure stops the loop before the status flip
        for chunk_index, piece in chunks:
            with _stage("embed", document_id):
                vector = await self._embedder.embed(piece, EmbeddingMode.INDEX)
            with _stage("persist", document_id):
                await self._documents.add_chunk(
                    ctx, document_id, chunk_index, piece, vector, attempt_id=attempt_id
                )

        with _stage("persist", document_id):
            await self._documents.mark_valid(ctx, document_id, attempt_id=attempt_id)

        logger.info(f"Document {document_id} indexed with {len(chunks)} chunks")
        return IngestResult(document_id=document_id, chunk_count=len(chunks))

    def _validate(self, request: IngestRequest) -> None:
        settings = self._settings

        if not request.file_name.strip():
            raise ValidationError("fileName must not be empty")
        if not request.file_url.strip():
            raise ValidationError("fileUrl must not be empty")
        if request.mime_type not in SUPPORTED_MIME_TYPES:
            raise ValidationError(f"Unsupported file type: {request.mime_type}")

        if request.file_size is None:
            return
        if request.file_size <= 0:
            raise ValidationError("fileSize must be positive")

        if request.mime_type == DOCX_MIME:
            ceiling = settings.max_file_size_docx
        else:
            ceiling = settings.max_file_size_pdf_image
        if request.file_size > ceiling:
            raise PayloadTooLargeError(
                f"File is {request.file_size} bytes; the limit for {request.mime_type} is {ceiling}"
            )

    async def _finish(
        self,
        ctx: RequestContext,
        request_id: str,
        start: float,
        *,
        document_id: UUID | None,
        outcome: str,
        stage: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """Write the processing log row, metrics and structured log line."""
        elapsed_ms = int((time.monotonic() - start) * 1000)

        record_ingestion(outcome)
        log_ingestion_outcome(
            request_id=request_id,
            user_id=ctx.user_id,
            document_id=document_id,
            outcome=outcome,
            processing_time_ms=elapsed_ms,
            stage=stage,
            error_message=error_message,
        )

        entry = ProcessingLogEntry(
            request_id=request_id,
            user_id=ctx.user_id,
            document_id=document_id,
            outcome=outcome,
            error_message=error_message,
            processing_time_ms=elapsed_ms,
        )
        try:
            await self._logs.record(entry)
        except PersistenceError:
            # The ingestion outcome itself must still reach the caller
            logger.exception(f"Failed to write processing log for request {request_id}")
