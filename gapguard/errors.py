"""Error taxonomy for the document intelligence pipeline.

Every error carries an HTTP-like ``status_code``, a short machine ``code``, and
optionally the pipeline ``stage`` and ``document_id`` it happened in. Lower
layers raise these with ``raise ... from exc`` so the original cause stays on
the chain.
"""

from uuid import UUID


class GapGuardError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        document_id: UUID | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.document_id = document_id

    def with_context(self, *, stage: str | None = None, document_id: UUID | None = None) -> "GapGuardError":
        """Fill in stage/document if not already set and return self."""
        if self.stage is None:
            self.stage = stage
        if self.document_id is None:
            self.document_id = document_id
        return self


class ValidationError(GapGuardError):
    """Bad input shape or size. Never retried."""

    status_code = 400
    code = "invalid_input"


class PayloadTooLargeError(ValidationError):
    """Declared file size exceeds the ceiling for its type."""

    status_code = 413
    code = "file_too_large"


class ConflictError(GapGuardError):
    """Same file name already stored with a different type."""

    status_code = 409
    code = "file_type_conflict"


class RateLimitError(GapGuardError):
    """Per-user request quota exhausted."""

    status_code = 429
    code = "rate_limited"

    def __init__(
        self,
        message: str,
        *,
        retry_after: int,
        stage: str | None = None,
        document_id: UUID | None = None,
    ) -> None:
        super().__init__(message, stage=stage, document_id=document_id)
        self.retry_after = retry_after


class ExtractionError(GapGuardError):
    """Text could not be extracted from the file."""

    status_code = 502
    code = "extraction_failed"


class ContentError(GapGuardError):
    """File was readable but contained no usable text."""

    status_code = 400
    code = "no_readable_text"


class EmbeddingError(GapGuardError):
    """Embedding backend failed or returned malformed output."""

    status_code = 502
    code = "embedding_failed"

    def __init__(
        self,
        message: str,
        *,
        transient: bool = False,
        stage: str | None = None,
        document_id: UUID | None = None,
    ) -> None:
        super().__init__(message, stage=stage, document_id=document_id)
        self.transient = transient


class ClassificationError(GapGuardError):
    """Document classifier failed."""

    status_code = 502
    code = "classification_failed"


class LLMError(GapGuardError):
    """Language model call failed or returned unusable output."""

    status_code = 502
    code = "llm_failed"


class PersistenceError(GapGuardError):
    """Storage layer rejected a read or write."""

    status_code = 500
    code = "persistence_failed"


class NotFoundError(GapGuardError):
    """Entity does not exist or belongs to another user."""

    status_code = 404
    code = "not_found"


class SupersededError(ConflictError):
    """A newer upload of the same file replaced this ingestion mid-flight."""

    code = "upload_superseded"
