"""Structured logging for embedding attempts and ingestion outcomes."""

import logging
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)


class StructuredAttemptLogger:
    """Structured logger for embedding backend attempts."""

    def log_attempt(
        self,
        provider: str,
        mode: str,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log embedding attempt with structured data."""
        log_data: dict[str, Any] = {
            "provider": provider,
            "mode": mode,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Embedding attempt: {provider} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})


def log_ingestion_outcome(
    *,
    request_id: str,
    user_id: str,
    document_id: UUID | None,
    outcome: str,
    processing_time_ms: int,
    stage: str | None = None,
    error_message: str | None = None,
) -> None:
    """Log the final outcome of one ingestion attempt."""
    log_data: dict[str, Any] = {
        "request_id": request_id,
        "user_id": user_id,
        "document_id": str(document_id) if document_id else None,
        "outcome": outcome,
        "processing_time_ms": processing_time_ms,
    }
    if stage:
        log_data["stage"] = stage
    if error_message:
        log_data["error_message"] = error_message

    if outcome == "success":
        logger.info(f"Ingestion succeeded: {document_id}", extra={"structured": log_data})
    else:
        logger.error(f"Ingestion failed at {stage}: {outcome}", extra={"structured": log_data})
