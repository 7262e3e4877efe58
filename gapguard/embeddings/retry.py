"""Bounded retry with per-attempt timeout for embedding backend calls.

Implements:
- Hard timeout per attempt (a timeout counts as a transient failure)
- Exponential backoff with jitter between attempts
- Retries only for transient EmbeddingErrors; anything else propagates at once
- Metrics and structured logging per attempt
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from gapguard.config import Settings
from gapguard.errors import EmbeddingError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for a backend call."""

    max_attempts: int = 3
    timeout_ms: int = 10000
    backoff_base_ms: int = 1000
    backoff_max_ms: int = 8000
    jitter_min_ms: int = 0
    jitter_max_ms: int = 250

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        """Build policy from application settings."""
        return cls(
            max_attempts=settings.embedding_max_attempts,
            timeout_ms=settings.embedding_timeout_ms,
            backoff_base_ms=settings.embedding_backoff_base_ms,
            backoff_max_ms=settings.embedding_backoff_max_ms,
            jitter_min_ms=settings.retry_jitter_min_ms,
            jitter_max_ms=settings.retry_jitter_max_ms,
        )

    def backoff_seconds(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        base_ms = min(self.backoff_base_ms * 2 ** (attempt - 1), self.backoff_max_ms)
        jitter_ms = random.uniform(self.jitter_min_ms, self.jitter_max_ms)
        return (base_ms + jitter_ms) / 1000


class AttemptMetrics:
    """Interface for per-attempt metrics (no-op default)."""

    def record_latency(self, provider: str, outcome: str, latency_ms: float) -> None:
        """Record attempt latency."""
        pass

    def inc_error(self, provider: str, reason: str) -> None:
        """Increment error counter."""
        pass


class AttemptLogger:
    """Interface for structured attempt logging (no-op default)."""

    def log_attempt(
        self,
        provider: str,
        mode: str,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log one attempt."""
        pass


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    provider: str,
    mode: str,
    sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    metrics: AttemptMetrics | None = None,
    logger: AttemptLogger | None = None,
) -> T:
    """Run ``fn`` under the retry policy.

    Args:
        fn: Zero-argument coroutine factory performing one attempt
        policy: Retry configuration
        provider: Backend name for metrics/logs
        mode: Embedding mode for metrics/logs
        sleep_fn: Injectable sleep function (default: asyncio.sleep)
        metrics: Metrics recorder (optional, defaults to no-op)
        logger: Structured logger (optional, defaults to no-op)

    Returns:
        Result of the first successful attempt

    Raises:
        EmbeddingError: Non-transient failure, or transient failures on every attempt
    """
    sleep = sleep_fn or asyncio.sleep
    metrics = metrics or AttemptMetrics()
    logger = logger or AttemptLogger()

    last_error: EmbeddingError | None = None
    attempts = max(1, policy.max_attempts)

    for attempt in range(1, attempts + 1):
        attempt_start = time.monotonic()

        try:
            result = await asyncio.wait_for(fn(), timeout=policy.timeout_ms / 1000)

            elapsed_ms = (time.monotonic() - attempt_start) * 1000
            metrics.record_latency(provider, "success", elapsed_ms)
            logger.log_attempt(provider, mode, attempt, "success", elapsed_ms)
            return result

        except TimeoutError as e:
            elapsed_ms = (time.monotonic() - attempt_start) * 1000
            metrics.inc_error(provider, "timeout")
            logger.log_attempt(provider, mode, attempt, "timeout", elapsed_ms, error_reason="timeout")
            last_error = EmbeddingError(
                f"{provider} timed out after {policy.timeout_ms}ms", transient=True
            )
            last_error.__cause__ = e

        except EmbeddingError as e:
            elapsed_ms = (time.monotonic() - attempt_start) * 1000
            reason = "transient" if e.transient else "fatal"
            metrics.inc_error(provider, reason)
            logger.log_attempt(provider, mode, attempt, "error", elapsed_ms, error_reason=e.message)
            if not e.transient:
                raise
            last_error = e

        if attempt < attempts:
            await sleep(policy.backoff_seconds(attempt))

    assert last_error is not None
    raise EmbeddingError(
        f"{provider} failed after {attempts} attempts: {last_error.message}",
        transient=True,
    ) from last_error
