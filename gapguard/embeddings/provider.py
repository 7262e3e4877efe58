"""Embedding providers: HTTP contract backend, Gemini backend, offline stub."""

import hashlib
import logging
import math
import re
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol

import httpx

from gapguard.config import Settings
from gapguard.embeddings.retry import AttemptLogger, AttemptMetrics, RetryPolicy, call_with_retry
from gapguard.errors import EmbeddingError

logger = logging.getLogger(__name__)

# HTTP statuses worth another attempt
_TRANSIENT_STATUSES = {408, 429}


class EmbeddingMode(str, Enum):
    """What the vector is for; some backends optimize differently per mode."""

    INDEX = "INDEX"
    QUERY = "QUERY"


class EmbeddingProvider(Protocol):
    """Protocol for embedding provider implementations."""

    dimension: int

    async def embed(self, text: str, mode: EmbeddingMode) -> list[float]:
        """Embed text into a ``dimension``-length vector.

        Raises:
            EmbeddingError: Empty input, unreachable backend or malformed output
        """
        ...


def validate_vector(raw: Any, dimension: int, source: str) -> list[float]:
    """Check a backend vector is a list of ``dimension`` numbers."""
    if not isinstance(raw, list) or not raw:
        raise EmbeddingError(f"{source} response is missing the vector")
    if len(raw) != dimension:
        raise EmbeddingError(f"{source} returned {len(raw)} dimensions, expected {dimension}")
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in raw):
        raise EmbeddingError(f"{source} vector contains non-numeric values")
    return [float(v) for v in raw]


def _require_text(text: str) -> None:
    if not text or not text.strip():
        raise EmbeddingError("Cannot embed empty text")


class RemoteEmbeddingProvider:
    """Shared request/retry plumbing for HTTP embedding backends."""

    name = "remote"

    def __init__(
        self,
        *,
        dimension: int,
        policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        metrics: AttemptMetrics | None = None,
        attempt_logger: AttemptLogger | None = None,
    ) -> None:
        """Initialize provider.

        Args:
            dimension: Expected vector length
            policy: Retry/timeout policy (defaults to RetryPolicy())
            client: Optional httpx client (for testing with mocks)
            sleep_fn: Injectable sleep between retries
            metrics: Attempt metrics recorder
            attempt_logger: Structured attempt logger
        """
        self.dimension = dimension
        self._policy = policy or RetryPolicy()
        self._client = client
        self._sleep = sleep_fn
        self._metrics = metrics
        self._attempt_logger = attempt_logger

    def _build_request(self, text: str, mode: EmbeddingMode) -> tuple[str, dict[str, Any]]:
        """Return (url, json_body) for one call."""
        raise NotImplementedError

    def _extract_vector(self, data: Any) -> Any:
        """Pull the raw vector out of the decoded response body."""
        raise NotImplementedError

    async def embed(self, text: str, mode: EmbeddingMode) -> list[float]:
        """Embed text with bounded retry on transient failures."""
        _require_text(text)
        url, body = self._build_request(text, mode)

        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient()
            close_client = True

        async def attempt() -> list[float]:
            return await self._post_once(client, url, body)

        try:
            return await call_with_retry(
                attempt,
                self._policy,
                provider=self.name,
                mode=mode.value,
                sleep_fn=self._sleep,
                metrics=self._metrics,
                logger=self._attempt_logger,
            )
        finally:
            if close_client:
                await client.aclose()

    async def _post_once(self, client: httpx.AsyncClient, url: str, body: dict[str, Any]) -> list[float]:
        try:
            response = await client.post(url, json=body)
        except httpx.TimeoutException as e:
            raise EmbeddingError(f"{self.name} request timed out", transient=True) from e
        except httpx.TransportError as e:
            raise EmbeddingError(f"{self.name} unreachable: {type(e).__name__}", transient=True) from e

        if response.status_code >= 300:
            transient = response.status_code in _TRANSIENT_STATUSES or response.status_code >= 500
            raise EmbeddingError(
                f"{self.name} returned HTTP {response.status_code}: {response.text[:200]}",
                transient=transient,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise EmbeddingError(f"{self.name} returned non-JSON body") from e

        return validate_vector(self._extract_vector(data), self.dimension, self.name)


class HttpEmbeddingProvider(RemoteEmbeddingProvider):
    """Generic backend: POST {text, taskType} -> {vector}."""

    name = "http_embedding"

    def __init__(self, url: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._url = url

    def _build_request(self, text: str, mode: EmbeddingMode) -> tuple[str, dict[str, Any]]:
        return self._url, {"text": text, "taskType": mode.value}

    def _extract_vector(self, data: Any) -> Any:
        return data.get("vector") if isinstance(data, dict) else None


class GeminiEmbeddingProvider(RemoteEmbeddingProvider):
    """Google Gemini ``embedContent`` backend."""

    name = "gemini_embedding"
    base_url = "https://generativelanguage.googleapis.com/v1beta/models"

    _TASK_TYPES = {
        EmbeddingMode.INDEX: "RETRIEVAL_DOCUMENT",
        EmbeddingMode.QUERY: "RETRIEVAL_QUERY",
    }

    def __init__(self, api_key: str, *, model: str = "text-embedding-004", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._api_key = api_key
        self._model = model

    def _build_request(self, text: str, mode: EmbeddingMode) -> tuple[str, dict[str, Any]]:
        url = f"{self.base_url}/{self._model}:embedContent?key={self._api_key}"
        body = {
            "model": f"models/{self._model}",
            "content": {"parts": [{"text": text}]},
            "taskType": self._TASK_TYPES[mode],
        }
        return url, body

    def _extract_vector(self, data: Any) -> Any:
        if not isinstance(data, dict):
            return None
        embedding = data.get("embedding")
        return embedding.get("values") if isinstance(embedding, dict) else None


class DeterministicEmbeddingProvider:
    """Deterministic hashing embedder for tests and keyless development.

    Each lowercase word token is hashed into one signed bucket; the result is
    L2-normalized, so identical texts always produce identical vectors and
    texts sharing vocabulary score high under cosine similarity.
    """

    name = "deterministic"

    def __init__(self, dimension: int = 768) -> None:
        self.dimension = dimension

    async def embed(self, text: str, mode: EmbeddingMode) -> list[float]:
        """Embed text without any network access."""
        _require_text(text)

        vector = [0.0] * self.dimension
        for token in re.findall(r"\w+", text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            vector[bucket] += 1.0 if digest[4] % 2 == 0 else -1.0

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]


def get_embedding_provider(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    metrics: AttemptMetrics | None = None,
    attempt_logger: AttemptLogger | None = None,
) -> EmbeddingProvider:
    """Factory function to get appropriate embedding provider based on config.

    Returns:
        HttpEmbeddingProvider if an embedding URL is configured, otherwise
        GeminiEmbeddingProvider if a Gemini key is configured, otherwise
        DeterministicEmbeddingProvider
    """
    policy = RetryPolicy.from_settings(settings)
    common: dict[str, Any] = {
        "dimension": settings.embedding_dim,
        "policy": policy,
        "client": client,
        "metrics": metrics,
        "attempt_logger": attempt_logger,
    }

    if settings.embedding_url:
        logger.info("Using HTTP embedding backend")
        return HttpEmbeddingProvider(settings.embedding_url, **common)

    gemini_key = settings.gemini_api_key
    if gemini_key and gemini_key.get_secret_value():
        logger.info("Using Gemini embedding backend")
        return GeminiEmbeddingProvider(
            gemini_key.get_secret_value(), model=settings.gemini_embedding_model, **common
        )

    logger.warning("No embedding backend configured, using deterministic stub embeddings")
    return DeterministicEmbeddingProvider(settings.embedding_dim)
