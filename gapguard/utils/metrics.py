"""Prometheus metrics for embedding calls, ingestion and chat."""

from prometheus_client import Counter, Histogram

# Embedding backend metrics
embedding_latency_ms = Histogram(
    "embedding_latency_ms",
    "Embedding attempt latency in milliseconds",
    ["provider", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000, 16000],
)

embedding_errors_total = Counter(
    "embedding_errors_total",
    "Total embedding attempt errors",
    ["provider", "reason"],
)

# Pipeline metrics
ingestions_total = Counter(
    "ingestions_total",
    "Ingestion attempts by outcome",
    ["outcome"],
)

chat_answers_total = Counter(
    "chat_answers_total",
    "Chat answers by grounding",
    ["grounded"],
)


class PrometheusEmbeddingMetrics:
    """Prometheus-based embedding attempt metrics implementation."""

    def record_latency(self, provider: str, outcome: str, latency_ms: float) -> None:
        """Record attempt latency."""
        embedding_latency_ms.labels(provider=provider, outcome=outcome).observe(latency_ms)

    def inc_error(self, provider: str, reason: str) -> None:
        """Increment error counter."""
        embedding_errors_total.labels(provider=provider, reason=reason).inc()


def record_ingestion(outcome: str) -> None:
    """Count one ingestion attempt."""
    ingestions_total.labels(outcome=outcome).inc()


def record_chat_answer(grounded: bool) -> None:
    """Count one chat answer."""
    chat_answers_total.labels(grounded="true" if grounded else "false").inc()
