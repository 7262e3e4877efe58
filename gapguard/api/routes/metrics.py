"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - embedding_latency_ms{provider, outcome}
    - embedding_errors_total{provider, reason}
    - ingestions_total{outcome}
    - chat_answers_total{grounded}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
