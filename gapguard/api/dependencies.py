"""FastAPI dependency wiring for repositories and services."""

from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gapguard.chat.responder import ChatResponder
from gapguard.config import Settings, get_settings
from gapguard.db.engine import get_session
from gapguard.db.inmemory import InMemoryRateLimiter
from gapguard.db.repositories import RateLimiter
from gapguard.db.sql_repositories import (
    SqlChatRepository,
    SqlDocumentRepository,
    SqlGapRepository,
    SqlProcessingLogRepository,
    SqlRuleRepository,
)
from gapguard.docs.extract import TextExtractor, get_text_extractor
from gapguard.docs.ingest import IngestionPipeline
from gapguard.embeddings.provider import EmbeddingProvider, get_embedding_provider
from gapguard.gaps.engine import GapEngine
from gapguard.llm.client import LLMClient, get_llm_client
from gapguard.ratelimit import RedisRateLimiter
from gapguard.utils.logging import StructuredAttemptLogger
from gapguard.utils.metrics import PrometheusEmbeddingMetrics

SettingsDep = Annotated[Settings, Depends(get_settings)]
SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_rate_limiter(request: Request, settings: SettingsDep) -> RateLimiter:
    """Process-wide ingestion limiter, created on first use.

    Redis-backed when REDIS_URL is set, in-memory otherwise.
    """
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        if settings.redis_url:
            limiter = RedisRateLimiter(
                redis.from_url(settings.redis_url),
                max_requests=settings.ingest_max_requests,
                window_seconds=settings.ingest_window_seconds,
            )
        else:
            limiter = InMemoryRateLimiter(
                max_requests=settings.ingest_max_requests,
                window_seconds=settings.ingest_window_seconds,
            )
        request.app.state.rate_limiter = limiter
    return limiter


def get_embedder(settings: SettingsDep) -> EmbeddingProvider:
    """Embedding provider with Prometheus metrics and structured attempt logs."""
    return get_embedding_provider(
        settings,
        metrics=PrometheusEmbeddingMetrics(),
        attempt_logger=StructuredAttemptLogger(),
    )


def get_llm(settings: SettingsDep) -> LLMClient:
    """LLM client (OpenAI or deterministic stub)."""
    return get_llm_client(settings)


def get_extractor(settings: SettingsDep) -> TextExtractor:
    """MIME-dispatching text extractor."""
    return get_text_extractor(settings)


def get_document_repository(session: SessionDep) -> SqlDocumentRepository:
    return SqlDocumentRepository(session)


def get_rule_repository(session: SessionDep) -> SqlRuleRepository:
    return SqlRuleRepository(session)


def get_gap_repository(session: SessionDep) -> SqlGapRepository:
    return SqlGapRepository(session)


def get_chat_repository(session: SessionDep) -> SqlChatRepository:
    return SqlChatRepository(session)


def get_ingestion_pipeline(
    session: SessionDep,
    settings: SettingsDep,
    rate_limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    extractor: Annotated[TextExtractor, Depends(get_extractor)],
    embedder: Annotated[EmbeddingProvider, Depends(get_embedder)],
    llm: Annotated[LLMClient, Depends(get_llm)],
) -> IngestionPipeline:
    """Ingestion pipeline bound to the request's session."""
    return IngestionPipeline(
        documents=SqlDocumentRepository(session),
        logs=SqlProcessingLogRepository(session),
        extractor=extractor,
        embedder=embedder,
        rate_limiter=rate_limiter,
        classifier=llm,
        settings=settings,
    )


def get_gap_engine(session: SessionDep, settings: SettingsDep) -> GapEngine:
    """Gap engine bound to the request's session."""
    return GapEngine(
        documents=SqlDocumentRepository(session),
        rules=SqlRuleRepository(session),
        gaps=SqlGapRepository(session),
        expiring_soon_days=settings.expiring_soon_days,
    )


def get_chat_responder(
    session: SessionDep,
    settings: SettingsDep,
    embedder: Annotated[EmbeddingProvider, Depends(get_embedder)],
    llm: Annotated[LLMClient, Depends(get_llm)],
) -> ChatResponder:
    """Chat responder bound to the request's session."""
    return ChatResponder(
        documents=SqlDocumentRepository(session),
        chats=SqlChatRepository(session),
        embedder=embedder,
        llm=llm,
        top_k=settings.retrieval_top_k,
        min_similarity=settings.retrieval_min_similarity,
    )
