"""Shared pytest fixtures for all test suites."""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from gapguard.config import Settings
from gapguard.db.context import RequestContext
from gapguard.db.models import Base
from gapguard.embeddings.provider import DeterministicEmbeddingProvider, EmbeddingMode
from gapguard.errors import EmbeddingError, ExtractionError


class StaticTextExtractor:
    """Extractor double returning fixed text (or raising) and recording calls."""

    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def extract(self, file_url: str, mime_type: str) -> str:
        self.calls.append((file_url, mime_type))
        if self.error is not None:
            raise self.error
        return self.text


class CountingEmbedder:
    """Deterministic embedder that counts calls and can fail on the Nth one."""

    def __init__(self, dimension: int = 64, fail_on_call: int | None = None) -> None:
        self.dimension = dimension
        self.fail_on_call = fail_on_call
        self.calls: list[tuple[str, EmbeddingMode]] = []
        self._inner = DeterministicEmbeddingProvider(dimension)

    async def embed(self, text: str, mode: EmbeddingMode) -> list[float]:
        self.calls.append((text, mode))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise EmbeddingError("backend unavailable", transient=True)
        return await self._inner.embed(text, mode)


@pytest.fixture
def ctx() -> RequestContext:
    """Request context for the primary test user."""
    return RequestContext(user_id="user_alice")


@pytest.fixture
def other_ctx() -> RequestContext:
    """Request context for a second, unrelated user."""
    return RequestContext(user_id="user_bob")


@pytest.fixture
def test_settings() -> Settings:
    """Settings with the documented defaults and no external backends."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url=None,
        openai_api_key=None,
        gemini_api_key=None,
        embedding_url="",
        chunk_size=1000,
        chunk_overlap=100,
        min_chunk_chars=20,
        min_text_length=10,
        ingest_max_requests=100,
        ingest_window_seconds=86400,
        retrieval_top_k=5,
        retrieval_min_similarity=0.5,
    )


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory sqlite engine with all tables created.

    StaticPool keeps a single connection so every session sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def sqlite_session(sqlite_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Async session on the in-memory sqlite engine."""
    async with AsyncSession(sqlite_engine, expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def make_extractor() -> type[StaticTextExtractor]:
    """Factory for extractor doubles: ``make_extractor(text)`` or ``make_extractor(error=...)``."""
    return StaticTextExtractor


@pytest.fixture
def make_embedder() -> type[CountingEmbedder]:
    """Factory for counting embedders: ``make_embedder(fail_on_call=3)``."""
    return CountingEmbedder


@pytest.fixture
def extraction_error() -> ExtractionError:
    """A representative extraction failure."""
    return ExtractionError("Failed to fetch file: HTTP 404")
