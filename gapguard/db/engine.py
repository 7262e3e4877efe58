"""Database engine and session factory."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

from gapguard.config import Settings, get_settings

# (sync scheme, async scheme) pairs; the app runs async, Alembic runs sync
_DRIVER_SCHEMES = [
    ("postgresql://", "postgresql+asyncpg://"),
    ("sqlite://", "sqlite+aiosqlite://"),
]


def async_database_url(url: str) -> str:
    """Rewrite a plain postgres/sqlite URL to its async driver."""
    for sync_scheme, async_scheme in _DRIVER_SCHEMES:
        if url.startswith(sync_scheme):
            return async_scheme + url[len(sync_scheme):]
    return url


def sync_database_url(url: str) -> str:
    """Rewrite an async-driver URL to the default sync driver (for Alembic)."""
    for sync_scheme, async_scheme in _DRIVER_SCHEMES:
        if url.startswith(async_scheme):
            return sync_scheme + url[len(async_scheme):]
    return url


def create_async_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create async SQLAlchemy engine from settings.

    Raises:
        ValueError: If DATABASE_URL is unset or empty.
    """
    if not settings.database_url:
        raise ValueError(
            "DATABASE_URL must be set to a valid connection string. "
            "Please configure the database_url setting."
        )

    return create_async_engine(async_database_url(settings.database_url), pool_pre_ping=True, echo=False)


_async_engine: AsyncEngine | None = None


def get_async_engine() -> AsyncEngine:
    """Get the process-wide async engine, creating it on first use."""
    global _async_engine
    if _async_engine is None:
        _async_engine = create_async_engine_from_settings(get_settings())
    return _async_engine


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for async database session.

    Repositories read ORM attributes after committing, so objects are not
    expired on commit.

    Yields:
        AsyncSession instance
    """
    async with AsyncSession(get_async_engine(), expire_on_commit=False) as session:
        yield session
