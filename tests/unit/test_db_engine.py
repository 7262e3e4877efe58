"""Unit tests for database URL handling."""

import pytest

from gapguard.config import Settings
from gapguard.db.engine import async_database_url, create_async_engine_from_settings, sync_database_url


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("postgresql://u:p@db:5432/gapguard", "postgresql+asyncpg://u:p@db:5432/gapguard"),
        ("postgresql+asyncpg://u:p@db/gapguard", "postgresql+asyncpg://u:p@db/gapguard"),
        ("sqlite:///./local.db", "sqlite+aiosqlite:///./local.db"),
        ("sqlite+aiosqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
    ],
)
def test_async_database_url(url: str, expected: str) -> None:
    assert async_database_url(url) == expected


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("postgresql+asyncpg://u:p@db/gapguard", "postgresql://u:p@db/gapguard"),
        ("sqlite+aiosqlite:///./local.db", "sqlite:///./local.db"),
        ("postgresql://u:p@db/gapguard", "postgresql://u:p@db/gapguard"),
    ],
)
def test_sync_database_url(url: str, expected: str) -> None:
    assert sync_database_url(url) == expected


def test_engine_requires_database_url() -> None:
    with pytest.raises(ValueError, match="DATABASE_URL"):
        create_async_engine_from_settings(Settings(database_url=""))


def test_engine_uses_async_driver() -> None:
    engine = create_async_engine_from_settings(Settings(database_url="sqlite:///:memory:"))

    assert engine.url.drivername == "sqlite+aiosqlite"
