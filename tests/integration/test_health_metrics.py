"""Integration tests for /health, /healthz and /metrics."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from gapguard.api.routes.health import check_db, check_redis, describe_backends
from gapguard.config import Settings
from gapguard.main import app


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(app)


class TestHealthEndpoint:
    """Test /health and /healthz endpoints."""

    def test_health_is_always_ok(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @patch("gapguard.api.routes.health.check_db", new_callable=AsyncMock)
    @patch("gapguard.api.routes.health.check_redis", new_callable=AsyncMock)
    def test_healthz_returns_200_when_all_ok(
        self, mock_check_redis: AsyncMock, mock_check_db: AsyncMock, client: TestClient
    ) -> None:
        mock_check_db.return_value = (True, "ok")
        mock_check_redis.return_value = (True, "not_configured")

        response = client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["components"] == {"db": "ok", "redis": "not_configured"}
        assert set(data["backends"]) == {"embeddings", "llm"}

    @patch("gapguard.api.routes.health.check_db", new_callable=AsyncMock)
    @patch("gapguard.api.routes.health.check_redis", new_callable=AsyncMock)
    def test_healthz_returns_503_when_db_fails(
        self, mock_check_redis: AsyncMock, mock_check_db: AsyncMock, client: TestClient
    ) -> None:
        mock_check_db.return_value = (False, "error: OperationalError")
        mock_check_redis.return_value = (True, "ok")

        response = client.get("/healthz")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["components"]["db"] == "error: OperationalError"

    @patch("gapguard.api.routes.health.check_db", new_callable=AsyncMock)
    @patch("gapguard.api.routes.health.check_redis", new_callable=AsyncMock)
    def test_healthz_returns_503_when_redis_fails(
        self, mock_check_redis: AsyncMock, mock_check_db: AsyncMock, client: TestClient
    ) -> None:
        mock_check_db.return_value = (True, "ok")
        mock_check_redis.return_value = (False, "error: ConnectionError")

        response = client.get("/healthz")

        assert response.status_code == 503
        assert response.json()["components"]["redis"] == "error: ConnectionError"


class TestComponentChecks:
    """Test the individual connectivity checks."""

    @pytest.mark.asyncio
    async def test_check_db_on_sqlite(self) -> None:
        assert await check_db(Settings(database_url="sqlite+aiosqlite:///:memory:")) == (True, "ok")

    @pytest.mark.asyncio
    async def test_check_db_reports_missing_url(self) -> None:
        ok, status = await check_db(Settings(database_url=None))

        assert ok is False
        assert status == "error: ValueError"

    @pytest.mark.asyncio
    async def test_check_redis_skips_when_unconfigured(self) -> None:
        assert await check_redis(Settings(redis_url=None)) == (True, "not_configured")


class TestMetricsEndpoint:
    """Test /metrics endpoint."""

    def test_metrics_exposes_prometheus_text(self, client: TestClient) -> None:
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "ingestions_total" in response.text
        assert "embedding_latency_ms" in response.text
        assert "chat_answers_total" in response.text


def test_root_endpoint(client: TestClient) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["message"] == "GapGuard API"


@pytest.mark.parametrize(
    ("overrides", "expected"),
    [
        ({}, {"embeddings": "deterministic", "llm": "stub"}),
        ({"gemini_api_key": "g"}, {"embeddings": "gemini", "llm": "stub"}),
        (
            {"embedding_url": "https://embed.internal", "gemini_api_key": "g", "openai_api_key": "sk"},
            {"embeddings": "http", "llm": "openai"},
        ),
    ],
)
def test_describe_backends(overrides: dict, expected: dict) -> None:
    base: dict = {"embedding_url": "", "gemini_api_key": None, "openai_api_key": None}
    base.update(overrides)

    assert describe_backends(Settings(**base)) == expected
