"""Liveness and readiness endpoints.

/health never touches a dependency. /healthz probes the database and Redis
concurrently and answers 503 when either is down; it also reports which
embedding and LLM backends the current settings select.
"""

import asyncio
from typing import Any

import redis.asyncio as redis
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from gapguard.config import Settings, get_settings
from gapguard.db.engine import create_async_engine_from_settings

router = APIRouter()


async def check_db(settings: Settings) -> tuple[bool, str]:
    """Run ``SELECT 1`` on a throwaway engine.

    Returns:
        (is_ok, status_message)
    """
    try:
        engine = create_async_engine_from_settings(settings)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        finally:
            await engine.dispose()
    except Exception as e:
        return (False, f"error: {type(e).__name__}")
    return (True, "ok")


async def check_redis(settings: Settings) -> tuple[bool, str]:
    """PING Redis; an unset REDIS_URL is healthy (in-memory limiter).

    Returns:
        (is_ok, status_message)
    """
    if not settings.redis_url:
        return (True, "not_configured")

    try:
        client = redis.from_url(settings.redis_url)
        try:
            await client.ping()
        finally:
            await client.aclose()
    except Exception as e:
        return (False, f"error: {type(e).__name__}")
    return (True, "ok")


def describe_backends(settings: Settings) -> dict[str, str]:
    """Name the embedding and LLM backends the settings select."""
    if settings.embedding_url:
        embeddings = "http"
    elif settings.gemini_api_key and settings.gemini_api_key.get_secret_value():
        embeddings = "gemini"
    else:
        embeddings = "deterministic"

    openai_key = settings.openai_api_key
    llm = "openai" if openai_key and openai_key.get_secret_value() else "stub"
    return {"embeddings": embeddings, "llm": llm}


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe; 200 whenever the process is serving."""
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz() -> dict[str, Any] | JSONResponse:
    """Readiness probe.

    Returns:
        200 with component status when DB and Redis are reachable,
        503 with the same body otherwise
    """
    settings = get_settings()

    (db_ok, db_status), (redis_ok, redis_status) = await asyncio.gather(
        check_db(settings), check_redis(settings)
    )

    body: dict[str, Any] = {
        "status": "ok" if db_ok and redis_ok else "degraded",
        "components": {"db": db_status, "redis": redis_status},
        "backends": describe_backends(settings),
    }

    if body["status"] != "ok":
        return JSONResponse(content=body, status_code=503)
    return body
