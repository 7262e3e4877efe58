"""FastAPI application."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gapguard.api.routes.chat import router as chat_router
from gapguard.api.routes.documents import router as documents_router
from gapguard.api.routes.gaps import router as gaps_router
from gapguard.api.routes.health import router as health_router
from gapguard.api.routes.metrics import router as metrics_router
from gapguard.api.routes.rules import router as rules_router
from gapguard.errors import GapGuardError, RateLimitError

logger = logging.getLogger(__name__)

app = FastAPI(title="GapGuard API", version="0.1.0")

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(documents_router, tags=["documents"])
app.include_router(gaps_router, tags=["gaps"])
app.include_router(chat_router, tags=["chat"])
app.include_router(rules_router, tags=["rules"])


@app.exception_handler(GapGuardError)
async def gapguard_error_handler(request: Request, exc: GapGuardError) -> JSONResponse:
    """Render domain errors as ``{error, code, stage, documentId}``."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{request.method} {request.url.path} failed: {exc.code}",
        extra={
            "structured": {
                "code": exc.code,
                "stage": exc.stage,
                "document_id": str(exc.document_id) if exc.document_id else None,
                "status_code": exc.status_code,
            }
        },
    )

    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "code": exc.code,
            "stage": exc.stage,
            "documentId": str(exc.document_id) if exc.document_id else None,
        },
        headers=headers,
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "GapGuard API", "version": "0.1.0"}
