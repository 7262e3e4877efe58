"""Gap endpoints - POST /gaps/compute, GET /gaps."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from gapguard.api.auth import get_current_context
from gapguard.api.dependencies import get_gap_engine, get_gap_repository
from gapguard.db.context import RequestContext
from gapguard.db.sql_repositories import SqlGapRepository
from gapguard.gaps.engine import GapEngine
from gapguard.models.gaps import Gap

router = APIRouter(prefix="/gaps", tags=["gaps"])


class GapListResponse(BaseModel):
    """Response for gap endpoints."""

    gaps: list[Gap]


@router.post("/compute", response_model=GapListResponse)
async def compute_gaps(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    engine: Annotated[GapEngine, Depends(get_gap_engine)],
) -> GapListResponse:
    """Recompute the caller's gaps from active rules and current documents."""
    return GapListResponse(gaps=await engine.compute_gaps(ctx))


@router.get("", response_model=GapListResponse)
async def list_gaps(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    gaps: Annotated[SqlGapRepository, Depends(get_gap_repository)],
) -> GapListResponse:
    """List the caller's stored gaps."""
    return GapListResponse(gaps=await gaps.list_gaps(ctx))
