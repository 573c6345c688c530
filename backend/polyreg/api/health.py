"""Health check + meta endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from polyreg.engine.registry import get_registry
from polyreg.models.responses import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(steps_registered=get_registry().count)
