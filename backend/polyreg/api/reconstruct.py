"""POST /api/reconstruct: invert feature proportions into closed polygons."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from polyreg.config import Settings
from polyreg.dependencies import get_settings
from polyreg.engine.config import ReconstructionConfig
from polyreg.engine.reconstruct import ReconstructionResult, reconstruct, reconstruct_batch
from polyreg.models.requests import ReconstructBatchRequest, ReconstructRequest
from polyreg.models.responses import ReconstructBatchResponse, ReconstructResponse

router = APIRouter()


def _to_response(result: ReconstructionResult, elapsed_ms: float = 0.0) -> ReconstructResponse:
    return ReconstructResponse(
        status=result.status.value,
        polygons=[p.tolist() for p in result.polygons],
        signs=[list(s) for s in result.signs],
        reason=result.reason,
        nodes_explored=result.nodes_explored,
        nodes_pruned=result.nodes_pruned,
        pruned_distance=result.pruned_distance,
        pruned_turning=result.pruned_turning,
        processing_time_ms=round(elapsed_ms, 1),
    )


def _config(req: ReconstructRequest | ReconstructBatchRequest, settings: Settings) -> ReconstructionConfig:
    return ReconstructionConfig(
        closure_tol=req.closure_tol,
        angle_tol=req.angle_tol,
        feature_tol=req.feature_tol,
        prune_slack=req.prune_slack,
        angle_total=req.angle_total,
        chirality=req.chirality,
        max_vertices=settings.max_reconstruct_vertices,
    )


@router.post("/reconstruct", response_model=ReconstructResponse)
def reconstruct_shape(req: ReconstructRequest, settings: Settings = Depends(get_settings)) -> ReconstructResponse:
    start = time.perf_counter()
    config = _config(req, settings)
    result = reconstruct(req.angles, req.lengths, config)
    return _to_response(result, (time.perf_counter() - start) * 1000)


@router.post("/reconstruct/batch", response_model=ReconstructBatchResponse)
def reconstruct_shapes(
    req: ReconstructBatchRequest,
    settings: Settings = Depends(get_settings),
) -> ReconstructBatchResponse:
    start = time.perf_counter()
    config = _config(req, settings)
    results = reconstruct_batch(req.angles, req.lengths, config)
    return ReconstructBatchResponse(
        results=[_to_response(r) for r in results],
        failed=sum(1 for r in results if not r.ok),
        processing_time_ms=round((time.perf_counter() - start) * 1000, 1),
    )
