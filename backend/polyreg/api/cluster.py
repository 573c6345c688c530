"""POST /api/cluster: joint clustering and registration of feature matrices."""

from __future__ import annotations

import asyncio
import json
import math
import time
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from polyreg.config import Settings
from polyreg.dependencies import get_settings
from polyreg.engine.clustering import ClusterResult, summarize
from polyreg.engine.config import SamplerConfig
from polyreg.engine.context import build_context
from polyreg.engine.errors import ConfigurationError
from polyreg.engine.sampler import create_sampler
from polyreg.models.requests import ClusterRequest
from polyreg.models.responses import ClusterResponse

router = APIRouter()


_SENTINEL = object()  # marks end of queue


def _sampler_config(req: ClusterRequest, settings: Settings) -> SamplerConfig:
    if req.n_iter > settings.max_iterations:
        raise ConfigurationError("n_iter", f"exceeds the service limit of {settings.max_iterations}")
    try:
        config = SamplerConfig(
            n_clusters=req.n_clusters,
            n_iter=req.n_iter,
            burn=req.burn,
            weight_lengths=req.weight_lengths,
            weight_angles=req.weight_angles,
            estimate_s=req.estimate_s,
            estimate_r=req.estimate_r,
            seed=req.seed if req.seed is not None else settings.default_seed,
            **req.options,
        )
    except TypeError as e:
        raise ConfigurationError("options", str(e)) from e
    config.validate()
    return config


def _to_response(result: ClusterResult, elapsed_ms: float) -> ClusterResponse:
    return ClusterResponse(
        cluster=result.cluster.tolist(),
        s_map=result.s_map.tolist(),
        r_map=result.r_map.tolist(),
        n_samples=result.n_samples,
        s_trace=result.s_trace.tolist(),
        loglik_trace=[round(v, 6) for v in result.loglik_trace.tolist()],
        mix_weights=result.mix_weights.tolist(),
        degenerate_draws=result.degenerate_draws,
        diagnostics={k: (v if math.isfinite(v) else None) for k, v in result.diagnostics().items()},
        processing_time_ms=round(elapsed_ms, 1),
    )


async def _stream_cluster(req: ClusterRequest, settings: Settings) -> AsyncGenerator[str, None]:
    """Drive sampler.run_streaming() in a thread, yielding SSE events as they arrive."""
    start = time.perf_counter()

    try:
        config = _sampler_config(req, settings)
        ctx = build_context(req.lengths, req.angles)
    except ConfigurationError as e:
        data = json.dumps({"type": "error", "message": str(e), "parameter": e.parameter})
        yield f"event: error\ndata: {data}\n\n"
        return

    sampler = create_sampler(config)
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    every = max(1, config.n_iter // 100)

    def _run_sampler() -> None:
        """Sync sampler in thread; pushes progress dicts (or the failure) onto the async queue."""
        try:
            for progress in sampler.run_streaming(ctx):
                if progress["iteration"] % every == 0 or progress["iteration"] == config.n_iter:
                    loop.call_soon_threadsafe(queue.put_nowait, progress)
        except Exception as e:
            loop.call_soon_threadsafe(queue.put_nowait, e)
        finally:
            loop.call_soon_threadsafe(queue.put_nowait, _SENTINEL)

    # Start the chain in a thread so the event loop stays free to flush SSE
    loop.run_in_executor(None, _run_sampler)

    while True:
        item = await queue.get()
        if item is _SENTINEL:
            break
        if isinstance(item, Exception):
            payload = {"type": "error", "message": str(item)}
            if isinstance(item, ConfigurationError):
                payload["parameter"] = item.parameter
            yield f"event: error\ndata: {json.dumps(payload)}\n\n"
            return
        yield f"event: progress\ndata: {json.dumps(item)}\n\n"

    elapsed = (time.perf_counter() - start) * 1000
    response = _to_response(summarize(ctx), elapsed)
    yield f"event: result\ndata: {json.dumps(response.model_dump())}\n\n"

    yield f"event: done\ndata: {json.dumps({'type': 'done'})}\n\n"


@router.post("/cluster/stream")
async def cluster_stream(req: ClusterRequest, settings: Settings = Depends(get_settings)) -> StreamingResponse:
    return StreamingResponse(
        _stream_cluster(req, settings),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/cluster", response_model=ClusterResponse)
def cluster_shapes(req: ClusterRequest, settings: Settings = Depends(get_settings)) -> ClusterResponse:
    start = time.perf_counter()

    config = _sampler_config(req, settings)
    ctx = build_context(req.lengths, req.angles)

    sampler = create_sampler(config)
    sampler.run(ctx)

    elapsed = (time.perf_counter() - start) * 1000
    return _to_response(summarize(ctx), elapsed)
