"""API response models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    steps_registered: int = 0


class ClusterResponse(BaseModel):
    cluster: list[int]
    s_map: list[int]
    r_map: list[int]
    n_samples: int
    s_trace: list[list[int]] = Field(default_factory=list)
    loglik_trace: list[float] = Field(default_factory=list)
    mix_weights: list[float] = Field(default_factory=list)
    degenerate_draws: int = 0
    # ESS and R-hat of the loglik trace; None where undefined (e.g. a constant trace)
    diagnostics: dict[str, float | None] = Field(default_factory=dict)
    processing_time_ms: float = 0.0


class ReconstructResponse(BaseModel):
    status: str
    polygons: list[list[list[float]]] = Field(default_factory=list)
    signs: list[list[int]] = Field(default_factory=list)
    reason: str = ""
    nodes_explored: int = 0
    nodes_pruned: int = 0
    pruned_distance: int = 0
    pruned_turning: int = 0
    processing_time_ms: float = 0.0


class ReconstructBatchResponse(BaseModel):
    results: list[ReconstructResponse]
    failed: int = 0
    processing_time_ms: float = 0.0
