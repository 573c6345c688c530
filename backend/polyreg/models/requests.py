"""API request models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ClusterRequest(BaseModel):
    lengths: list[list[float]] = Field(..., description="m x k side-length proportions")
    angles: list[list[float]] = Field(..., description="m x k vertex-angle proportions")
    n_clusters: int = Field(..., description="Number of clusters K")
    weight_lengths: float = Field(default=1.0, description="Weight of the length channel")
    weight_angles: float = Field(default=1.0, description="Weight of the angle channel")
    estimate_s: bool = Field(default=True, description="Infer cyclic starting offsets")
    estimate_r: bool = Field(default=True, description="Infer traversal direction")
    n_iter: int = Field(default=1000, description="Total iterations")
    burn: int = Field(default=500, description="Burn-in iterations discarded")
    seed: int | None = Field(default=None, description="Random seed")
    options: dict[str, float | int | bool | str] = Field(
        default_factory=dict,
        description="Extra sampler options (e.g. init='kmeans', estimate_dispersion=True)",
    )


class ReconstructRequest(BaseModel):
    angles: list[float] = Field(..., description="k vertex-angle proportions")
    lengths: list[float] = Field(..., description="k side-length proportions")
    angle_total: float | None = Field(default=None, description="Angle scale; default (k-2)*pi")
    closure_tol: float = Field(default=1e-6, description="Closure tolerance at unit perimeter")
    angle_tol: float = Field(default=1e-6, description="Turning-sum tolerance in radians")
    feature_tol: float = Field(default=1e-5, description="Allowed deviation of re-extracted proportions")
    prune_slack: float = Field(default=1e-9, description="Extra slack on both prune bounds")
    chirality: str = Field(default="ccw", description="'ccw' or 'both'")


class ReconstructBatchRequest(BaseModel):
    angles: list[list[float]] = Field(..., description="m x k vertex-angle proportions")
    lengths: list[list[float]] = Field(..., description="m x k side-length proportions")
    angle_total: float | None = Field(default=None)
    closure_tol: float = Field(default=1e-6)
    angle_tol: float = Field(default=1e-6)
    feature_tol: float = Field(default=1e-5)
    prune_slack: float = Field(default=1e-9)
    chirality: str = Field(default="ccw")
