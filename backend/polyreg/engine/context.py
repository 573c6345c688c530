"""SamplerContext: the single mutable state object owned by one clustering run.

Per-shape state → labels / shifts / reflections arrays (index = row of L, A)
Per-cluster state → templates / mix_weights
Retained draws → trace
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

import numpy as np
from numpy.typing import NDArray

from polyreg.engine.errors import ConfigurationError
from polyreg.engine.registration import orbit_matrix
from polyreg.engine.templates import ClusterTemplate, TemplatePrior

if TYPE_CHECKING:
    from polyreg.engine.config import SamplerConfig


@dataclass
class SamplerTrace:
    """Draws recorded after burn-in, one entry per retained iteration."""

    iterations: list[int] = field(default_factory=list)
    labels: list[NDArray[np.int64]] = field(default_factory=list)
    shifts: list[NDArray[np.int64]] = field(default_factory=list)
    reflections: list[NDArray[np.int64]] = field(default_factory=list)
    loglik: list[float] = field(default_factory=list)
    templates: list[list[ClusterTemplate]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.iterations)

    def label_matrix(self) -> NDArray[np.int64]:
        return np.array(self.labels, dtype=np.int64)

    def shift_matrix(self) -> NDArray[np.int64]:
        return np.array(self.shifts, dtype=np.int64)

    def reflection_matrix(self) -> NDArray[np.int64]:
        return np.array(self.reflections, dtype=np.int64)


@dataclass
class SamplerContext:
    """Data plus chain state for a single sampler invocation."""

    # Feature matrices: m x k
    lengths: NDArray[np.float64]
    angles: NDArray[np.float64]
    # All registered copies: m x k x 2 x k, indexed [i, s, r, :]
    length_orbits: NDArray[np.float64]
    angle_orbits: NDArray[np.float64]

    # --- Set by the sampler at run start ---
    config: SamplerConfig | None = None
    rng: np.random.Generator | None = None
    prior: TemplatePrior | None = None
    # (k, 2) admissible registrations
    mask: NDArray[np.bool_] | None = None

    # --- Chain state ---
    labels: NDArray[np.int64] | None = None
    shifts: NDArray[np.int64] | None = None
    reflections: NDArray[np.int64] | None = None
    templates: list[ClusterTemplate] = field(default_factory=list)
    mix_weights: NDArray[np.float64] | None = None

    # --- Per-iteration scratch (computed from the previous templates) ---
    # Scores for every shape x cluster x registration: m x K x k x 2
    scores: NDArray[np.float64] | None = None
    # Registration-collapsed scores: m x K
    marginal: NDArray[np.float64] | None = None
    loglik: float = float("nan")

    iteration: int = 0
    trace: SamplerTrace = field(default_factory=SamplerTrace)

    # --- Run metadata ---
    completed_steps: dict[str, int] = field(default_factory=dict)
    step_time_ms: dict[str, float] = field(default_factory=dict)
    degenerate_draws: int = 0
    progress_callback: Callable[[dict[str, Any]], None] | None = None

    @property
    def num_shapes(self) -> int:
        return self.lengths.shape[0]

    @property
    def num_vertices(self) -> int:
        return self.lengths.shape[1]

    @property
    def num_clusters(self) -> int:
        return len(self.templates)

    @property
    def in_burn_in(self) -> bool:
        return self.config is not None and self.iteration < self.config.burn

    def registered_features(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Every shape under its current registration: two m x k arrays."""
        idx = np.arange(self.num_shapes)
        return (
            self.length_orbits[idx, self.shifts, self.reflections],
            self.angle_orbits[idx, self.shifts, self.reflections],
        )

    def members(self, cluster_id: int) -> NDArray[np.int64]:
        return np.flatnonzero(self.labels == cluster_id)

    def cluster_sizes(self) -> NDArray[np.int64]:
        return np.bincount(self.labels, minlength=self.num_clusters)


def build_context(lengths, angles) -> SamplerContext:
    """Validate the two feature matrices and precompute every shape's registration orbit."""
    try:
        lengths = np.asarray(lengths, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ConfigurationError("lengths", f"not a numeric matrix ({e})") from e
    try:
        angles = np.asarray(angles, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ConfigurationError("angles", f"not a numeric matrix ({e})") from e

    if lengths.ndim != 2:
        raise ConfigurationError("lengths", f"must be a 2-D (m, k) matrix, got shape {lengths.shape}")
    if angles.ndim != 2:
        raise ConfigurationError("angles", f"must be a 2-D (m, k) matrix, got shape {angles.shape}")
    if lengths.shape[0] != angles.shape[0]:
        raise ConfigurationError(
            "angles",
            f"row count {angles.shape[0]} does not match lengths row count {lengths.shape[0]}",
        )
    if lengths.shape[1] != angles.shape[1]:
        raise ConfigurationError(
            "angles",
            f"column count {angles.shape[1]} does not match lengths column count {lengths.shape[1]}",
        )
    if lengths.shape[0] < 1:
        raise ConfigurationError("lengths", "needs at least one shape")
    if lengths.shape[1] < 3:
        raise ConfigurationError("lengths", f"shapes need at least 3 vertices, got {lengths.shape[1]}")
    if not np.all(np.isfinite(lengths)):
        raise ConfigurationError("lengths", "contains non-finite values")
    if not np.all(np.isfinite(angles)):
        raise ConfigurationError("angles", "contains non-finite values")

    length_orbits, angle_orbits = orbit_matrix(lengths, angles)
    return SamplerContext(
        lengths=lengths,
        angles=angles,
        length_orbits=length_orbits,
        angle_orbits=angle_orbits,
    )
