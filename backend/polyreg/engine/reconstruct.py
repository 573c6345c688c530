"""Shape reconstruction: invert angle/length proportions into explicit closed polygons.

Each angle proportion, scaled by ``angle_total`` (default (k-2)*pi), gives the
interior angle theta_j in [0, 2*pi) at vertex j. Walking the boundary, the
heading turns by pi - theta_j at each vertex of a counter-clockwise polygon and
by theta_j - pi on the mirrored walk. The turn magnitude |pi - theta_j| is
fixed; its sign is searched.

The walk starts at the origin heading along +x with edge 0. Signs at vertices
1..k-1 are chosen depth-first; the sign at vertex 0 is fixed at the leaf by
requiring a total turning of +2*pi (or -2*pi for the mirrored walk). A branch
is pruned when

  * the current point is farther from the origin than the remaining edges can
    cover (distance bound, ``closure_tol``), or
  * the remaining turn magnitudes cannot bring the turning sum to a target
    (turning-sum bound, ``angle_tol``).

A closed walk is kept only if it ends within ``closure_tol`` of the start, has
exactly k distinct vertices, is simple, and its interior angles and edge
proportions reproduce the input within ``feature_tol``.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from polyreg.engine.config import ReconstructionConfig
from polyreg.engine.errors import ConfigurationError
from polyreg.utils.geometry import default_angle_total, is_simple, polygon_features, signed_area

logger = logging.getLogger(__name__)

_TWO_PI = 2.0 * math.pi


class ReconstructionStatus(str, enum.Enum):
    UNIQUE = "unique"
    MULTIPLE = "multiple"
    UNRECONSTRUCTIBLE = "unreconstructible"


@dataclass
class ReconstructionResult:
    """Outcome for one shape. ``polygons`` is empty iff the shape is unreconstructible."""

    status: ReconstructionStatus
    polygons: list[NDArray[np.float64]] = field(default_factory=list)
    # Turn sign per vertex (+1 left, -1 right) for each polygon
    signs: list[tuple[int, ...]] = field(default_factory=list)
    reason: str = ""
    nodes_explored: int = 0
    nodes_pruned: int = 0
    # Pruned branches split by the bound that cut them
    pruned_distance: int = 0
    pruned_turning: int = 0
    closed_rejected: int = 0

    @property
    def ok(self) -> bool:
        return self.status is not ReconstructionStatus.UNRECONSTRUCTIBLE

    @property
    def n_candidates(self) -> int:
        return len(self.polygons)


def reconstruct(angles, lengths, config: ReconstructionConfig | None = None) -> ReconstructionResult:
    """Closed polygons consistent with one shape's angle and length proportions.

    Polygons are (k, 2) arrays with unit perimeter, vertex 0 at the origin and
    edge 0 along +x. Malformed input raises ConfigurationError; a shape with no
    closing sign assignment returns an UNRECONSTRUCTIBLE result.
    """
    config = config or ReconstructionConfig()
    config.validate()
    angles, lengths = _check_inputs(angles, lengths, config)

    k = len(angles)
    lengths = lengths / float(np.sum(lengths))
    angle_total = config.angle_total if config.angle_total is not None else default_angle_total(k)
    theta = angles * angle_total

    if np.any(theta >= _TWO_PI - config.angle_tol) or np.any(theta < -config.angle_tol):
        return ReconstructionResult(
            status=ReconstructionStatus.UNRECONSTRUCTIBLE,
            reason="interior angle outside [0, 2*pi) after scaling by angle_total",
        )
    turns = np.abs(math.pi - np.clip(theta, 0.0, _TWO_PI))

    search = _SignSearch(lengths, turns, config)
    search.run()

    polygons: list[NDArray[np.float64]] = []
    signs: list[tuple[int, ...]] = []
    rejected = 0
    for points, pattern in search.walks:
        if _accept(points, lengths, angles, angle_total, pattern, config):
            polygons.append(points)
            signs.append(pattern)
        else:
            rejected += 1

    if not polygons:
        status = ReconstructionStatus.UNRECONSTRUCTIBLE
        reason = _failure_reason(search, rejected, config)
    elif len(polygons) == 1:
        status, reason = ReconstructionStatus.UNIQUE, ""
    else:
        status, reason = ReconstructionStatus.MULTIPLE, ""

    logger.debug(
        "reconstruct k=%d: %s (%d candidates, %d nodes, %d pruned)",
        k,
        status.value,
        len(polygons),
        search.nodes_explored,
        search.nodes_pruned,
    )
    return ReconstructionResult(
        status=status,
        polygons=polygons,
        signs=signs,
        reason=reason,
        nodes_explored=search.nodes_explored,
        nodes_pruned=search.nodes_pruned,
        pruned_distance=search.pruned_distance,
        pruned_turning=search.pruned_turning,
        closed_rejected=rejected,
    )


def reconstruct_batch(
    angles,
    lengths,
    config: ReconstructionConfig | None = None,
) -> list[ReconstructionResult]:
    """Reconstruct every row of (m, k) angle and length matrices independently."""
    try:
        angles = np.asarray(angles, dtype=np.float64)
        lengths = np.asarray(lengths, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ConfigurationError("angles", f"not numeric (m, k) matrices ({e})") from e
    if angles.ndim != 2 or angles.shape != lengths.shape:
        raise ConfigurationError(
            "angles",
            f"expected matching (m, k) matrices, got {angles.shape} and {lengths.shape}",
        )
    results = [reconstruct(a_row, l_row, config) for a_row, l_row in zip(angles, lengths)]
    failed = sum(1 for r in results if not r.ok)
    if failed:
        logger.info("reconstruct_batch: %d/%d shapes unreconstructible", failed, len(results))
    return results


class _SignSearch:
    """Depth-first branch-and-bound over turn signs at vertices 1..k-1."""

    def __init__(self, lengths: NDArray[np.float64], turns: NDArray[np.float64], config: ReconstructionConfig) -> None:
        self.lengths = [float(v) for v in lengths]
        self.turns = [float(v) for v in turns]
        self.k = len(self.lengths)
        self.config = config
        self.targets = (_TWO_PI,) if config.chirality == "ccw" else (_TWO_PI, -_TWO_PI)

        # Edge length still to walk after edge d; turn magnitude still available after vertex d
        k = self.k
        self.length_after = [sum(self.lengths[d + 1:]) for d in range(k)]
        self.turn_after = [sum(self.turns[d + 1:]) + self.turns[0] for d in range(k)]

        self.walks: list[tuple[NDArray[np.float64], tuple[int, ...]]] = []
        self.nodes_explored = 0
        self.pruned_distance = 0
        self.pruned_turning = 0
        # Leaves that missed closure_tol, or closed but missed the turning target
        self.open_leaves = 0
        self.missed_target = 0

    def run(self) -> None:
        cfg = self.config
        pos_slack = cfg.closure_tol + cfg.prune_slack
        turn_slack = cfg.angle_tol + cfg.prune_slack

        # (depth, x, y, heading, turning_sum, signs, vertices)
        start = (1, self.lengths[0], 0.0, 0.0, 0.0, (), ((0.0, 0.0), (self.lengths[0], 0.0)))
        stack = [start]
        while stack:
            depth, x, y, heading, total, signs, verts = stack.pop()
            t = self.turns[depth]
            choices = (1,) if t <= cfg.angle_tol else (1, -1)
            # Push -1 first so +1 is explored first
            for sign in reversed(choices):
                self.nodes_explored += 1
                new_total = total + sign * t
                new_heading = heading + sign * t
                length = self.lengths[depth]
                nx = x + length * math.cos(new_heading)
                ny = y + length * math.sin(new_heading)

                if math.hypot(nx, ny) > self.length_after[depth] + pos_slack:
                    self.pruned_distance += 1
                    continue
                remaining = self.turn_after[depth]
                if min(abs(target - new_total) for target in self.targets) > remaining + turn_slack:
                    self.pruned_turning += 1
                    continue

                new_signs = signs + (sign,)
                if depth == self.k - 1:
                    self._close(nx, ny, new_total, new_signs, verts)
                else:
                    stack.append((depth + 1, nx, ny, new_heading, new_total, new_signs, verts + ((nx, ny),)))

    def _close(self, x: float, y: float, total: float, signs: tuple[int, ...], verts) -> None:
        cfg = self.config
        if math.hypot(x, y) > cfg.closure_tol:
            self.open_leaves += 1
            return
        t0 = self.turns[0]
        first_choices = (1,) if t0 <= cfg.angle_tol else (1, -1)
        matched = False
        for target in self.targets:
            for sign0 in first_choices:
                if abs(target - (total + sign0 * t0)) <= cfg.angle_tol:
                    # verts holds vertices 0..k-1; the end point (x, y) is vertex 0 again
                    self.walks.append((np.array(verts, dtype=np.float64), (sign0,) + signs))
                    matched = True
        if not matched:
            self.missed_target += 1

    @property
    def nodes_pruned(self) -> int:
        return self.pruned_distance + self.pruned_turning


def _failure_reason(search: _SignSearch, rejected: int, config: ReconstructionConfig) -> str:
    """Name the bound or check that eliminated every candidate, with its tolerance."""
    causes = []
    if search.pruned_turning:
        causes.append(
            f"{search.pruned_turning} branch(es) cut by the turning-sum bound (angle_tol={config.angle_tol:g})"
        )
    if search.pruned_distance:
        causes.append(
            f"{search.pruned_distance} branch(es) cut by the distance bound (closure_tol={config.closure_tol:g})"
        )
    if search.open_leaves:
        causes.append(f"{search.open_leaves} full walk(s) did not close within closure_tol={config.closure_tol:g}")
    if search.missed_target:
        causes.append(
            f"{search.missed_target} closed walk(s) missed the turning target within angle_tol={config.angle_tol:g}"
        )
    if rejected:
        causes.append(
            f"{rejected} closed walk(s) rejected as non-simple or off by more than feature_tol={config.feature_tol:g}"
        )
    if not causes:
        return "no sign assignment closes"
    return "no sign assignment closes: " + "; ".join(causes)


def _accept(
    points: NDArray[np.float64],
    lengths: NDArray[np.float64],
    angles: NDArray[np.float64],
    angle_total: float,
    signs: tuple[int, ...],
    config: ReconstructionConfig,
) -> bool:
    k = len(lengths)
    if points.shape != (k, 2):
        return False
    # Consecutive vertices must be distinct: no implied extra vertex, no zero-length edge
    gaps = np.sqrt(np.sum((np.roll(points, -1, axis=0) - points) ** 2, axis=1))
    if np.any(gaps <= config.closure_tol):
        return False
    if config.require_simple and not is_simple(points):
        return False
    if config.chirality == "ccw" and signed_area(points) <= 0:
        return False
    got_lengths, got_angles = polygon_features(points, angle_total)
    if np.max(np.abs(got_lengths - lengths)) > config.feature_tol:
        return False
    return bool(np.max(np.abs(got_angles - angles)) <= config.feature_tol)


def _check_inputs(angles, lengths, config: ReconstructionConfig) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    angles = np.asarray(angles, dtype=np.float64)
    lengths = np.asarray(lengths, dtype=np.float64)
    if angles.ndim != 1 or lengths.ndim != 1:
        raise ConfigurationError("angles", "angles and lengths must be 1-D vectors")
    if len(angles) != len(lengths):
        raise ConfigurationError(
            "lengths", f"length {len(lengths)} does not match angles length {len(angles)}"
        )
    k = len(angles)
    if k < 3:
        raise ConfigurationError("angles", f"a polygon needs at least 3 vertices, got {k}")
    if k > config.max_vertices:
        raise ConfigurationError("angles", f"{k} vertices exceeds max_vertices={config.max_vertices}")
    if not np.all(np.isfinite(angles)):
        raise ConfigurationError("angles", "contains non-finite values")
    if not np.all(np.isfinite(lengths)) or np.any(lengths <= 0):
        raise ConfigurationError("lengths", "must be finite and strictly positive")
    return angles, lengths
