"""Leaf-node polygon helpers. No engine imports.

Polygons are (k, 2) vertex arrays without a repeated closing vertex.
Edge j runs from vertex j to vertex j+1; the turn at vertex j is the signed
heading change from edge j-1 to edge j.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from shapely.geometry import LinearRing


def signed_area(points: NDArray[np.float64]) -> float:
    """Shoelace formula over the closed vertex cycle. Positive = CCW, Negative = CW."""
    x = points[:, 0]
    y = points[:, 1]
    return float(0.5 * np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def winding_direction(points: NDArray[np.float64]) -> int:
    """Return 1 for CCW, -1 for CW, 0 if degenerate."""
    sa = signed_area(points)
    if sa > 0:
        return 1
    elif sa < 0:
        return -1
    return 0


def edge_vectors(points: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.roll(points, -1, axis=0) - points


def edge_lengths(points: NDArray[np.float64]) -> NDArray[np.float64]:
    """Length of every edge, closing edge included."""
    return np.sqrt(np.sum(edge_vectors(points) ** 2, axis=1))


def vertex_turns(points: NDArray[np.float64]) -> NDArray[np.float64]:
    """Signed turning angle at each vertex, wrapped to [-pi, pi]."""
    edges = edge_vectors(points)
    headings = np.arctan2(edges[:, 1], edges[:, 0])
    turns = headings - np.roll(headings, 1)
    return (turns + np.pi) % (2 * np.pi) - np.pi


def interior_angles(points: NDArray[np.float64]) -> NDArray[np.float64]:
    """Interior angle at each vertex, in (0, 2*pi). Reflex corners exceed pi.

    The turn at a vertex is read against the polygon's own winding, so a
    mirrored or reversed walk yields the same angles.
    """
    direction = winding_direction(points) or 1
    return np.pi - direction * vertex_turns(points)


def default_angle_total(k: int) -> float:
    """Interior angle sum of a simple k-gon."""
    return (k - 2) * np.pi


def polygon_features(
    points: NDArray[np.float64],
    angle_total: float | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Side-length and vertex-angle proportions of a polygon.

    Lengths are divided by the perimeter. Interior angles are divided by
    ``angle_total`` (default (k-2)*pi), so a simple polygon yields angle
    proportions summing to 1.
    """
    points = np.asarray(points, dtype=np.float64)
    k = len(points)
    lengths = edge_lengths(points)
    perimeter = float(np.sum(lengths))
    if perimeter < 1e-12:
        raise ValueError("Degenerate polygon: zero perimeter")
    if angle_total is None:
        angle_total = default_angle_total(k)
    angles = interior_angles(points) / angle_total
    return lengths / perimeter, angles


def is_simple(points: NDArray[np.float64]) -> bool:
    """True if the closed vertex chain does not self-intersect."""
    if len(points) < 3:
        return False
    ring = LinearRing(points)
    return bool(ring.is_simple) and abs(signed_area(points)) > 1e-12


def normalize_polygon(points: NDArray[np.float64]) -> NDArray[np.float64]:
    """Translate vertex 0 to the origin, rotate edge 0 onto +x, scale to unit perimeter."""
    points = np.asarray(points, dtype=np.float64)
    shifted = points - points[0]
    edge = shifted[1]
    theta = np.arctan2(edge[1], edge[0])
    c, s = np.cos(-theta), np.sin(-theta)
    rot = np.array([[c, -s], [s, c]])
    rotated = shifted @ rot.T
    return rotated / float(np.sum(edge_lengths(points)))
