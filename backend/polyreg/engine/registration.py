"""Registration model: scores a shape under every (shift, reflection) against a template.

A registration (s, r) re-reads a shape's cyclic feature vectors starting at
vertex s and, when r=1, in the opposite direction. Angles belong to vertices
and lengths to the edge leaving a vertex, so reversal maps

    angles  [a0, a1, ..., a_{k-1}] -> [a0, a_{k-1}, ..., a1]
    lengths [l0, l1, ..., l_{k-1}] -> [l_{k-1}, ..., l1, l0]

Score arrays are laid out [..., s, r] so that a flat argmax prefers the lowest
shift, then r=0, on exact ties.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy.special import logsumexp

from polyreg.engine.config import check_weight

if TYPE_CHECKING:
    from polyreg.engine.templates import ClusterTemplate


@dataclass(frozen=True)
class Registration:
    """One element of the dihedral group acting on a k-vertex shape."""

    shift: int
    reflect: int
    k: int

    def __post_init__(self) -> None:
        if self.k < 1:
            raise ValueError(f"Registration needs k >= 1, got {self.k}")
        if not 0 <= self.shift < self.k:
            raise ValueError(f"shift must lie in [0, {self.k}), got {self.shift}")
        if self.reflect not in (0, 1):
            raise ValueError(f"reflect must be 0 or 1, got {self.reflect}")

    @classmethod
    def identity(cls, k: int) -> Registration:
        return cls(0, 0, k)

    @classmethod
    def admissible(cls, k: int, estimate_s: bool = True, estimate_r: bool = True) -> list[Registration]:
        """Allowed registrations in tie-break order (lowest s first, r=0 before r=1)."""
        shifts = range(k) if estimate_s else [0]
        reflects = (0, 1) if estimate_r else (0,)
        return [cls(s, r, k) for s in shifts for r in reflects]

    def apply(
        self,
        lengths: NDArray[np.float64],
        angles: NDArray[np.float64],
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        return register(lengths, angles, self)

    @property
    def index(self) -> int:
        """Position in a flattened [s, r] score array."""
        return self.shift * 2 + self.reflect


def register(
    lengths: NDArray[np.float64],
    angles: NDArray[np.float64],
    registration: Registration,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Apply a registration to one shape's feature vectors."""
    lengths = np.asarray(lengths, dtype=np.float64)
    angles = np.asarray(angles, dtype=np.float64)
    if len(lengths) != registration.k or len(angles) != registration.k:
        raise ValueError(
            f"Feature vectors of length {len(lengths)}/{len(angles)} do not match k={registration.k}"
        )
    lengths = np.roll(lengths, -registration.shift)
    angles = np.roll(angles, -registration.shift)
    if registration.reflect:
        lengths = lengths[::-1].copy()
        angles = np.roll(angles[::-1], 1)
    return lengths, angles


def orbit(
    lengths: NDArray[np.float64],
    angles: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """All 2k registered copies of one shape, each as a (k, 2, k) array indexed [s, r, :]."""
    k = len(lengths)
    l_orbit = np.empty((k, 2, k))
    a_orbit = np.empty((k, 2, k))
    for reg in Registration.admissible(k):
        l_orbit[reg.shift, reg.reflect], a_orbit[reg.shift, reg.reflect] = register(lengths, angles, reg)
    return l_orbit, a_orbit


def orbit_matrix(
    lengths: NDArray[np.float64],
    angles: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Stack orbits for an (m, k) dataset into (m, k, 2, k) arrays."""
    pairs = [orbit(l_row, a_row) for l_row, a_row in zip(lengths, angles)]
    return np.stack([p[0] for p in pairs]), np.stack([p[1] for p in pairs])


def score(
    lengths: NDArray[np.float64],
    angles: NDArray[np.float64],
    registration: Registration,
    template: ClusterTemplate,
    weight_lengths: float = 1.0,
    weight_angles: float = 1.0,
) -> float:
    """Weighted Gaussian log likelihood of one registered shape under a template."""
    check_weight("weight_lengths", weight_lengths)
    check_weight("weight_angles", weight_angles)
    reg_l, reg_a = register(lengths, angles, registration)
    return float(_loglik(
        np.sum((reg_l - template.lengths) ** 2),
        np.sum((reg_a - template.angles) ** 2),
        template.sigma_lengths,
        template.sigma_angles,
        registration.k,
        weight_lengths,
        weight_angles,
    ))


def score_orbits(
    length_orbits: NDArray[np.float64],
    angle_orbits: NDArray[np.float64],
    templates: list[ClusterTemplate],
    weight_lengths: float,
    weight_angles: float,
) -> NDArray[np.float64]:
    """Scores for every shape x cluster x registration: an (m, K, k, 2) array."""
    m, k = length_orbits.shape[0], length_orbits.shape[1]
    out = np.empty((m, len(templates), k, 2))
    for c, tpl in enumerate(templates):
        ss_l = np.sum((length_orbits - tpl.lengths) ** 2, axis=-1)
        ss_a = np.sum((angle_orbits - tpl.angles) ** 2, axis=-1)
        out[:, c] = _loglik(ss_l, ss_a, tpl.sigma_lengths, tpl.sigma_angles, k,
                            weight_lengths, weight_angles)
    return out


def admissible_mask(k: int, estimate_s: bool, estimate_r: bool) -> NDArray[np.bool_]:
    """(k, 2) boolean mask of the registrations a run may use."""
    mask = np.zeros((k, 2), dtype=bool)
    for reg in Registration.admissible(k, estimate_s, estimate_r):
        mask[reg.shift, reg.reflect] = True
    return mask


def marginal_scores(
    scores: NDArray[np.float64],
    mask: NDArray[np.bool_],
    mode: str = "marginal",
) -> NDArray[np.float64]:
    """Collapse the registration axes of an (..., k, 2) score array.

    "marginal" averages likelihoods over admissible registrations (uniform
    prior); "best" keeps the highest admissible score.
    """
    masked = np.where(mask, scores, -np.inf)
    flat = masked.reshape(masked.shape[:-2] + (-1,))
    if mode == "best":
        return np.max(flat, axis=-1)
    with np.errstate(divide="ignore", invalid="ignore"):
        return logsumexp(flat, axis=-1) - math.log(int(mask.sum()))


def best_registration(
    lengths: NDArray[np.float64],
    angles: NDArray[np.float64],
    template: ClusterTemplate,
    weight_lengths: float = 1.0,
    weight_angles: float = 1.0,
    estimate_s: bool = True,
    estimate_r: bool = True,
) -> Registration:
    """Highest-scoring admissible registration; ties go to the lowest s, then r=0."""
    k = len(lengths)
    l_orb, a_orb = orbit(np.asarray(lengths, dtype=np.float64), np.asarray(angles, dtype=np.float64))
    scores = score_orbits(l_orb[None], a_orb[None], [template], weight_lengths, weight_angles)[0, 0]
    masked = np.where(admissible_mask(k, estimate_s, estimate_r), scores, -np.inf)
    flat_idx = int(np.argmax(masked.reshape(-1)))
    return Registration(flat_idx // 2, flat_idx % 2, k)


def _loglik(ss_l, ss_a, sigma_l: float, sigma_a: float, k: int, w_l: float, w_a: float):
    return (
        -0.5 * (w_l * ss_l / sigma_l**2 + w_a * ss_a / sigma_a**2)
        - k * (w_l * math.log(sigma_l) + w_a * math.log(sigma_a))
    )
