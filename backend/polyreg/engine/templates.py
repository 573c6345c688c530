"""Cluster template state: per-cluster canonical feature vectors.

Each channel is modelled as registered_vector ~ N(template, sigma^2 I) with a
conjugate N(prior_mean, tau^2 I) prior on the template and an inverse-gamma
prior on sigma^2.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np
from numpy.typing import NDArray


@dataclass
class ClusterTemplate:
    """Canonical registered shape of one cluster."""

    lengths: NDArray[np.float64]
    angles: NDArray[np.float64]
    sigma_lengths: float
    sigma_angles: float
    n_members: int = 0

    @property
    def k(self) -> int:
        return len(self.lengths)

    def copy(self) -> ClusterTemplate:
        return replace(self, lengths=self.lengths.copy(), angles=self.angles.copy())


@dataclass
class TemplatePrior:
    mean_lengths: NDArray[np.float64]
    mean_angles: NDArray[np.float64]
    tau: float
    dispersion_shape: float
    dispersion_scale: float
    sigma_lengths: float
    sigma_angles: float
    sigma_floor: float

    @classmethod
    def from_data(
        cls,
        lengths: NDArray[np.float64],
        angles: NDArray[np.float64],
        tau: float,
        dispersion_shape: float,
        dispersion_scale: float,
        sigma_lengths: float,
        sigma_angles: float,
        sigma_floor: float,
    ) -> TemplatePrior:
        """Centre the prior on a regular shape: every entry at the mean row proportion."""
        k = lengths.shape[1]
        return cls(
            mean_lengths=np.full(k, float(np.mean(lengths))),
            mean_angles=np.full(k, float(np.mean(angles))),
            tau=tau,
            dispersion_shape=dispersion_shape,
            dispersion_scale=dispersion_scale,
            sigma_lengths=sigma_lengths,
            sigma_angles=sigma_angles,
            sigma_floor=sigma_floor,
        )

    def template(self) -> ClusterTemplate:
        return ClusterTemplate(
            lengths=self.mean_lengths.copy(),
            angles=self.mean_angles.copy(),
            sigma_lengths=self.sigma_lengths,
            sigma_angles=self.sigma_angles,
        )

    def draw(self, rng: np.random.Generator) -> ClusterTemplate:
        k = len(self.mean_lengths)
        return ClusterTemplate(
            lengths=self.mean_lengths + self.tau * rng.standard_normal(k),
            angles=self.mean_angles + self.tau * rng.standard_normal(k),
            sigma_lengths=self.sigma_lengths,
            sigma_angles=self.sigma_angles,
        )


def fit_template(
    member_lengths: NDArray[np.float64],
    member_angles: NDArray[np.float64],
    sigma_lengths: float,
    sigma_angles: float,
) -> ClusterTemplate:
    """Plain mean of registered members (initialisation)."""
    return ClusterTemplate(
        lengths=np.mean(member_lengths, axis=0),
        angles=np.mean(member_angles, axis=0),
        sigma_lengths=sigma_lengths,
        sigma_angles=sigma_angles,
        n_members=len(member_lengths),
    )


def update_template(
    template: ClusterTemplate,
    member_lengths: NDArray[np.float64],
    member_angles: NDArray[np.float64],
    prior: TemplatePrior,
    mode: str = "mean",
    estimate_dispersion: bool = False,
    rng: np.random.Generator | None = None,
) -> ClusterTemplate:
    """New template for a cluster from its members' registered feature vectors.

    ``member_*`` are (n, k) arrays, n may be zero. An empty cluster keeps its
    template in "mean" mode and is redrawn from the prior in "sample" mode.
    """
    n = len(member_lengths)
    if mode == "sample" and rng is None:
        raise ValueError("update_template(mode='sample') needs an rng")

    if n == 0:
        if mode == "sample":
            return prior.draw(rng)
        empty = template.copy()
        empty.n_members = 0
        return empty

    sigma_l = template.sigma_lengths
    sigma_a = template.sigma_angles

    mu_l = _location(member_lengths, sigma_l, prior.mean_lengths, prior.tau, mode, rng)
    mu_a = _location(member_angles, sigma_a, prior.mean_angles, prior.tau, mode, rng)

    if estimate_dispersion:
        sigma_l = _dispersion(member_lengths, mu_l, prior, mode, rng)
        sigma_a = _dispersion(member_angles, mu_a, prior, mode, rng)

    return ClusterTemplate(
        lengths=mu_l,
        angles=mu_a,
        sigma_lengths=sigma_l,
        sigma_angles=sigma_a,
        n_members=n,
    )


def _location(
    members: NDArray[np.float64],
    sigma: float,
    prior_mean: NDArray[np.float64],
    tau: float,
    mode: str,
    rng: np.random.Generator | None,
) -> NDArray[np.float64]:
    # Conjugate normal update, independent per coordinate
    n = len(members)
    precision = 1.0 / tau**2 + n / sigma**2
    var = 1.0 / precision
    mean = var * (prior_mean / tau**2 + members.sum(axis=0) / sigma**2)
    if mode == "sample":
        return mean + np.sqrt(var) * rng.standard_normal(len(mean))
    return mean


def _dispersion(
    members: NDArray[np.float64],
    location: NDArray[np.float64],
    prior: TemplatePrior,
    mode: str,
    rng: np.random.Generator | None,
) -> float:
    # Inverse-gamma update on sigma^2 pooled over coordinates
    shape = prior.dispersion_shape + members.size / 2.0
    scale = prior.dispersion_scale + 0.5 * float(np.sum((members - location) ** 2))
    if mode == "sample":
        var = scale / rng.gamma(shape)
    else:
        var = scale / (shape + 1.0)
    return max(float(np.sqrt(var)), prior.sigma_floor)
