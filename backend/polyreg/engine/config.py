"""Run configuration: controls sampler and reconstructor behavior."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass

from polyreg.engine.errors import ConfigurationError

TEMPLATE_UPDATE_MODES = ("mean", "sample")
ASSIGNMENT_SCORES = ("marginal", "best")
INIT_METHODS = ("random", "kmeans")
CHIRALITIES = ("ccw", "both")


@dataclass
class SamplerConfig:
    """Knobs for one MCMC clustering run."""

    n_clusters: int = 2
    # Total iterations and burn-in (0 <= burn < n_iter)
    n_iter: int = 1000
    burn: int = 500

    # Channel weights: relative contribution of lengths vs angles
    weight_lengths: float = 1.0
    weight_angles: float = 1.0

    # Which registration axes are inferred (held at 0 otherwise)
    estimate_s: bool = True
    estimate_r: bool = True

    # Template dispersion per channel (std of a registered proportion)
    sigma_lengths: float = 0.05
    sigma_angles: float = 0.05
    estimate_dispersion: bool = False
    sigma_floor: float = 1e-4

    # Template location prior: N(mean row proportion, prior_tau^2)
    prior_tau: float = 0.25
    # Inverse-gamma variance prior (shape, scale)
    dispersion_shape: float = 2.0
    dispersion_scale: float = 0.0025

    # "mean" = conjugate posterior mean, "sample" = posterior draw
    template_update: str = "mean"
    # "marginal" = average over registrations, "best" = best registration only
    assignment_score: str = "marginal"

    # Mixing weights ~ Dirichlet(alpha + counts)
    update_mixing_weights: bool = True
    dirichlet_alpha: float = 1.0

    init: str = "random"
    # Align retained label draws to the final state before taking modes
    relabel: bool = True
    store_templates: bool = False

    seed: int | None = None
    log_every: int = 100

    def validate(self) -> None:
        """Raise ConfigurationError naming the first offending parameter."""
        if not _is_int(self.n_clusters) or self.n_clusters < 1:
            raise ConfigurationError("n_clusters", f"must be an integer >= 1, got {self.n_clusters!r}")
        if not _is_int(self.n_iter) or self.n_iter < 1:
            raise ConfigurationError("n_iter", f"must be an integer >= 1, got {self.n_iter!r}")
        if not _is_int(self.burn) or not 0 <= self.burn < self.n_iter:
            raise ConfigurationError(
                "burn", f"must satisfy 0 <= burn < n_iter ({self.n_iter}), got {self.burn!r}"
            )
        check_weight("weight_lengths", self.weight_lengths)
        check_weight("weight_angles", self.weight_angles)
        for name in ("sigma_lengths", "sigma_angles", "sigma_floor", "prior_tau",
                     "dispersion_shape", "dispersion_scale", "dirichlet_alpha"):
            value = getattr(self, name)
            if not isinstance(value, numbers.Real) or not math.isfinite(value) or value <= 0:
                raise ConfigurationError(name, f"must be a finite positive number, got {value!r}")
        _check_choice("template_update", self.template_update, TEMPLATE_UPDATE_MODES)
        _check_choice("assignment_score", self.assignment_score, ASSIGNMENT_SCORES)
        _check_choice("init", self.init, INIT_METHODS)
        if not _is_int(self.log_every) or self.log_every < 1:
            raise ConfigurationError("log_every", f"must be >= 1, got {self.log_every!r}")

    @property
    def n_samples(self) -> int:
        """Number of retained post-burn-in iterations."""
        return self.n_iter - self.burn


@dataclass
class ReconstructionConfig:
    """Tolerances for the sign-search polygon reconstruction."""

    # Max distance between end and start of the walk (unit perimeter)
    closure_tol: float = 1e-6
    # Extra slack added to the prune bounds; larger = prunes less aggressively
    prune_slack: float = 1e-9
    # Tolerance on the turning sum (radians)
    angle_tol: float = 1e-6
    # Max deviation between input and re-extracted feature proportions
    feature_tol: float = 1e-5
    # Scale turning angle proportions into radians; None = (k-2)*pi
    angle_total: float | None = None
    # "ccw" keeps total turning +2pi only, "both" also keeps mirrored walks
    chirality: str = "ccw"
    require_simple: bool = True
    max_vertices: int = 24

    def validate(self) -> None:
        for name in ("closure_tol", "angle_tol", "feature_tol"):
            value = getattr(self, name)
            if not isinstance(value, numbers.Real) or not math.isfinite(value) or value <= 0:
                raise ConfigurationError(name, f"must be a finite positive number, got {value!r}")
        if not math.isfinite(self.prune_slack) or self.prune_slack < 0:
            raise ConfigurationError("prune_slack", f"must be >= 0, got {self.prune_slack!r}")
        if self.angle_total is not None and (not math.isfinite(self.angle_total) or self.angle_total <= 0):
            raise ConfigurationError("angle_total", f"must be positive, got {self.angle_total!r}")
        _check_choice("chirality", self.chirality, CHIRALITIES)


def _is_int(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def check_weight(name: str, value: float) -> None:
    if not isinstance(value, numbers.Real) or not math.isfinite(value) or value < 0:
        raise ConfigurationError(name, f"must be a finite number >= 0, got {value!r}")


def _check_choice(name: str, value: str, allowed: tuple[str, ...]) -> None:
    if value not in allowed:
        raise ConfigurationError(name, f"must be one of {', '.join(allowed)}; got {value!r}")
