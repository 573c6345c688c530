"""Sampler orchestrator: runs the registered steps once per iteration for a fixed budget."""

from __future__ import annotations

import logging
import time
from collections.abc import Generator
from typing import Any

import numpy as np
from sklearn.cluster import KMeans

from polyreg.engine.config import SamplerConfig
from polyreg.engine.context import SamplerContext, SamplerTrace
from polyreg.engine.errors import ConfigurationError
from polyreg.engine.registration import admissible_mask, best_registration
from polyreg.engine.registry import StepRegistry, StepSpec, get_registry, load_builtin_steps
from polyreg.engine.templates import ClusterTemplate, TemplatePrior, fit_template

logger = logging.getLogger(__name__)


class Sampler:
    """Registration-aware Gibbs sampler over labels, shifts, reflections and templates."""

    def __init__(
        self,
        registry: StepRegistry | None = None,
        config: SamplerConfig | None = None,
    ) -> None:
        if registry is None:
            load_builtin_steps()
            registry = get_registry()
        self.registry = registry
        self.config = config or SamplerConfig()

    def run(self, ctx: SamplerContext) -> SamplerContext:
        """Run the full chain on the given context."""
        for _ in self.run_streaming(ctx):
            pass
        return ctx

    def run_streaming(self, ctx: SamplerContext) -> Generator[dict[str, Any], None, None]:
        """Run the chain, yielding a progress dict after each iteration.

        The caller's ``ctx`` is mutated in-place, so after the generator is
        exhausted the context holds the final state and trace (same as ``run()``).
        Configuration errors are raised before the first iteration.
        """
        cfg = self.config
        self._validate(ctx)
        ordered = self.step_order()

        start = time.perf_counter()
        self._initialize(ctx)
        logger.info(
            "Sampler: m=%d k=%d K=%d, %d iterations (%d burn-in), steps %s",
            ctx.num_shapes,
            ctx.num_vertices,
            cfg.n_clusters,
            cfg.n_iter,
            cfg.burn,
            ",".join(s.id for s in ordered),
        )

        for it in range(cfg.n_iter):
            ctx.iteration = it
            self._sweep(ctx, ordered)

            progress = self._progress(ctx, start)
            if (it + 1) % cfg.log_every == 0:
                logger.debug(
                    "  iter %d/%d loglik=%.3f sizes=%s",
                    it + 1,
                    cfg.n_iter,
                    ctx.loglik,
                    progress["cluster_sizes"],
                )
            if ctx.progress_callback is not None:
                ctx.progress_callback(progress)
            yield progress

        if ctx.degenerate_draws:
            logger.warning(
                "Sampler: %d categorical draws had no finite mass and fell back to uniform",
                ctx.degenerate_draws,
            )
        total = (time.perf_counter() - start) * 1000
        logger.info(
            "Sampler complete: %d iterations, %d retained draws in %.0fms",
            cfg.n_iter,
            len(ctx.trace),
            total,
        )

    def step_order(self) -> list[StepSpec]:
        """Steps for one sweep, in dependency order, after gating."""
        skip_ids = self._gate()
        requested = {s.id for s in self.registry.all()} - skip_ids
        return self.registry.resolve_order(requested)

    def _sweep(self, ctx: SamplerContext, ordered: list[StepSpec]) -> None:
        for spec in ordered:
            t0 = time.perf_counter()
            spec.fn(ctx)
            ctx.completed_steps[spec.id] = ctx.completed_steps.get(spec.id, 0) + 1
            elapsed = (time.perf_counter() - t0) * 1000
            ctx.step_time_ms[spec.id] = ctx.step_time_ms.get(spec.id, 0.0) + elapsed

    def _gate(self) -> set[str]:
        """Determine which steps to skip based on what the run estimates.

        Steps are matched by tag, so any registered step tagged "shift",
        "reflection" or "mixing" follows the corresponding switch:
        - Fixed shifts skip shift draws (s stays 0)
        - Fixed reflections skip reflection draws (r stays 0)
        - Fixed mixing weights skip the Dirichlet draw (uniform pi)
        """
        skip_tags: set[str] = set()
        if not self.config.estimate_s:
            skip_tags.add("shift")
        if not self.config.estimate_r:
            skip_tags.add("reflection")
        if not self.config.update_mixing_weights:
            skip_tags.add("mixing")
        return {s.id for s in self.registry.all() if s.tags & skip_tags}

    def _validate(self, ctx: SamplerContext) -> None:
        cfg = self.config
        cfg.validate()
        if cfg.init == "kmeans" and cfg.n_clusters > ctx.num_shapes:
            raise ConfigurationError(
                "n_clusters",
                f"kmeans initialisation needs n_clusters <= number of shapes ({ctx.num_shapes})",
            )

    def _initialize(self, ctx: SamplerContext) -> None:
        cfg = self.config
        m, k = ctx.num_shapes, ctx.num_vertices

        ctx.config = cfg
        ctx.rng = np.random.default_rng(cfg.seed)
        ctx.mask = admissible_mask(k, cfg.estimate_s, cfg.estimate_r)
        ctx.prior = TemplatePrior.from_data(
            ctx.lengths,
            ctx.angles,
            tau=cfg.prior_tau,
            dispersion_shape=cfg.dispersion_shape,
            dispersion_scale=cfg.dispersion_scale,
            sigma_lengths=cfg.sigma_lengths,
            sigma_angles=cfg.sigma_angles,
            sigma_floor=cfg.sigma_floor,
        )
        ctx.mix_weights = np.full(cfg.n_clusters, 1.0 / cfg.n_clusters)
        ctx.shifts = np.zeros(m, dtype=np.int64)
        ctx.reflections = np.zeros(m, dtype=np.int64)
        ctx.labels = self._initial_labels(ctx)
        ctx.templates = [self._seed_template(ctx, c) for c in range(cfg.n_clusters)]

        ctx.scores = None
        ctx.marginal = None
        ctx.loglik = float("nan")
        ctx.iteration = 0
        ctx.trace = SamplerTrace()
        ctx.completed_steps = {}
        ctx.step_time_ms = {}
        ctx.degenerate_draws = 0

    def _initial_labels(self, ctx: SamplerContext) -> np.ndarray:
        cfg = self.config
        if cfg.init == "kmeans":
            # Sorted vectors are invariant to every shift and reflection
            summary = np.hstack([np.sort(ctx.lengths, axis=1), np.sort(ctx.angles, axis=1)])
            km = KMeans(
                n_clusters=cfg.n_clusters,
                n_init=10,
                random_state=int(ctx.rng.integers(2**31 - 1)),
            )
            return km.fit_predict(summary).astype(np.int64)
        return ctx.rng.integers(cfg.n_clusters, size=ctx.num_shapes).astype(np.int64)

    def _seed_template(self, ctx: SamplerContext, cluster_id: int) -> ClusterTemplate:
        """Align members to the first member, then average. Empty clusters start at the prior."""
        cfg = self.config
        members = ctx.members(cluster_id)
        if len(members) == 0:
            return ctx.prior.template()

        anchor = members[0]
        anchor_template = fit_template(
            ctx.lengths[anchor][None, :],
            ctx.angles[anchor][None, :],
            cfg.sigma_lengths,
            cfg.sigma_angles,
        )
        for i in members:
            reg = best_registration(
                ctx.lengths[i],
                ctx.angles[i],
                anchor_template,
                cfg.weight_lengths,
                cfg.weight_angles,
                estimate_s=cfg.estimate_s,
                estimate_r=cfg.estimate_r,
            )
            ctx.shifts[i] = reg.shift
            ctx.reflections[i] = reg.reflect

        reg_lengths, reg_angles = ctx.registered_features()
        return fit_template(
            reg_lengths[members],
            reg_angles[members],
            cfg.sigma_lengths,
            cfg.sigma_angles,
        )

    def _progress(self, ctx: SamplerContext, start: float) -> dict[str, Any]:
        return {
            "iteration": ctx.iteration + 1,
            "total": self.config.n_iter,
            "phase": "burn_in" if ctx.in_burn_in else "sampling",
            "loglik": round(ctx.loglik, 4) if np.isfinite(ctx.loglik) else None,
            "cluster_sizes": [int(n) for n in ctx.cluster_sizes()],
            "retained": len(ctx.trace),
            "elapsed_ms": round((time.perf_counter() - start) * 1000, 1),
        }


def create_sampler(config: SamplerConfig | None = None) -> Sampler:
    """Factory function for creating a sampler instance."""
    return Sampler(config=config)
