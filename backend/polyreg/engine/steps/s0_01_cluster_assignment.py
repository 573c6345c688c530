"""S0.01 — Cluster Assignment.

Scores every shape against every template under every admissible
registration, collapses the registration axes, and draws a new label per shape
from log(pi_c) + collapsed score. Templates are read-only here, so all m
draws are made at once.
"""

from __future__ import annotations

import numpy as np

from polyreg.engine.context import SamplerContext
from polyreg.engine.registration import marginal_scores, score_orbits
from polyreg.engine.registry import Stage, step
from polyreg.utils.math_helpers import sample_categorical


@step(
    id="S0.01",
    stage=Stage.ASSIGNMENT,
    description="Resample cluster labels from registration-collapsed scores",
)
def cluster_assignment(ctx: SamplerContext) -> None:
    cfg = ctx.config
    ctx.scores = score_orbits(
        ctx.length_orbits,
        ctx.angle_orbits,
        ctx.templates,
        cfg.weight_lengths,
        cfg.weight_angles,
    )
    ctx.marginal = marginal_scores(ctx.scores, ctx.mask, cfg.assignment_score)

    with np.errstate(divide="ignore"):
        log_post = ctx.marginal + np.log(ctx.mix_weights)[None, :]

    labels, n_degenerate = sample_categorical(log_post, ctx.rng)
    ctx.labels = labels
    ctx.degenerate_draws += n_degenerate
