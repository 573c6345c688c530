"""S1.02 — Reflection.

Draws each shape's traversal direction r in {0, 1}, conditional on its
current cluster and shift. Skipped when reflections are not estimated.
"""

from __future__ import annotations

import numpy as np

from polyreg.engine.context import SamplerContext
from polyreg.engine.registry import Stage, step
from polyreg.utils.math_helpers import sample_categorical


@step(
    id="S1.02",
    stage=Stage.REGISTRATION,
    dependencies=["S0.01", "S1.01"],
    description="Resample traversal direction",
    tags={"reflection"},
)
def resample_reflection(ctx: SamplerContext) -> None:
    idx = np.arange(ctx.num_shapes)
    log_w = ctx.scores[idx, ctx.labels, ctx.shifts, :]
    reflections, n_degenerate = sample_categorical(log_w, ctx.rng)
    ctx.reflections = reflections
    ctx.degenerate_draws += n_degenerate
