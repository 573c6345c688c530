"""S1.01 — Shift.

Draws each shape's starting offset s from its k options, conditional on the
shape's current cluster and reflection. Skipped when shifts are not estimated
(s stays 0).
"""

from __future__ import annotations

import numpy as np

from polyreg.engine.context import SamplerContext
from polyreg.engine.registry import Stage, step
from polyreg.utils.math_helpers import sample_categorical


@step(
    id="S1.01",
    stage=Stage.REGISTRATION,
    dependencies=["S0.01"],
    description="Resample cyclic starting offsets",
    tags={"shift"},
)
def resample_shift(ctx: SamplerContext) -> None:
    idx = np.arange(ctx.num_shapes)
    # m x k: score of each shift under the shape's cluster and reflection
    log_w = ctx.scores[idx, ctx.labels, :, ctx.reflections]
    shifts, n_degenerate = sample_categorical(log_w, ctx.rng)
    ctx.shifts = shifts
    ctx.degenerate_draws += n_degenerate
