"""S3.01 — Trace Record.

Computes the complete-data log likelihood of the current state and, once the
0-based iteration index reaches ``burn``, appends the state to the trace.
n_iter - burn draws are retained.
"""

from __future__ import annotations

import numpy as np

from polyreg.engine.context import SamplerContext
from polyreg.engine.registry import Stage, step


@step(
    id="S3.01",
    stage=Stage.RECORD,
    dependencies=["S2.01", "S2.02"],
    description="Record post-burn-in state",
)
def trace_record(ctx: SamplerContext) -> None:
    idx = np.arange(ctx.num_shapes)
    with np.errstate(divide="ignore"):
        log_pi = np.log(ctx.mix_weights)
    per_shape = ctx.scores[idx, ctx.labels, ctx.shifts, ctx.reflections] + log_pi[ctx.labels]
    ctx.loglik = float(np.sum(per_shape))

    if ctx.in_burn_in:
        return

    trace = ctx.trace
    trace.iterations.append(ctx.iteration)
    trace.labels.append(ctx.labels.copy())
    trace.shifts.append(ctx.shifts.copy())
    trace.reflections.append(ctx.reflections.copy())
    trace.loglik.append(ctx.loglik)
    if ctx.config.store_templates:
        trace.templates.append([t.copy() for t in ctx.templates])
