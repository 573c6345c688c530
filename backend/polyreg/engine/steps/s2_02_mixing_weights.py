"""S2.02 — Mixing Weights.

pi ~ Dirichlet(alpha + cluster sizes). Skipped when mixing weights are held
uniform.
"""

from __future__ import annotations

from polyreg.engine.context import SamplerContext
from polyreg.engine.registry import Stage, step


@step(
    id="S2.02",
    stage=Stage.TEMPLATE,
    dependencies=["S0.01"],
    description="Resample cluster mixing weights",
    tags={"mixing"},
)
def mixing_weights(ctx: SamplerContext) -> None:
    counts = ctx.cluster_sizes()
    ctx.mix_weights = ctx.rng.dirichlet(ctx.config.dirichlet_alpha + counts)
