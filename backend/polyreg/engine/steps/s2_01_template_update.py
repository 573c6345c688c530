"""S2.01 — Template Update.

Rebuilds each cluster's template from its members' registered feature
vectors. Runs after every shape has been resampled; clusters are independent
of one another. Empty clusters are handled by update_template.
"""

from __future__ import annotations

from polyreg.engine.context import SamplerContext
from polyreg.engine.registry import Stage, step
from polyreg.engine.templates import update_template


@step(
    id="S2.01",
    stage=Stage.TEMPLATE,
    dependencies=["S0.01", "S1.01", "S1.02"],
    description="Update cluster templates from registered members",
)
def template_update(ctx: SamplerContext) -> None:
    cfg = ctx.config
    reg_lengths, reg_angles = ctx.registered_features()

    updated = []
    for c, template in enumerate(ctx.templates):
        members = ctx.members(c)
        updated.append(
            update_template(
                template,
                reg_lengths[members],
                reg_angles[members],
                ctx.prior,
                mode=cfg.template_update,
                estimate_dispersion=cfg.estimate_dispersion,
                rng=ctx.rng,
            )
        )
    ctx.templates = updated
