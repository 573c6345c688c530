"""Step registry: every per-iteration sampler update is a standalone function registered via decorator.

Usage:
    @step(id="S1.01", stage=Stage.REGISTRATION, dependencies=["S0.01"], tags={"shift"})
    def resample_shift(ctx: SamplerContext) -> None:
        ctx.shifts = draw(ctx.scores, ...)

Adding a new update = creating one file in ``polyreg.engine.steps`` with the
decorator. Nothing else changes.
"""

from __future__ import annotations

import enum
import importlib
import logging
import pkgutil
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from polyreg.engine.context import SamplerContext

logger = logging.getLogger(__name__)


class Stage(enum.IntEnum):
    ASSIGNMENT = 0
    REGISTRATION = 1
    TEMPLATE = 2
    RECORD = 3


@dataclass
class StepSpec:
    id: str
    stage: Stage
    fn: Callable[["SamplerContext"], None]
    dependencies: list[str] = field(default_factory=list)
    tags: set[str] = field(default_factory=set)
    description: str = ""


class StepRegistry:
    """Catalogue of sampler steps. Holds functions only, never run state."""

    def __init__(self) -> None:
        self._steps: dict[str, StepSpec] = {}

    def register(self, spec: StepSpec) -> None:
        if spec.id in self._steps:
            raise ValueError(f"Duplicate step ID: {spec.id}")
        self._steps[spec.id] = spec
        logger.debug("Registered step %s (%s)", spec.id, spec.stage.name)

    def get(self, step_id: str) -> StepSpec:
        return self._steps[step_id]

    def all(self) -> list[StepSpec]:
        return sorted(self._steps.values(), key=lambda s: (s.stage, s.id))

    def resolve_order(self, requested_ids: set[str] | None = None) -> list[StepSpec]:
        """Topological sort respecting dependencies. If requested_ids is None, run all.

        Dependencies that are not requested are dropped rather than pulled in,
        so gating a step off (e.g. shift estimation) removes it from the sweep.
        """
        pool = self._steps
        if requested_ids is not None:
            pool = {k: v for k, v in pool.items() if k in requested_ids}

        # Kahn's algorithm
        in_degree: dict[str, int] = {sid: 0 for sid in pool}
        for sid, spec in pool.items():
            for dep in spec.dependencies:
                if dep in pool:
                    in_degree[sid] += 1

        queue = sorted([sid for sid, d in in_degree.items() if d == 0])
        ordered: list[StepSpec] = []

        while queue:
            sid = queue.pop(0)
            ordered.append(pool[sid])
            for other_id, other_spec in pool.items():
                if sid in other_spec.dependencies:
                    in_degree[other_id] -= 1
                    if in_degree[other_id] == 0:
                        queue.append(other_id)
                        queue.sort()

        if len(ordered) != len(pool):
            missing = set(pool.keys()) - {s.id for s in ordered}
            raise ValueError(f"Circular dependency detected among: {missing}")

        return ordered

    @property
    def count(self) -> int:
        return len(self._steps)


# Module-level catalogue
_registry = StepRegistry()


def get_registry() -> StepRegistry:
    return _registry


def step(
    *,
    id: str,
    stage: Stage,
    dependencies: list[str] | None = None,
    tags: set[str] | None = None,
    description: str = "",
):
    """Decorator to register a sampler step function."""

    def decorator(fn: Callable[["SamplerContext"], None]):
        spec = StepSpec(
            id=id,
            stage=stage,
            fn=fn,
            dependencies=dependencies or [],
            tags=tags or set(),
            description=description,
        )
        _registry.register(spec)
        return fn

    return decorator


def load_builtin_steps() -> None:
    """Import every module in ``polyreg.engine.steps`` so @step decorators fire."""
    package = importlib.import_module("polyreg.engine.steps")
    for _, module_name, _ in pkgutil.iter_modules(package.__path__):
        importlib.import_module(f"polyreg.engine.steps.{module_name}")
