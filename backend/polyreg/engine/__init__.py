"""polyreg engine: registration-aware clustering and reconstruction of polygon shapes."""

from polyreg.engine.clustering import ClusterResult, cluster, summarize
from polyreg.engine.config import ReconstructionConfig, SamplerConfig
from polyreg.engine.context import SamplerContext, build_context
from polyreg.engine.errors import ConfigurationError
from polyreg.engine.reconstruct import (
    ReconstructionResult,
    ReconstructionStatus,
    reconstruct,
    reconstruct_batch,
)
from polyreg.engine.registration import Registration, best_registration, register, score
from polyreg.engine.registry import Stage, get_registry, step
from polyreg.engine.sampler import Sampler, create_sampler

__all__ = [
    "cluster",
    "summarize",
    "ClusterResult",
    "SamplerConfig",
    "ReconstructionConfig",
    "SamplerContext",
    "build_context",
    "ConfigurationError",
    "reconstruct",
    "reconstruct_batch",
    "ReconstructionResult",
    "ReconstructionStatus",
    "Registration",
    "register",
    "score",
    "best_registration",
    "step",
    "Stage",
    "get_registry",
    "Sampler",
    "create_sampler",
]
