"""Top level for sampler."""

from .MCMCChain import ChainDiagnostics, ChainSample, ChainState, MCMCChain
from .sampler_utilities import (
    effective_sample_size,
    evaluate_log_score,
    flat_prior,
    metropolis_hastings_log_acceptance,
    metropolis_ratio,
    normalize_log_weights,
    spawn_generators,
    systematic_resampling,
)
from .Scheduler import Scheduler
from .setup_utilities import SamplerConfig, parse_config, setup
from .SMCPopulation import GenerationResult, GenerationSummary, Particle, SMCPopulation

__all__ = [
    "ChainDiagnostics",
    "ChainSample",
    "ChainState",
    "GenerationResult",
    "GenerationSummary",
    "MCMCChain",
    "Particle",
    "SMCPopulation",
    "SamplerConfig",
    "Scheduler",
    "effective_sample_size",
    "evaluate_log_score",
    "flat_prior",
    "metropolis_hastings_log_acceptance",
    "metropolis_ratio",
    "normalize_log_weights",
    "parse_config",
    "setup",
    "spawn_generators",
    "systematic_resampling",
]
