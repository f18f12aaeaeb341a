"""A file that stores setup utilities for arboreal sampling runs.

Sampler settings are read from an INI-style configuration string with the
sections ``general``, ``mcmc``, ``smc`` and ``moves``. Values are Python
literals.
"""

import ast
import configparser
import logging
import os
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from arboreal.data import Tree
from arboreal.mixins import (
    ProposalMoveError,
    SamplerConfigError,
    UnspecifiedConfigParameterError,
    logger,
)
from arboreal.moves import MoveKind, normalize_move_weights
from arboreal.sampler import constants
from arboreal.sampler.MCMCChain import MCMCChain
from arboreal.sampler.Scheduler import Scheduler
from arboreal.sampler.SMCPopulation import SMCPopulation
from arboreal.typing import Likelihood, Prior


def setup(output_directory_location: str | None = None, verbose: bool = False) -> list[logging.Handler]:
    """Sets up logging for a sampling run.

    Args:
        output_directory_location: Directory to create or reuse for log files.
            If None, only console logging is used.
        verbose: Whether to also write per-step debug messages.

    Returns:
        The file handlers attached to the logger, so that the caller can
        remove them once the run is over.
    """
    if output_directory_location is None:
        return []

    if not os.path.isdir(output_directory_location):
        os.makedirs(output_directory_location)

    output_handler = logging.FileHandler(os.path.join(output_directory_location, "sampler.log"))
    output_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.addHandler(output_handler)

    error_handler = logging.FileHandler(os.path.join(output_directory_location, "sampler.err"))
    error_handler.setLevel(logging.ERROR)
    logger.addHandler(error_handler)

    return [output_handler, error_handler]


@dataclass
class SamplerConfig:
    """Validated sampler settings.

    The ``mcmc_chains``, ``smc_population`` and ``scheduler`` factories build
    ready-to-run sampler objects. Chain seeds are spawned from ``seed``, so a
    given seed always produces the same chains.
    """

    n_workers: int = 1
    seed: int | None = None
    verbose: bool = False
    n_chains: int = 4
    n_steps: int = 1000
    thin: int = 1
    n_particles: int = 100
    n_generations: int = 100
    ess_threshold: float = 0.5
    n_moves_per_generation: int = 1
    move_weights: dict[MoveKind, float] = field(
        default_factory=lambda: normalize_move_weights(constants.DEFAULT_SAMPLER_PARAMETERS["moves"])
    )

    def __post_init__(self):
        for name in (
            "n_workers",
            "n_chains",
            "n_steps",
            "thin",
            "n_particles",
            "n_generations",
            "n_moves_per_generation",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise SamplerConfigError(f"`{name}` must be a positive integer, got {value!r}.")
        if self.seed is not None and (not isinstance(self.seed, int) or self.seed < 0):
            raise SamplerConfigError(f"`seed` must be a non-negative integer or None, got {self.seed!r}.")
        if not isinstance(self.ess_threshold, (int, float)) or not 0 < self.ess_threshold <= 1:
            raise SamplerConfigError(f"`ess_threshold` must lie in (0, 1], got {self.ess_threshold!r}.")
        try:
            self.move_weights = normalize_move_weights(self.move_weights)
        except ProposalMoveError as error:
            raise SamplerConfigError(str(error)) from error

    def scheduler(self) -> Scheduler:
        return Scheduler(n_workers=self.n_workers, progress=self.verbose)

    def mcmc_chains(
        self,
        tree: Tree,
        likelihood: Likelihood,
        prior: Prior | None = None,
    ) -> list[MCMCChain]:
        """Builds ``n_chains`` independently seeded chains starting at ``tree``."""
        seeds = np.random.SeedSequence(self.seed).spawn(self.n_chains)
        return [
            MCMCChain(
                tree,
                likelihood,
                prior=prior,
                move_weights=self.move_weights,
                seed=seed,
                chain_id=chain_id,
            )
            for chain_id, seed in enumerate(seeds)
        ]

    def smc_population(
        self,
        tree: Tree,
        likelihood: Likelihood,
        prior: Prior | None = None,
    ) -> SMCPopulation:
        return SMCPopulation(
            likelihood,
            initial_tree=tree,
            prior=prior,
            n_particles=self.n_particles,
            ess_threshold=self.ess_threshold,
            n_moves_per_generation=self.n_moves_per_generation,
            move_weights=self.move_weights,
            seed=self.seed,
        )


def parse_config(config_string: str) -> SamplerConfig:
    """Parses sampler configuration settings from a string.

    Args:
        config_string: Contents of the configuration file.

    Returns:
        The validated SamplerConfig.

    Raises:
        UnspecifiedConfigParameterError if a required general parameter is
            missing.
        SamplerConfigError if a value cannot be parsed or is out of range.
    """
    config = configparser.ConfigParser()

    # load in defaults
    config.read_dict(constants.DEFAULT_SAMPLER_PARAMETERS)

    config.read_string(config_string)

    parameters: dict[str, dict[str, Any]] = {}
    for key in config.sections():
        try:
            parameters[key] = {k: ast.literal_eval(v) for k, v in config[key].items()}
        except (ValueError, SyntaxError) as error:
            raise SamplerConfigError(f"Could not parse section [{key}]: {error}") from error

    # ensure that minimum items are present in config
    for param in constants.REQUIRED_GENERAL_PARAMETERS:
        if param not in parameters["general"]:
            raise UnspecifiedConfigParameterError(
                "Please specify the following items for sampling: "
                + ", ".join(constants.REQUIRED_GENERAL_PARAMETERS)
            )

    unknown = set(parameters) - set(constants.DEFAULT_SAMPLER_PARAMETERS)
    if unknown:
        raise SamplerConfigError(f"Unknown configuration sections: {sorted(unknown)}")

    try:
        return SamplerConfig(
            **parameters["general"],
            **parameters["mcmc"],
            **parameters["smc"],
            move_weights=parameters["moves"],
        )
    except TypeError as error:
        raise SamplerConfigError(f"Unrecognized sampler parameter: {error}") from error
