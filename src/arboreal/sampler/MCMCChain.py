"""Module defining the MCMCChain, a single Metropolis-Hastings chain over trees.

A chain holds exactly two pieces of state between steps: its current tree and
the current tree's score. Each step draws a proposal move, applies it to a
scratch copy of the tree, scores the copy with the external likelihood (and,
optionally, prior), and then either commits the copy or throws it away.

Recoverable failures, namely a proposal whose precondition does not hold or a
likelihood that returns a non-finite score, are treated as rejections. They
are counted in the chain's diagnostics and the chain carries on.
"""

import math
import threading
import warnings
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum

import numpy as np

from arboreal.data import Tree
from arboreal.mixins import (
    InvalidMove,
    LikelihoodEvaluationError,
    SamplerError,
    SamplerWarning,
    logger,
)
from arboreal.moves import MoveKind, normalize_move_weights, sample_move
from arboreal.sampler import sampler_utilities
from arboreal.typing import Likelihood, Prior


class ChainState(str, Enum):
    """Lifecycle of a chain.

    A chain that completes all the steps of a ``run`` ends in CONVERGED and
    may still be stepped further. A STOPPED chain cannot.
    """

    INITIALIZED = "initialized"
    RUNNING = "running"
    CONVERGED = "converged"
    STOPPED = "stopped"


@dataclass
class ChainDiagnostics:
    """Running counts of what happened to a chain's proposals."""

    n_proposed: int = 0
    n_accepted: int = 0
    n_invalid_moves: int = 0
    n_likelihood_failures: int = 0

    @property
    def n_rejected(self) -> int:
        return self.n_proposed - self.n_accepted

    @property
    def acceptance_rate(self) -> float:
        if self.n_proposed == 0:
            return 0.0
        return self.n_accepted / self.n_proposed


@dataclass
class ChainSample:
    """A state visited by a chain, as handed to the result stream."""

    chain_id: int
    step: int
    tree: Tree
    log_likelihood: float
    log_prior: float
    accepted: bool

    @property
    def log_posterior(self) -> float:
        return self.log_likelihood + self.log_prior


class MCMCChain:
    """
    A Markov chain over tree space with Metropolis-Hastings acceptance.

    The chain owns a private copy of the starting tree and a private random
    number generator, so independent chains can be advanced concurrently
    without any locking.

    Args:
        tree: The starting tree. The chain keeps its own copy.
        likelihood: Callable mapping a tree to its log-likelihood.
        prior: Optional callable mapping a tree to its log-prior. Defaults to
            a flat prior.
        move_weights: Mixture weights over move kinds, see
            :func:`arboreal.moves.normalize_move_weights`.
        seed: Seed for the chain's random number generator. Ignored if
            ``rng`` is given.
        rng: A random number generator for the chain to own.
        chain_id: Identifier attached to the samples this chain emits.
    """

    def __init__(
        self,
        tree: Tree,
        likelihood: Likelihood,
        prior: Prior | None = None,
        move_weights: Mapping[MoveKind | str, float] | None = None,
        seed: int | np.random.SeedSequence | None = None,
        rng: np.random.Generator | None = None,
        chain_id: int = 0,
    ):
        self.likelihood = likelihood
        self.prior = prior if prior is not None else sampler_utilities.flat_prior
        self.move_weights = normalize_move_weights(move_weights)
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.chain_id = chain_id

        self.state = ChainState.INITIALIZED
        self.diagnostics = ChainDiagnostics()
        self.n_steps = 0

        self._tree = tree.copy()
        try:
            self._log_likelihood, self._log_prior = self._score(self._tree)
        except LikelihoodEvaluationError as error:
            warnings.warn(
                f"Chain {chain_id} starts from a tree that could not be scored "
                f"({error}); the first scorable proposal will be accepted.",
                SamplerWarning,
                stacklevel=2,
            )
            self._log_likelihood, self._log_prior = -math.inf, 0.0

    @property
    def tree(self) -> Tree:
        """The current tree. Callers must not mutate it."""
        return self._tree

    @property
    def log_likelihood(self) -> float:
        return self._log_likelihood

    @property
    def log_prior(self) -> float:
        return self._log_prior

    @property
    def log_posterior(self) -> float:
        return self._log_likelihood + self._log_prior

    def _score(self, tree: Tree) -> tuple[float, float]:
        log_likelihood = sampler_utilities.evaluate_log_score(self.likelihood, tree)
        log_prior = sampler_utilities.evaluate_log_score(self.prior, tree)
        return log_likelihood, log_prior

    def step(self) -> bool:
        """Performs a single Metropolis-Hastings step.

        Returns:
            Whether the proposal was accepted.

        Raises:
            SamplerError if the chain has been stopped.
        """
        if self.state == ChainState.STOPPED:
            raise SamplerError(f"Chain {self.chain_id} has been stopped.")
        self.state = ChainState.RUNNING

        self.n_steps += 1
        self.diagnostics.n_proposed += 1

        try:
            move = sample_move(self._tree, self.rng, self.move_weights)
            proposed_tree, log_proposal_ratio = move.apply(self._tree)
        except InvalidMove as error:
            self.diagnostics.n_invalid_moves += 1
            logger.debug(f"Chain {self.chain_id}, step {self.n_steps}: {error}")
            return False

        try:
            log_likelihood, log_prior = self._score(proposed_tree)
        except LikelihoodEvaluationError as error:
            self.diagnostics.n_likelihood_failures += 1
            logger.debug(f"Chain {self.chain_id}, step {self.n_steps}: {error}")
            return False

        log_alpha = sampler_utilities.metropolis_hastings_log_acceptance(
            self._log_likelihood,
            log_likelihood,
            log_proposal_ratio,
            self._log_prior,
            log_prior,
        )
        if self.rng.random() >= math.exp(log_alpha):
            return False

        self._tree = proposed_tree
        self._log_likelihood, self._log_prior = log_likelihood, log_prior
        self.diagnostics.n_accepted += 1
        return True

    def sample(self, accepted: bool) -> ChainSample:
        """Snapshot of the current state."""
        return ChainSample(
            chain_id=self.chain_id,
            step=self.n_steps,
            tree=self._tree.copy(),
            log_likelihood=self._log_likelihood,
            log_prior=self._log_prior,
            accepted=accepted,
        )

    def run(
        self,
        n_steps: int,
        stop_event: threading.Event | None = None,
        thin: int = 1,
        yield_rejected: bool = False,
    ) -> Iterator[ChainSample]:
        """Advances the chain, lazily yielding the states it visits.

        Args:
            n_steps: Maximum number of steps to perform.
            stop_event: Cooperative stop signal, checked between steps. When
                it is set the chain is stopped and the iterator ends.
                Otherwise the chain ends in CONVERGED after ``n_steps``.
            thin: Only every ``thin``-th step is eligible to be yielded.
            yield_rejected: Whether to also yield the current state after
                rejected steps. By default only accepted states are yielded.

        Returns:
            An iterator over ChainSample records.
        """
        if thin < 1:
            raise SamplerError("`thin` must be a positive integer.")

        for _ in range(n_steps):
            if stop_event is not None and stop_event.is_set():
                logger.info(f"Chain {self.chain_id} received a stop signal at step {self.n_steps}.")
                self.stop()
                return
            accepted = self.step()
            if self.n_steps % thin == 0 and (accepted or yield_rejected):
                yield self.sample(accepted)
        self.state = ChainState.CONVERGED

    def stop(self) -> None:
        self.state = ChainState.STOPPED
