"""Module defining the SMCPopulation, a weighted population of tree particles.

Each generation, every particle is moved by a mutation kernel made of one or
more proposal moves and then reweighted. The backward kernel is the reverse
proposal, so the incremental importance weight of a particle moved from x to
x' is ``π(x') q(x | x') / (π(x) q(x' | x))``, where π is the posterior.
Once all particles have been reweighted, the weights are normalized. If the
effective sample size has dropped below a fraction of the population size,
the population is resampled.

Particles never share a Tree. Moves always produce new trees and resampling
deep-copies the surviving trees, so two descendants of one ancestor can be
mutated independently on different workers.
"""

import math
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np
from scipy.special import logsumexp

from arboreal.data import Tree
from arboreal.mixins import InvalidMove, LikelihoodEvaluationError, SamplerError, logger
from arboreal.moves import MoveKind, normalize_move_weights, sample_move
from arboreal.sampler import sampler_utilities
from arboreal.typing import Likelihood, Prior


@dataclass
class Particle:
    """A single weighted tree, together with its private random stream."""

    tree: Tree
    log_weight: float
    log_likelihood: float
    log_prior: float
    rng: np.random.Generator
    n_invalid_moves: int = 0
    n_likelihood_failures: int = 0

    @property
    def log_posterior(self) -> float:
        return self.log_likelihood + self.log_prior

    @property
    def is_alive(self) -> bool:
        return self.log_weight > -math.inf


@dataclass
class GenerationSummary:
    """Diagnostics of a single SMC generation.

    ``ess`` is measured before any resampling and ``log_evidence_increment``
    is the log of the mean incremental weight.
    """

    generation: int
    ess: float
    resampled: bool
    n_zero_weight: int
    log_evidence_increment: float


@dataclass
class GenerationResult:
    """The population at the end of a generation, as (tree, weight) pairs."""

    summary: GenerationSummary
    particles: list[tuple[Tree, float]] = field(default_factory=list)


class SMCPopulation:
    """
    A population of weighted tree particles for Sequential Monte Carlo.

    Args:
        likelihood: Callable mapping a tree to its log-likelihood.
        initial_tree: Tree every particle starts from. Each particle receives
            its own copy.
        initial_trees: Alternatively, one starting tree per particle.
        prior: Optional callable mapping a tree to its log-prior.
        n_particles: Number of particles. Inferred from ``initial_trees``
            when those are given.
        ess_threshold: Resample when the effective sample size drops below
            ``ess_threshold * n_particles``. Must lie in (0, 1].
        n_moves_per_generation: Number of proposal moves in each particle's
            mutation kernel.
        max_redraws: How many times an inapplicable proposal is redrawn
            before the move is skipped. With the default of 0 a failed draw
            leaves the particle in place and the weights are exact. Positive
            values condition the proposal on validity, which the move's
            proposal ratio does not account for, so the weights are only
            approximate.
        move_weights: Mixture weights over move kinds.
        seed: Seed from which every particle's random stream (and the
            resampling stream) is derived.
    """

    def __init__(
        self,
        likelihood: Likelihood,
        initial_tree: Tree | None = None,
        initial_trees: Sequence[Tree] | None = None,
        prior: Prior | None = None,
        n_particles: int | None = None,
        ess_threshold: float = 0.5,
        n_moves_per_generation: int = 1,
        max_redraws: int = 0,
        move_weights: Mapping[MoveKind | str, float] | None = None,
        seed: int | np.random.SeedSequence | None = None,
    ):
        if (initial_tree is None) == (initial_trees is None):
            raise SamplerError("Exactly one of `initial_tree` or `initial_trees` must be provided.")
        if initial_trees is not None:
            if n_particles is not None and n_particles != len(initial_trees):
                raise SamplerError("`n_particles` does not match the number of initial trees.")
            n_particles = len(initial_trees)
        if n_particles is None or n_particles < 1:
            raise SamplerError("`n_particles` must be a positive integer.")
        if not 0 < ess_threshold <= 1:
            raise SamplerError("`ess_threshold` must lie in (0, 1].")
        if n_moves_per_generation < 1:
            raise SamplerError("`n_moves_per_generation` must be a positive integer.")
        if max_redraws < 0:
            raise SamplerError("`max_redraws` must be a non-negative integer.")

        self.likelihood = likelihood
        self.prior = prior if prior is not None else sampler_utilities.flat_prior
        self.n_particles = n_particles
        self.ess_threshold = ess_threshold
        self.n_moves_per_generation = n_moves_per_generation
        self.max_redraws = max_redraws
        self.move_weights = normalize_move_weights(move_weights)
        self.generation = 0
        self.log_evidence = 0.0

        generators = sampler_utilities.spawn_generators(seed, n_particles + 1)
        self._resampling_rng = generators[-1]

        if initial_trees is None:
            initial_trees = [initial_tree] * n_particles
        self.particles = [
            self._initialize_particle(tree, rng) for tree, rng in zip(initial_trees, generators[:-1])
        ]

    def _initialize_particle(self, tree: Tree, rng: np.random.Generator) -> Particle:
        tree = tree.copy()
        log_weight = -math.log(self.n_particles)
        try:
            log_likelihood, log_prior = self._score(tree)
        except LikelihoodEvaluationError as error:
            logger.debug(f"Initial particle could not be scored: {error}")
            return Particle(tree, -math.inf, -math.inf, 0.0, rng, n_likelihood_failures=1)
        return Particle(tree, log_weight, log_likelihood, log_prior, rng)

    def _score(self, tree: Tree) -> tuple[float, float]:
        log_likelihood = sampler_utilities.evaluate_log_score(self.likelihood, tree)
        log_prior = sampler_utilities.evaluate_log_score(self.prior, tree)
        return log_likelihood, log_prior

    def __len__(self) -> int:
        return self.n_particles

    @property
    def log_weights(self) -> np.ndarray:
        return np.array([p.log_weight for p in self.particles])

    def normalized_weights(self) -> np.ndarray:
        """Returns the particle weights normalized to sum to one.

        Raises:
            SamplerError if every particle has zero weight.
        """
        try:
            return sampler_utilities.normalize_log_weights(self.log_weights)
        except ValueError:
            raise SamplerError("Every particle in the population has zero weight.") from None

    def effective_sample_size(self) -> float:
        return sampler_utilities.effective_sample_size(self.normalized_weights())

    def advance_particle(self, index: int) -> Particle:
        """Moves a single particle through the mutation kernel and reweights it.

        Only the particle at ``index`` is read or written, so distinct
        particles may be advanced concurrently.

        Args:
            index: Position of the particle in the population.

        Returns:
            The updated particle.
        """
        particle = self.particles[index]
        if not particle.is_alive:
            return particle

        tree = particle.tree
        log_proposal_ratio = 0.0
        for _ in range(self.n_moves_per_generation):
            for _ in range(self.max_redraws + 1):
                try:
                    move = sample_move(tree, particle.rng, self.move_weights)
                    tree, log_ratio = move.apply(tree)
                except InvalidMove:
                    particle.n_invalid_moves += 1
                    continue
                log_proposal_ratio += log_ratio
                break

        try:
            log_likelihood, log_prior = self._score(tree)
        except LikelihoodEvaluationError as error:
            particle.n_likelihood_failures += 1
            particle.log_weight = -math.inf
            logger.debug(f"Particle {index}, generation {self.generation + 1}: {error}")
            return particle

        increment = (log_likelihood + log_prior) - particle.log_posterior + log_proposal_ratio
        particle.tree = tree
        particle.log_likelihood, particle.log_prior = log_likelihood, log_prior
        particle.log_weight = particle.log_weight + increment if not math.isnan(increment) else -math.inf
        return particle

    def resample(self) -> None:
        """Systematic resampling with deep copies of the surviving trees.

        Each slot keeps its own random stream, so copies of one ancestor
        diverge. All weights are reset to uniform.
        """
        ancestors = sampler_utilities.systematic_resampling(self.normalized_weights(), self._resampling_rng)
        uniform = -math.log(self.n_particles)

        resampled = []
        for slot, ancestor in enumerate(ancestors):
            source, owner = self.particles[ancestor], self.particles[slot]
            resampled.append(
                Particle(
                    tree=source.tree.copy(),
                    log_weight=uniform,
                    log_likelihood=source.log_likelihood,
                    log_prior=source.log_prior,
                    rng=owner.rng,
                    n_invalid_moves=owner.n_invalid_moves,
                    n_likelihood_failures=owner.n_likelihood_failures,
                )
            )
        self.particles = resampled

    def finish_generation(self) -> GenerationSummary:
        """Normalizes weights and resamples if the ESS is too low.

        Must only be called once every particle of the generation has been
        advanced.

        Raises:
            SamplerError if every particle has zero weight.
        """
        log_weights = self.log_weights
        log_total = logsumexp(log_weights)
        if not np.isfinite(log_total):
            raise SamplerError(f"Every particle has zero weight at generation {self.generation + 1}.")

        for particle in self.particles:
            particle.log_weight -= log_total

        self.generation += 1
        self.log_evidence += float(log_total)

        ess = self.effective_sample_size()
        n_zero_weight = sum(not p.is_alive for p in self.particles)
        resampled = ess < self.ess_threshold * self.n_particles
        if resampled:
            self.resample()

        logger.debug(
            f"Generation {self.generation}: ESS={ess:.2f}, zero-weight particles="
            f"{n_zero_weight}, resampled={resampled}"
        )
        return GenerationSummary(
            generation=self.generation,
            ess=ess,
            resampled=resampled,
            n_zero_weight=n_zero_weight,
            log_evidence_increment=float(log_total),
        )

    def step(self, scheduler=None) -> GenerationResult:
        """Advances the whole population by one generation.

        Args:
            scheduler: Optional Scheduler used to advance the particles in
                parallel. The scheduler returns only once every particle has
                been advanced, which is required before normalizing.

        Returns:
            The population at the end of the generation.
        """
        if scheduler is None:
            for index in range(self.n_particles):
                self.advance_particle(index)
        else:
            scheduler.map(self.advance_particle, range(self.n_particles))

        summary = self.finish_generation()
        return GenerationResult(summary, self.weighted_trees())

    def run(
        self,
        n_generations: int,
        stop_event: threading.Event | None = None,
        scheduler=None,
    ) -> Iterator[GenerationResult]:
        """Lazily advances the population, yielding one result per generation.

        Args:
            n_generations: Maximum number of generations.
            stop_event: Cooperative stop signal checked between generations.
            scheduler: Optional Scheduler for parallel particle updates.
        """
        for _ in range(n_generations):
            if stop_event is not None and stop_event.is_set():
                logger.info(f"Population received a stop signal after generation {self.generation}.")
                return
            yield self.step(scheduler)

    def weighted_trees(self) -> list[tuple[Tree, float]]:
        """Copies of the particle trees paired with their normalized weights."""
        weights = self.normalized_weights()
        return [(p.tree.copy(), float(w)) for p, w in zip(self.particles, weights)]

    def weighted_mean(self, statistic: Callable[[Tree], float]) -> float:
        """Importance-weighted population mean of a per-tree statistic."""
        weights = self.normalized_weights()
        values = np.array([statistic(p.tree) for p in self.particles], dtype=float)
        return float(np.sum(weights * values))

    @property
    def n_invalid_moves(self) -> int:
        return sum(p.n_invalid_moves for p in self.particles)

    @property
    def n_likelihood_failures(self) -> int:
        return sum(p.n_likelihood_failures for p in self.particles)
