"""Module containing the numerical building blocks shared by the samplers."""

import math
from collections.abc import Callable

import numpy as np
from scipy.special import logsumexp

from arboreal.data import Tree
from arboreal.mixins import LikelihoodEvaluationError


def flat_prior(tree: Tree) -> float:
    """The improper uniform log-prior."""
    return 0.0


def evaluate_log_score(score_function: Callable[[Tree], float], tree: Tree) -> float:
    """Evaluates a log-likelihood or log-prior on a tree.

    Args:
        score_function: The external scoring callable.
        tree: The tree to score.

    Returns:
        The score as a finite float.

    Raises:
        LikelihoodEvaluationError if the callable returns a non-finite or
            non-numeric value, or fails with an arithmetic, value or type
            error.
    """
    try:
        score = float(score_function(tree))
    except (ArithmeticError, ValueError, TypeError) as error:
        raise LikelihoodEvaluationError(f"Score evaluation failed: {error}") from error

    if not math.isfinite(score):
        raise LikelihoodEvaluationError(f"Score evaluation returned a non-finite value ({score}).")
    return score


def metropolis_hastings_log_acceptance(
    log_likelihood_current: float,
    log_likelihood_proposed: float,
    log_proposal_ratio: float = 0.0,
    log_prior_current: float = 0.0,
    log_prior_proposed: float = 0.0,
) -> float:
    """Log of the Metropolis-Hastings acceptance probability.

    Computes ``min(0, Δ log-likelihood + log proposal ratio + Δ log-prior)``,
    where the proposal ratio is ``log q(current | proposed) - log q(proposed
    | current)``.
    """
    log_alpha = (
        (log_likelihood_proposed - log_likelihood_current)
        + log_proposal_ratio
        + (log_prior_proposed - log_prior_current)
    )
    if math.isnan(log_alpha):
        return -math.inf
    return min(0.0, log_alpha)


def metropolis_ratio(logp1: float, logp2: float, log1given2: float = 0.0, log2given1: float = 0.0) -> float:
    """Acceptance probability for moving from state 1 to state 2.

    Args:
        logp1: Log target density of the current state.
        logp2: Log target density of the proposed state.
        log1given2: Log density of proposing state 1 from state 2.
        log2given1: Log density of proposing state 2 from state 1.
    """
    return math.exp(metropolis_hastings_log_acceptance(logp1, logp2, log1given2 - log2given1))


def normalize_log_weights(log_weights: np.ndarray) -> np.ndarray:
    """Normalizes log weights into probabilities.

    Raises:
        ValueError if every weight is zero.
    """
    log_weights = np.asarray(log_weights, dtype=float)
    log_total = logsumexp(log_weights)
    if not np.isfinite(log_total):
        raise ValueError("All weights are zero.")
    return np.exp(log_weights - log_total)


def effective_sample_size(weights: np.ndarray) -> float:
    """The effective sample size ``1 / Σ w_i²`` of normalized weights."""
    weights = np.asarray(weights, dtype=float)
    return float(1.0 / np.sum(weights**2))


def systematic_resampling(weights: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Draws ancestor indices proportional to ``weights``.

    A single uniform offset is shared by all N evenly spaced positions, which
    keeps the number of offspring of particle i within one of ``N * w_i``.

    Args:
        weights: Normalized weights.
        rng: The random number generator.

    Returns:
        Array of N ancestor indices, in non-decreasing order.
    """
    weights = np.asarray(weights, dtype=float)
    n = len(weights)
    positions = (rng.random() + np.arange(n)) / n
    cumulative = np.cumsum(weights)
    cumulative[-1] = 1.0
    return np.searchsorted(cumulative, positions, side="right")


def spawn_generators(seed: int | np.random.SeedSequence | None, n: int) -> list[np.random.Generator]:
    """Creates ``n`` statistically independent random number generators.

    Streams are derived from a single seed, so the stream handed to unit i
    depends only on the seed and on i, never on execution order.
    """
    if not isinstance(seed, np.random.SeedSequence):
        seed = np.random.SeedSequence(seed)
    return [np.random.default_rng(child) for child in seed.spawn(n)]
