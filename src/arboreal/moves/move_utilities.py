"""Utilities for drawing proposal moves from a mixture of move kinds."""

import math
from collections.abc import Mapping

import numpy as np

from arboreal.data import Tree
from arboreal.mixins import InvalidMove, ProposalMoveError
from arboreal.moves.ProposalMove import MoveKind, ProposalMove, regraft_targets, removable_leaves

DEFAULT_MOVE_WEIGHTS = {
    MoveKind.SWAP_LABELS: 0.5,
    MoveKind.PRUNE_REGRAFT: 0.5,
}


def normalize_move_weights(
    weights: Mapping[MoveKind | str, float] | None = None,
) -> dict[MoveKind, float]:
    """Validates and normalizes a mixture of move kinds.

    Args:
        weights: Non-negative weight per move kind, keyed by MoveKind or by
            its name (e.g. "prune_regraft"). Kinds that are not mentioned get
            weight 0. If None, the default mixture over label swaps and
            prune-regraft moves is used, which keeps the tree size fixed.

    Returns:
        A dictionary mapping every MoveKind to its probability.

    Raises:
        ProposalMoveError if a kind is unknown, a weight is negative or not
            finite, or the weights sum to zero.
    """
    if weights is None:
        weights = DEFAULT_MOVE_WEIGHTS

    normalized = {kind: 0.0 for kind in MoveKind}
    for key, weight in weights.items():
        try:
            kind = MoveKind(key)
        except ValueError:
            raise ProposalMoveError(f"Unknown move kind {key!r}.") from None
        weight = float(weight)
        if not math.isfinite(weight) or weight < 0:
            raise ProposalMoveError(f"Weight for {kind.value} must be a non-negative number.")
        normalized[kind] += weight

    total = sum(normalized.values())
    if total <= 0:
        raise ProposalMoveError("At least one move kind must have a positive weight.")

    return {kind: weight / total for kind, weight in normalized.items()}


def sample_move(
    tree: Tree,
    rng: np.random.Generator,
    weights: Mapping[MoveKind, float],
) -> ProposalMove:
    """Draws a proposal move for ``tree``.

    A move kind is drawn from ``weights``; the kind's arguments are then drawn
    uniformly among the nodes it may act on:

    * ADD_NODE: a parent among all nodes.
    * REMOVE_LEAF: a leaf among the unlabeled non-root leaves.
    * SWAP_LABELS: an unordered pair among the labeled nodes.
    * PRUNE_REGRAFT: a non-root node, then a target among the nodes outside
      its subtree other than its current parent.

    Kind probabilities do not depend on the tree, so when the drawn kind has
    no valid instance the caller can treat the draw as a rejection without
    breaking detailed balance.

    Args:
        tree: The current tree.
        rng: Random number generator owned by the caller.
        weights: Normalized kind probabilities, see
            :func:`normalize_move_weights`.

    Returns:
        A move that is valid for ``tree``.

    Raises:
        InvalidMove if the drawn kind cannot act on ``tree``.
    """
    kinds = [kind for kind in MoveKind if weights.get(kind, 0) > 0]
    probabilities = np.array([weights[kind] for kind in kinds], dtype=float)
    kind = kinds[rng.choice(len(kinds), p=probabilities / probabilities.sum())]

    if kind == MoveKind.ADD_NODE:
        nodes = sorted(tree.get_nodes())
        return ProposalMove(
            kind,
            target=nodes[rng.integers(len(nodes))],
            log_kind_ratio=_log_kind_ratio(weights, MoveKind.REMOVE_LEAF, kind),
        )

    if kind == MoveKind.REMOVE_LEAF:
        leaves = removable_leaves(tree)
        if not leaves:
            raise InvalidMove("No unlabeled leaves to remove.")
        return ProposalMove(
            kind,
            node=leaves[rng.integers(len(leaves))],
            log_kind_ratio=_log_kind_ratio(weights, MoveKind.ADD_NODE, kind),
        )

    if kind == MoveKind.SWAP_LABELS:
        labeled = tree.labeled_nodes
        if len(labeled) < 2:
            raise InvalidMove("Fewer than two labeled nodes to swap.")
        i, j = rng.choice(len(labeled), size=2, replace=False)
        return ProposalMove(kind, node=labeled[i], target=labeled[j])

    candidates = sorted(tree.get_nodes() - {tree.root})
    if not candidates:
        raise InvalidMove("A single-node tree has no subtree to prune.")
    node = candidates[rng.integers(len(candidates))]
    targets = regraft_targets(tree, node)
    if not targets:
        raise InvalidMove(f"Node {node} has nowhere to be regrafted.")
    return ProposalMove(kind, node=node, target=targets[rng.integers(len(targets))])


def _log_kind_ratio(weights: Mapping[MoveKind, float], reverse: MoveKind, forward: MoveKind) -> float:
    reverse_weight = weights.get(reverse, 0.0)
    if reverse_weight <= 0:
        # the move cannot be undone, so it must never be accepted
        return -math.inf
    return math.log(reverse_weight) - math.log(weights[forward])
