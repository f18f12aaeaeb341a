"""Module defining ProposalMove, the set of tree-space mutations used by samplers.

The set of move kinds is closed, so a move is represented as a tagged value
(a MoveKind plus its arguments) rather than as a class hierarchy. Every kind
shares the same contract:

* ``is_valid(tree)`` checks the move's precondition on a tree.
* ``apply(tree)`` returns a mutated copy of the tree together with the log
  Hastings correction ``log q(new -> old) - log q(old -> new)``. The input
  tree is never modified. If the precondition fails, InvalidMove is raised.

The proposal ratios assume that moves are drawn with
:func:`arboreal.moves.sample_move`, which picks a kind from a fixed mixture
and then picks the kind's arguments uniformly.
"""

import math
from dataclasses import dataclass
from enum import Enum

from arboreal.data import Tree
from arboreal.mixins import InvalidMove


class MoveKind(str, Enum):
    """
    The kinds of tree-space mutation.

    Kinds:
        ADD_NODE: Attach a new unlabeled leaf under ``target``.
        REMOVE_LEAF: Remove the unlabeled, non-root leaf ``node``. This is the
            inverse of ADD_NODE.
        SWAP_LABELS: Exchange the labels of ``node`` and ``target``.
        PRUNE_REGRAFT: Detach the subtree rooted at ``node`` and attach it
            under ``target``.
    """

    ADD_NODE = "add_node"
    REMOVE_LEAF = "remove_leaf"
    SWAP_LABELS = "swap_labels"
    PRUNE_REGRAFT = "prune_regraft"


def removable_leaves(tree: Tree) -> list[int]:
    """Leaves that a REMOVE_LEAF move may target: unlabeled and not the root."""
    return [n for n in tree.leaves if n != tree.root and tree.get_label(n) is None]


def regraft_targets(tree: Tree, node: int) -> list[int]:
    """Nodes that the subtree rooted at ``node`` may be regrafted under.

    Excludes the subtree itself and the node's current parent.
    """
    excluded = tree.get_descendants(node) | {node, tree.get_parent(node)}
    return sorted(tree.get_nodes() - excluded)


@dataclass(frozen=True)
class ProposalMove:
    """A single proposed mutation of a tree.

    Args:
        kind: Which mutation to perform.
        node: The node being moved, removed or relabeled (unused for
            ADD_NODE).
        target: The parent for ADD_NODE and PRUNE_REGRAFT, or the second
            node for SWAP_LABELS.
        log_kind_ratio: Log ratio of the probability of drawing the reverse
            move's kind to that of drawing this move's kind. Only non-zero
            for the ADD_NODE/REMOVE_LEAF pair.
    """

    kind: MoveKind
    node: int | None = None
    target: int | None = None
    log_kind_ratio: float = 0.0

    def is_valid(self, tree: Tree) -> bool:
        """Checks whether the move can be applied to ``tree``."""
        if self.kind == MoveKind.ADD_NODE:
            return self.target is not None and tree.contains(self.target)

        if self.node is None or not tree.contains(self.node):
            return False

        if self.kind == MoveKind.REMOVE_LEAF:
            return (
                self.node != tree.root
                and tree.is_leaf(self.node)
                and tree.get_label(self.node) is None
            )

        if self.target is None or not tree.contains(self.target):
            return False

        if self.kind == MoveKind.SWAP_LABELS:
            return self.node != self.target and (
                tree.get_label(self.node) is not None or tree.get_label(self.target) is not None
            )

        if self.kind == MoveKind.PRUNE_REGRAFT:
            return (
                self.node != tree.root
                and self.target != tree.get_parent(self.node)
                and self.target != self.node
                and self.target not in tree.get_descendants(self.node)
            )

        raise ValueError(f"Unknown move kind {self.kind!r}.")

    def apply(self, tree: Tree) -> tuple[Tree, float]:
        """Applies the move to a copy of ``tree``.

        Args:
            tree: The current tree. It is not modified.

        Returns:
            The proposed tree and the log proposal ratio
            ``log q(new -> old) - log q(old -> new)``.

        Raises:
            InvalidMove if the move's precondition does not hold on ``tree``.
        """
        if not self.is_valid(tree):
            raise InvalidMove(f"{self} is not applicable to {tree!r}.")

        new_tree = tree.copy()

        if self.kind == MoveKind.ADD_NODE:
            # forward: pick the parent among n nodes; reverse: pick the new
            # leaf among the removable leaves of the proposed tree
            n_parents = len(tree)
            new_tree.add_node(self.target)
            n_removable = len(removable_leaves(new_tree))
            log_ratio = math.log(n_parents) - math.log(n_removable)

        elif self.kind == MoveKind.REMOVE_LEAF:
            n_removable = len(removable_leaves(tree))
            new_tree.remove_leaf(self.node)
            n_parents = len(new_tree)
            log_ratio = math.log(n_removable) - math.log(n_parents)

        elif self.kind == MoveKind.SWAP_LABELS:
            new_tree.swap_labels(self.node, self.target)
            log_ratio = 0.0

        else:
            # the number of valid targets depends only on the subtree size,
            # which the move does not change
            new_tree.prune_and_reattach(self.node, self.target)
            log_ratio = 0.0

        return new_tree, log_ratio + self.log_kind_ratio

    def inverse(self, tree: Tree, new_tree: Tree) -> "ProposalMove":
        """Returns the move that takes ``new_tree`` back to ``tree``.

        Args:
            tree: The tree the move was applied to.
            new_tree: The result of applying the move to ``tree``.
        """
        if self.kind == MoveKind.ADD_NODE:
            (added,) = new_tree.get_nodes() - tree.get_nodes()
            return ProposalMove(MoveKind.REMOVE_LEAF, node=added, log_kind_ratio=-self.log_kind_ratio)
        if self.kind == MoveKind.REMOVE_LEAF:
            return ProposalMove(
                MoveKind.ADD_NODE,
                target=tree.get_parent(self.node),
                log_kind_ratio=-self.log_kind_ratio,
            )
        if self.kind == MoveKind.SWAP_LABELS:
            return self
        return ProposalMove(MoveKind.PRUNE_REGRAFT, node=self.node, target=tree.get_parent(self.node))
