"""
Tests for arboreal/moves/ProposalMove.py and arboreal/moves/move_utilities.py
"""

import math

import numpy as np
import pytest

from arboreal.data import Tree, create_chain_tree
from arboreal.mixins import InvalidMove, ProposalMoveError
from arboreal.moves import (
    MoveKind,
    ProposalMove,
    normalize_move_weights,
    regraft_targets,
    removable_leaves,
    sample_move,
)


@pytest.fixture
def labeled_tree():
    """
    0
    ├─1 [a]
    │ └─3
    └─2 [b]
    """
    tree = Tree(0)
    tree.add_node(0, node=1, label="a")
    tree.add_node(0, node=2, label="b")
    tree.add_node(1, node=3)
    return tree


def test_apply_does_not_modify_input(labeled_tree):
    before = labeled_tree.copy()
    moves = [
        ProposalMove(MoveKind.ADD_NODE, target=2),
        ProposalMove(MoveKind.REMOVE_LEAF, node=3),
        ProposalMove(MoveKind.SWAP_LABELS, node=1, target=2),
        ProposalMove(MoveKind.PRUNE_REGRAFT, node=1, target=2),
    ]
    for move in moves:
        new_tree, _ = move.apply(labeled_tree)
        assert new_tree.is_valid()
        assert new_tree != labeled_tree
        assert labeled_tree == before


def test_add_node_ratio(labeled_tree):
    new_tree, log_ratio = ProposalMove(MoveKind.ADD_NODE, target=2).apply(labeled_tree)
    assert new_tree.get_children(2) == {4}
    assert new_tree.get_label(4) is None
    # 4 possible parents forward, 2 removable leaves (3 and 4) backward
    assert log_ratio == pytest.approx(math.log(4) - math.log(2))


def test_remove_leaf_ratio(labeled_tree):
    new_tree, log_ratio = ProposalMove(MoveKind.REMOVE_LEAF, node=3).apply(labeled_tree)
    assert not new_tree.contains(3)
    # 1 removable leaf forward, 3 possible parents backward
    assert log_ratio == pytest.approx(math.log(1) - math.log(3))


def test_kind_ratio_is_included(labeled_tree):
    move = ProposalMove(MoveKind.ADD_NODE, target=0, log_kind_ratio=math.log(2))
    _, log_ratio = move.apply(labeled_tree)
    assert log_ratio == pytest.approx(math.log(4) - math.log(2) + math.log(2))


def test_swap_and_regraft_are_symmetric(labeled_tree):
    swapped, log_ratio = ProposalMove(MoveKind.SWAP_LABELS, node=1, target=3).apply(labeled_tree)
    assert log_ratio == 0.0
    assert swapped.get_label(3) == "a"
    assert swapped.get_label(1) is None

    regrafted, log_ratio = ProposalMove(MoveKind.PRUNE_REGRAFT, node=3, target=2).apply(labeled_tree)
    assert log_ratio == 0.0
    assert regrafted.get_parent(3) == 2


@pytest.mark.parametrize(
    "move",
    [
        ProposalMove(MoveKind.ADD_NODE, target=9),
        ProposalMove(MoveKind.REMOVE_LEAF, node=0),
        ProposalMove(MoveKind.REMOVE_LEAF, node=1),
        ProposalMove(MoveKind.REMOVE_LEAF, node=2),
        ProposalMove(MoveKind.SWAP_LABELS, node=1, target=1),
        ProposalMove(MoveKind.SWAP_LABELS, node=0, target=3),
        ProposalMove(MoveKind.PRUNE_REGRAFT, node=0, target=1),
        ProposalMove(MoveKind.PRUNE_REGRAFT, node=1, target=3),
        ProposalMove(MoveKind.PRUNE_REGRAFT, node=1, target=0),
        ProposalMove(MoveKind.PRUNE_REGRAFT, node=9, target=0),
    ],
)
def test_invalid_moves(labeled_tree, move):
    before = labeled_tree.copy()
    assert not move.is_valid(labeled_tree)
    with pytest.raises(InvalidMove):
        move.apply(labeled_tree)
    assert labeled_tree == before


def test_inverse_restores_tree(labeled_tree):
    moves = [
        ProposalMove(MoveKind.SWAP_LABELS, node=1, target=2),
        ProposalMove(MoveKind.PRUNE_REGRAFT, node=1, target=2),
        ProposalMove(MoveKind.REMOVE_LEAF, node=3),
    ]
    for move in moves:
        new_tree, log_ratio = move.apply(labeled_tree)
        inverse = move.inverse(labeled_tree, new_tree)
        restored, inverse_log_ratio = inverse.apply(new_tree)
        assert log_ratio + inverse_log_ratio == pytest.approx(0.0)
        if move.kind != MoveKind.REMOVE_LEAF:
            assert restored == labeled_tree
        else:
            # the re-added leaf gets a fresh id
            assert restored.get_children(1) == {4}


def test_removable_leaves_and_targets(labeled_tree):
    assert removable_leaves(labeled_tree) == [3]
    assert regraft_targets(labeled_tree, 1) == [2]
    assert regraft_targets(labeled_tree, 3) == [0, 2]


def test_normalize_move_weights():
    weights = normalize_move_weights({"swap_labels": 1, MoveKind.ADD_NODE: 3})
    assert weights[MoveKind.SWAP_LABELS] == pytest.approx(0.25)
    assert weights[MoveKind.ADD_NODE] == pytest.approx(0.75)
    assert weights[MoveKind.REMOVE_LEAF] == 0.0
    assert set(weights) == set(MoveKind)

    defaults = normalize_move_weights()
    assert defaults[MoveKind.SWAP_LABELS] == pytest.approx(0.5)
    assert defaults[MoveKind.PRUNE_REGRAFT] == pytest.approx(0.5)


@pytest.mark.parametrize(
    "weights",
    [
        {"rotate": 1.0},
        {"swap_labels": -1.0},
        {"swap_labels": math.inf},
        {"swap_labels": 0.0},
        {},
    ],
)
def test_normalize_move_weights_errors(weights):
    with pytest.raises(ProposalMoveError):
        normalize_move_weights(weights)


def test_sample_move_returns_valid_moves(labeled_tree):
    rng = np.random.default_rng(7)
    weights = normalize_move_weights({kind: 1.0 for kind in MoveKind})
    kinds = set()
    for _ in range(200):
        try:
            move = sample_move(labeled_tree, rng, weights)
        except InvalidMove:
            continue
        assert move.is_valid(labeled_tree)
        kinds.add(move.kind)
    assert kinds == set(MoveKind)


def test_sample_move_without_instances():
    rng = np.random.default_rng(0)
    tree = Tree(0)
    with pytest.raises(InvalidMove):
        sample_move(tree, rng, normalize_move_weights({"prune_regraft": 1}))
    with pytest.raises(InvalidMove):
        sample_move(tree, rng, normalize_move_weights({"swap_labels": 1}))
    with pytest.raises(InvalidMove):
        sample_move(tree, rng, normalize_move_weights({"remove_leaf": 1}))


def test_irreversible_add_is_never_accepted():
    rng = np.random.default_rng(0)
    tree = create_chain_tree([0, 1])
    move = sample_move(tree, rng, normalize_move_weights({"add_node": 1}))
    _, log_ratio = move.apply(tree)
    assert log_ratio == -math.inf
