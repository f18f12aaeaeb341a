"""
Tests for arboreal/data/utilities.py
"""

import networkx as nx
import pytest

from arboreal.data import (
    Tree,
    create_chain_tree,
    create_star_tree,
    from_networkx,
    to_networkx,
    topology_key,
)
from arboreal.mixins import NodeAlreadyExists, TreeError, TreeWarning


def test_create_star_tree():
    tree = create_star_tree(0, [1, 2, 3])
    assert tree.root == 0
    assert tree.get_children(0) == {1, 2, 3}
    assert tree.leaves == [1, 2, 3]
    assert tree.calculate_height() == 2
    assert tree.is_valid()

    with pytest.raises(NodeAlreadyExists):
        create_star_tree(0, [1, 1])


def test_create_chain_tree():
    tree = create_chain_tree([0, 1, 2, 3])
    assert tree.edges == [(0, 1), (1, 2), (2, 3)]
    assert tree.calculate_height() == 4
    assert tree.subtree_size(1) == 3
    assert tree.is_valid()

    assert create_chain_tree([7]).get_nodes() == {7}

    with pytest.raises(TreeError):
        create_chain_tree([])


def test_networkx_round_trip():
    tree = Tree(0, root_label="root")
    tree.add_node(0, node=1, label="a")
    tree.add_node(0, node=2)
    tree.add_node(2, node=5, label="b")

    graph = to_networkx(tree)
    assert set(graph.edges) == {(0, 1), (0, 2), (2, 5)}
    assert graph.nodes[2]["label"] is None
    assert graph.nodes[5]["label"] == "b"

    assert from_networkx(graph) == tree


def test_from_networkx_custom_attribute():
    graph = nx.DiGraph([(3, 4), (3, 5)])
    nx.set_node_attributes(graph, {4: "x"}, "cell")

    tree = from_networkx(graph, label_attribute="cell")
    assert tree.root == 3
    assert tree.get_label(4) == "x"
    assert tree.get_label(5) is None


@pytest.mark.parametrize(
    "edges",
    [
        [(0, 1), (1, 0)],
        [(0, 2), (1, 2)],
        [(0, 1), (2, 3)],
        [],
    ],
)
def test_from_networkx_rejects_non_trees(edges):
    graph = nx.DiGraph(edges)
    with pytest.raises(TreeError):
        from_networkx(graph)


def test_topology_key_ignores_ids_of_labeled_nodes():
    tree = create_star_tree(0, [1, 2])
    tree.set_label(1, "a")
    tree.set_label(2, "b")

    swapped = tree.copy()
    swapped.swap_labels(1, 2)

    assert tree != swapped
    assert topology_key(tree) == topology_key(swapped)
    assert topology_key(tree, use_labels=False) == topology_key(swapped, use_labels=False)

    chained = tree.copy()
    chained.prune_and_reattach(2, 1)
    assert topology_key(chained) != topology_key(tree)


def test_from_networkx_warns_on_shared_labels():
    graph = nx.DiGraph([(0, 1), (0, 2)])
    nx.set_node_attributes(graph, {1: "x", 2: "x"}, "label")

    with pytest.warns(TreeWarning):
        tree = from_networkx(graph)
    assert tree.nodes_with_label("x") == {1, 2}
