"""
Tests for arboreal/data/NodeRegistry.py
"""

import pytest

from arboreal.data import NodeRegistry
from arboreal.mixins import NodeAlreadyExists, NodeNotFound


def test_allocate_is_monotonic():
    registry = NodeRegistry()
    assert [registry.allocate() for _ in range(3)] == [0, 1, 2]

    registry.reserve(10)
    assert registry.allocate() == 11

    registry.discard(11)
    assert registry.allocate() == 12
    assert registry.is_consistent()


def test_reserve_rejects_bad_ids():
    registry = NodeRegistry([0])
    with pytest.raises(NodeAlreadyExists):
        registry.reserve(0)
    with pytest.raises(ValueError):
        registry.reserve(-1)
    with pytest.raises(ValueError):
        registry.reserve("a")
    with pytest.raises(ValueError):
        registry.reserve(True)
    assert len(registry) == 1


def test_labels_and_index():
    registry = NodeRegistry([0, 1, 2])
    registry.set_label(1, "x")
    registry.set_label(2, "x")

    assert registry.get_label(0) is None
    assert registry.nodes_with_label("x") == {1, 2}
    assert registry.labeled_nodes == [1, 2]

    registry.set_label(2, "y")
    assert registry.nodes_with_label("x") == {1}
    assert registry.nodes_with_label("y") == {2}

    registry.set_label(1, None)
    assert registry.nodes_with_label("x") == set()
    assert registry.labels == {2: "y"}
    assert registry.is_consistent()


def test_unhashable_label_keeps_old_label():
    registry = NodeRegistry([0, 1])
    registry.set_label(1, "x")
    with pytest.raises(TypeError):
        registry.set_label(1, ["y"])

    assert registry.get_label(1) == "x"
    assert registry.nodes_with_label("x") == {1}
    assert registry.is_consistent()


def test_labels_property_is_a_copy():
    registry = NodeRegistry([0])
    registry.set_label(0, "root")
    registry.labels[0] = "changed"
    assert registry.get_label(0) == "root"


def test_discard_releases_label():
    registry = NodeRegistry([0, 1])
    registry.set_label(1, "x")
    registry.discard(1)

    assert 1 not in registry
    assert registry.nodes_with_label("x") == set()
    with pytest.raises(NodeNotFound):
        registry.get_label(1)
    with pytest.raises(NodeNotFound):
        registry.discard(1)


def test_swap():
    registry = NodeRegistry([0, 1, 2])
    registry.set_label(0, "a")
    registry.set_label(1, "b")

    registry.swap(0, 1)
    assert registry.labels == {0: "b", 1: "a"}

    registry.swap(1, 2)
    assert registry.labels == {0: "b", 2: "a"}
    assert registry.is_consistent()


def test_swap_missing_node_changes_nothing():
    registry = NodeRegistry([0, 1])
    registry.set_label(0, "a")
    with pytest.raises(NodeNotFound):
        registry.swap(0, 5)
    assert registry.labels == {0: "a"}


def test_copy_is_independent():
    registry = NodeRegistry([0, 1])
    registry.set_label(1, "x")

    clone = registry.copy()
    assert clone == registry

    clone.set_label(1, "y")
    clone.allocate()
    assert registry.get_label(1) == "x"
    assert registry.next_id == 2
    assert clone != registry
