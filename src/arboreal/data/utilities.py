"""General utilities for building and converting Tree objects."""

import collections
import warnings
from collections.abc import Hashable, Iterable

import networkx as nx

from arboreal.data.Tree import Tree
from arboreal.mixins import TreeError, TreeWarning


def create_star_tree(root: int, nodes: Iterable[int]) -> Tree:
    """Creates a tree in which every node is a direct child of the root.

    Args:
        root: Id of the root.
        nodes: Ids of the leaves.

    Returns:
        The star tree.

    Raises:
        NodeAlreadyExists if an id is repeated.
    """
    tree = Tree(root)
    for node in nodes:
        tree.add_node(root, node=node)
    return tree


def create_chain_tree(nodes: Iterable[int]) -> Tree:
    """Creates a path graph, each node being the parent of the next one.

    Args:
        nodes: Node ids ordered from the root downwards.

    Returns:
        The chain tree.

    Raises:
        TreeError if ``nodes`` is empty.
    """
    nodes = iter(nodes)
    try:
        current = next(nodes)
    except StopIteration:
        raise TreeError("The input list must contain at least one node.") from None

    tree = Tree(current)
    for node in nodes:
        tree.add_node(current, node=node)
        current = node
    return tree


def to_networkx(tree: Tree) -> nx.DiGraph:
    """Converts a Tree into a networkx DiGraph.

    Edges point from parent to child and labels are stored in the ``label``
    node attribute (None for unlabeled nodes).
    """
    graph = nx.DiGraph()
    graph.add_nodes_from(tree)
    graph.add_edges_from(tree.edges)
    nx.set_node_attributes(graph, {n: tree.get_label(n) for n in tree}, "label")
    return graph


def from_networkx(graph: nx.DiGraph, label_attribute: str = "label") -> Tree:
    """Builds a Tree from a networkx DiGraph.

    Args:
        graph: A directed graph whose nodes are non-negative integers and
            whose edges point from parent to child.
        label_attribute: Node attribute to read labels from.

    Returns:
        A Tree with the same topology and labels.

    Raises:
        TreeError if the graph is not a rooted tree (an arborescence).

    Warns:
        TreeWarning if several nodes carry the same label.
    """
    if graph.number_of_nodes() == 0 or not nx.is_arborescence(graph):
        raise TreeError("Input graph is not a rooted tree.")

    root = next(n for n in graph.nodes if graph.in_degree(n) == 0)
    labels = nx.get_node_attributes(graph, label_attribute)
    labels = {n: label for n, label in labels.items() if label is not None}

    if len(set(labels.values())) < len(labels):
        counts = collections.Counter(labels.values())
        shared = sorted(str(label) for label, count in counts.items() if count > 1)
        warnings.warn(
            f"Several nodes share the labels {', '.join(shared)}.",
            TreeWarning,
            stacklevel=2,
        )

    tree = Tree(root, root_label=labels.get(root))
    for parent, child in nx.bfs_edges(graph, root):
        tree.add_node(parent, node=child, label=labels.get(child))
    return tree


def topology_key(tree: Tree, use_labels: bool = True) -> frozenset[tuple[Hashable, Hashable]]:
    """A hashable description of the tree's edge set.

    With ``use_labels``, labeled nodes are referred to by their label and
    unlabeled ones by their id, so two trees that differ only in which ids
    carry which labels map to the same key. This is useful for tallying the
    states visited by a sampler.
    """

    def name(node: int) -> Hashable:
        if not use_labels:
            return node
        label = tree.get_label(node)
        return ("node", node) if label is None else ("label", label)

    return frozenset((name(parent), name(child)) for parent, child in tree.edges) | {
        ("root", name(tree.root))
    }
