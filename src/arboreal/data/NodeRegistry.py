"""Module defining the NodeRegistry, which issues node ids for a Tree.

Every Tree owns exactly one NodeRegistry. The registry is responsible for two
pieces of bookkeeping that the topology maps do not cover: handing out fresh,
never-reused node identifiers, and tracking which label is attached to which
node (and, inversely, which nodes carry a given label).
"""

import copy
from collections.abc import Hashable, Iterable

from arboreal.mixins import NodeAlreadyExists, NodeNotFound


class NodeRegistry:
    """Node identifier allocator and label index.

    Identifiers are non-negative integers. Freshly allocated ids are always
    one greater than the largest id reserved so far, so an id is never issued
    twice, even after the node it referred to has been discarded.

    Labels are arbitrary hashable payloads. A node may be unlabeled and
    several nodes may share a label; enforcing uniqueness is left to whatever
    model consumes the tree.

    Args:
        nodes: Node ids to reserve up front.
    """

    def __init__(self, nodes: Iterable[int] | None = None) -> None:
        self._next_id = 0
        self._reserved = set()
        self._labels: dict[int, Hashable] = {}
        self._label_index: dict[Hashable, set[int]] = {}

        if nodes is not None:
            for node in nodes:
                self.reserve(node)

    def __contains__(self, node: int) -> bool:
        return node in self._reserved

    def __len__(self) -> int:
        return len(self._reserved)

    @property
    def next_id(self) -> int:
        """The id that the next call to `allocate` will return."""
        return self._next_id

    def reserve(self, node: int) -> int:
        """Reserves an explicitly chosen node id.

        Args:
            node: The id to reserve.

        Returns:
            The reserved id.

        Raises:
            NodeAlreadyExists if the id is currently reserved.
            ValueError if the id is not a non-negative integer.
        """
        if isinstance(node, bool) or not isinstance(node, int) or node < 0:
            raise ValueError(f"Node ids must be non-negative integers, got {node!r}.")
        if node in self._reserved:
            raise NodeAlreadyExists(f"Node {node} already exists.")

        self._reserved.add(node)
        self._next_id = max(self._next_id, node + 1)
        return node

    def allocate(self) -> int:
        """Allocates a fresh node id."""
        return self.reserve(self._next_id)

    def discard(self, node: int) -> None:
        """Releases a node and its label.

        The id itself is not recycled.

        Raises:
            NodeNotFound if the node is not reserved.
        """
        self.__check_reserved(node)
        self.__unset_label(node)
        self._reserved.remove(node)

    def get_label(self, node: int) -> Hashable | None:
        """Returns the label of a node, or None if the node is unlabeled."""
        self.__check_reserved(node)
        return self._labels.get(node)

    def set_label(self, node: int, label: Hashable | None) -> None:
        """Attaches a label to a node, replacing any previous label.

        Setting the label to None leaves the node unlabeled.

        Raises:
            NodeNotFound if the node is not reserved.
            TypeError if the label is not hashable. The registry is unchanged.
        """
        self.__check_reserved(node)
        if label is not None:
            hash(label)
        self.__unset_label(node)
        if label is not None:
            self._labels[node] = label
            self._label_index.setdefault(label, set()).add(node)

    def nodes_with_label(self, label: Hashable) -> set[int]:
        """Returns all nodes carrying a label (possibly empty)."""
        return set(self._label_index.get(label, ()))

    @property
    def labels(self) -> dict[int, Hashable]:
        """A copy of the node to label mapping."""
        return dict(self._labels)

    @property
    def labeled_nodes(self) -> list[int]:
        return sorted(self._labels)

    def swap(self, node1: int, node2: int) -> None:
        """Exchanges the labels of two nodes.

        Both nodes are validated before anything is modified.

        Raises:
            NodeNotFound if either node is not reserved.
        """
        self.__check_reserved(node1)
        self.__check_reserved(node2)

        label1 = self._labels.get(node1)
        label2 = self._labels.get(node2)
        self.set_label(node1, label2)
        self.set_label(node2, label1)

    def is_consistent(self) -> bool:
        """Checks that the label map and the label index are mutual inverses."""
        for node, label in self._labels.items():
            if node not in self._reserved:
                return False
            if node not in self._label_index.get(label, ()):
                return False
        for label, nodes in self._label_index.items():
            if not nodes:
                return False
            if any(self._labels.get(node) != label for node in nodes):
                return False
        return self._next_id > max(self._reserved, default=-1)

    def copy(self) -> "NodeRegistry":
        return copy.deepcopy(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NodeRegistry):
            return NotImplemented
        return self._reserved == other._reserved and self._labels == other._labels

    def __check_reserved(self, node: int) -> None:
        if node not in self._reserved:
            raise NodeNotFound(f"Node {node} does not exist.")

    def __unset_label(self, node: int) -> None:
        label = self._labels.pop(node, None)
        if label is None:
            return
        holders = self._label_index[label]
        holders.discard(node)
        if not holders:
            del self._label_index[label]
