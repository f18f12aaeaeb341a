"""Module describing the basic data structure for arboreal - the Tree.

A Tree is a rooted, labeled, mutable tree whose vertices are small integer
ids. The topology is stored as two flat index structures, a parent map and a
children map, which are kept as exact inverses of one another. This makes both
"who is my parent" and "who are my children" constant-time lookups, which
matters because proposal moves query the topology many times per sampler
step.

Labels (for example, the identity of the observed cell a node represents) are
stored separately from topology in a NodeRegistry. Swapping labels therefore
never touches the parent or children maps.

A Tree is owned exclusively by a single chain or particle. Whenever a sampler
needs to branch, it must call `copy` rather than share the object.
"""

from collections.abc import Hashable, Iterator

from arboreal.data.NodeRegistry import NodeRegistry
from arboreal.mixins import NodeAlreadyExists, NodeNotFound, TopologyError


class Tree:
    """Rooted tree with integer node ids and optional node labels.

    The following invariants hold before and after every public method:
    ``parent`` and ``children`` are mutual inverses, the structure is
    connected and acyclic with a single root, the node set is exactly the
    root plus the domain of ``parent``, and no map references a node that is
    not in the tree. Every mutator validates its arguments before touching
    any state, so a failed call leaves the tree exactly as it was.

    Args:
        root: Id of the root node.
        root_label: Optional label for the root.
    """

    def __init__(self, root: int = 0, root_label: Hashable | None = None) -> None:
        self._registry = NodeRegistry([root])
        self._root = root
        self._nodes = {root}
        self._parent: dict[int, int] = {}
        self._children: dict[int, set[int]] = {root: set()}
        self.__cache = {}

        if root_label is not None:
            self._registry.set_label(root, root_label)

    @property
    def root(self) -> int:
        """Returns the root of the tree."""
        return self._root

    def get_root(self) -> int:
        return self._root

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node: object) -> bool:
        return node in self._nodes

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._nodes))

    def contains(self, node: int) -> bool:
        """Returns whether the node is currently in the tree."""
        return node in self._nodes

    def get_nodes(self) -> frozenset[int]:
        """Returns the current node membership.

        The returned set is immutable and cached until the next topology
        change, so repeated calls are cheap.
        """
        if "nodes" not in self.__cache:
            self.__cache["nodes"] = frozenset(self._nodes)
        return self.__cache["nodes"]

    @property
    def leaves(self) -> list[int]:
        """Returns the leaves of the tree, sorted by id."""
        if "leaves" not in self.__cache:
            self.__cache["leaves"] = sorted(n for n in self._nodes if not self._children[n])
        return self.__cache["leaves"][:]

    @property
    def edges(self) -> list[tuple[int, int]]:
        """Returns all (parent, child) edges, sorted."""
        return sorted((p, c) for c, p in self._parent.items())

    def is_leaf(self, node: int) -> bool:
        self.__check_node(node)
        return not self._children[node]

    def is_root(self, node: int) -> bool:
        self.__check_node(node)
        return node == self._root

    def get_parent(self, node: int) -> int | None:
        """Gets the parent of a node.

        Args:
            node: A node in the tree.

        Returns:
            The parent of the node, or None if the node is the root.

        Raises:
            NodeNotFound if the node is not in the tree.
        """
        self.__check_node(node)
        return self._parent.get(node)

    def get_children(self, node: int) -> set[int]:
        """Gets the children of a node.

        Args:
            node: A node in the tree.

        Returns:
            A new (possibly empty) set with the direct children of the node.

        Raises:
            NodeNotFound if the node is not in the tree.
        """
        self.__check_node(node)
        return set(self._children[node])

    def is_child(self, child: int, parent: int) -> bool:
        """Checks whether ``child`` is a direct child of ``parent``.

        Raises:
            NodeNotFound if either node is not in the tree.
        """
        self.__check_node(child)
        self.__check_node(parent)
        return self._parent.get(child) == parent

    def is_parent(self, parent: int, child: int) -> bool:
        return self.is_child(child, parent)

    def get_label(self, node: int) -> Hashable | None:
        """Returns the label of a node, or None for unlabeled nodes.

        Raises:
            NodeNotFound if the node is not in the tree.
        """
        self.__check_node(node)
        return self._registry.get_label(node)

    def set_label(self, node: int, label: Hashable | None) -> None:
        self.__check_node(node)
        self._registry.set_label(node, label)

    def get_labels(self) -> dict[int, Hashable]:
        """Returns a copy of the mapping from labeled nodes to their labels."""
        return self._registry.labels

    def nodes_with_label(self, label: Hashable) -> set[int]:
        return self._registry.nodes_with_label(label)

    @property
    def labeled_nodes(self) -> list[int]:
        return self._registry.labeled_nodes

    def add_node(
        self,
        parent: int,
        node: int | None = None,
        label: Hashable | None = None,
    ) -> int:
        """Adds a new leaf under an existing parent.

        Args:
            parent: The node to attach the new leaf to.
            node: An explicit id for the new node. If None, a fresh id is
                allocated.
            label: Optional label for the new node.

        Returns:
            The id of the new node.

        Raises:
            NodeNotFound if ``parent`` is not in the tree.
            NodeAlreadyExists if an explicit ``node`` id is already in use.
            TypeError if ``label`` is not hashable.
        """
        self.__check_node(parent)
        if node is not None and node in self._registry:
            raise NodeAlreadyExists(f"Node {node} already exists.")
        if label is not None:
            # fail before an id is taken
            hash(label)

        if node is None:
            node = self._registry.allocate()
        else:
            self._registry.reserve(node)
        if label is not None:
            self._registry.set_label(node, label)

        self.__attach(parent, node)
        self._nodes.add(node)
        self._children[node] = set()
        self.__cache = {}
        return node

    def remove_leaf(self, node: int) -> None:
        """Removes a leaf from the tree, together with its label.

        Raises:
            NodeNotFound if the node is not in the tree.
            TopologyError if the node is the root or has children, since
                removing it would disconnect the tree.
        """
        self.__check_node(node)
        if node == self._root:
            raise TopologyError("The root cannot be removed.")
        if self._children[node]:
            raise TopologyError(f"Node {node} is not a leaf.")

        self.__detach(node)
        del self._children[node]
        self._nodes.remove(node)
        self._registry.discard(node)
        self.__cache = {}

    def swap_labels(self, node1: int, node2: int) -> None:
        """Exchanges the labels of two nodes, leaving topology untouched.

        If only one of the nodes is labeled, its label moves to the other
        node and it becomes unlabeled.

        Raises:
            NodeNotFound if either node is not in the tree. In that case no
                label is modified.
        """
        self.__check_node(node1)
        self.__check_node(node2)
        if node1 == node2:
            return
        self._registry.swap(node1, node2)

    def get_descendants(self, node: int) -> set[int]:
        """Returns the strict descendants of a node (possibly empty).

        Raises:
            NodeNotFound if the node is not in the tree.
        """
        self.__check_node(node)
        descendants = set()
        stack = list(self._children[node])
        while stack:
            n = stack.pop()
            descendants.add(n)
            stack.extend(self._children[n])
        return descendants

    def subtree_size(self, node: int) -> int:
        """Size of the subtree rooted at ``node``, including the node itself."""
        return len(self.get_descendants(node)) + 1

    def get_ancestors(self, node: int, include_node: bool = False) -> list[int]:
        """Returns the path from a node up to the root.

        Args:
            node: A node in the tree.
            include_node: Whether to include ``node`` itself.

        Returns:
            Ancestors ordered from the closest one to the root.
        """
        self.__check_node(node)
        ancestors = [node] if include_node else []
        while node in self._parent:
            node = self._parent[node]
            ancestors.append(node)
        return ancestors

    def depth_first_traverse_nodes(self, source: int | None = None) -> Iterator[int]:
        """Pre-order traversal from ``source`` (default: the root).

        Children are visited in increasing id order.
        """
        source = self._root if source is None else source
        self.__check_node(source)
        stack = [source]
        while stack:
            n = stack.pop()
            yield n
            stack.extend(sorted(self._children[n], reverse=True))

    def calculate_height(self) -> int:
        """Number of nodes on the longest root-to-leaf path."""
        return self.calculate_height_from_node(self._root)

    def calculate_height_from_node(self, node: int) -> int:
        """Height of the subtree rooted at ``node``. A leaf has height 1."""
        self.__check_node(node)
        height = 0
        frontier = [node]
        while frontier:
            height += 1
            frontier = [c for n in frontier for c in self._children[n]]
        return height

    def prune_and_reattach(self, node: int, new_parent: int) -> None:
        """Prunes the subtree rooted at ``node`` and regrafts it under ``new_parent``.

        Args:
            node: Root of the subtree to move.
            new_parent: The node that will become the parent of ``node``.

        Raises:
            NodeNotFound if either node is not in the tree.
            TopologyError if ``node`` is the root, if ``node == new_parent``,
                or if ``new_parent`` is a descendant of ``node``.
        """
        self.__check_node(node)
        self.__check_node(new_parent)
        if node == new_parent:
            raise TopologyError("A node cannot be reattached to itself.")
        if node == self._root:
            raise TopologyError("The root cannot be pruned.")
        if new_parent in self.get_descendants(node):
            raise TopologyError(f"Node {new_parent} lies in the subtree of node {node}.")

        self.__detach(node)
        self.__attach(new_parent, node)
        self.__cache = {}

    def copy(self) -> "Tree":
        """Returns an independent deep copy of the tree."""
        new = Tree.__new__(Tree)
        new._registry = self._registry.copy()
        new._root = self._root
        new._nodes = set(self._nodes)
        new._parent = dict(self._parent)
        new._children = {n: set(c) for n, c in self._children.items()}
        new.__cache = {}
        return new

    def __copy__(self) -> "Tree":
        return self.copy()

    def __deepcopy__(self, memo) -> "Tree":
        return self.copy()

    def is_valid(self) -> bool:
        """Checks every structural invariant of the tree."""
        if self._root in self._parent:
            return False
        if self._nodes != {self._root} | set(self._parent):
            return False
        if set(self._children) != self._nodes:
            return False

        for child, parent in self._parent.items():
            if parent not in self._nodes or child not in self._children[parent]:
                return False
        for parent, children in self._children.items():
            for child in children:
                if self._parent.get(child) != parent:
                    return False

        # every node must reach the root exactly once
        reached = set(self.depth_first_traverse_nodes())
        if reached != self._nodes:
            return False

        if any(node not in self._registry for node in self._nodes):
            return False
        return len(self._registry) == len(self._nodes) and self._registry.is_consistent()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tree):
            return NotImplemented
        return (
            self._root == other._root
            and self._nodes == other._nodes
            and self._parent == other._parent
            and self._registry.labels == other._registry.labels
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"Tree(root={self._root}, n_nodes={len(self._nodes)})"

    def __str__(self) -> str:
        lines = [self.__format_node(self._root)]
        self.__render(self._root, "", lines)
        return "\n".join(lines)

    def __format_node(self, node: int) -> str:
        label = self._registry.get_label(node)
        return str(node) if label is None else f"{node} [{label}]"

    def __render(self, node: int, prefix: str, lines: list[str]) -> None:
        children = sorted(self._children[node])
        for i, child in enumerate(children):
            is_last = i == len(children) - 1
            lines.append(f"{prefix}{'└─' if is_last else '├─'}{self.__format_node(child)}")
            self.__render(child, prefix + ("  " if is_last else "│ "), lines)

    def __check_node(self, node: int) -> None:
        if node not in self._nodes:
            raise NodeNotFound(f"Node {node} does not exist.")

    def __attach(self, parent: int, child: int) -> None:
        self._parent[child] = parent
        self._children[parent].add(child)

    def __detach(self, child: int) -> None:
        parent = self._parent.pop(child)
        self._children[parent].discard(child)
