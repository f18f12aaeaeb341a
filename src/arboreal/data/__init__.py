"""Top level for data."""

from .NodeRegistry import NodeRegistry
from .Tree import Tree
from .utilities import (
    create_chain_tree,
    create_star_tree,
    from_networkx,
    to_networkx,
    topology_key,
)
