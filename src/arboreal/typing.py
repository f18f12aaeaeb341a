from collections.abc import Callable, Hashable

from arboreal.data import Tree

Node = int
Label = Hashable

Likelihood = Callable[[Tree], float]
"""Log-likelihood of a tree under an external model."""

Prior = Callable[[Tree], float]
"""Log-prior density of a tree."""
