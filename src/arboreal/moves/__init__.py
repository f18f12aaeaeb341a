"""Top level for moves."""

from .move_utilities import DEFAULT_MOVE_WEIGHTS, normalize_move_weights, sample_move
from .ProposalMove import MoveKind, ProposalMove, regraft_targets, removable_leaves

__all__ = [
    "DEFAULT_MOVE_WEIGHTS",
    "MoveKind",
    "ProposalMove",
    "normalize_move_weights",
    "regraft_targets",
    "removable_leaves",
    "sample_move",
]
