"""Top level for mixins."""

from arboreal.mixins.errors import (
    InvalidMove,
    LikelihoodEvaluationError,
    NodeAlreadyExists,
    NodeNotFound,
    ProposalMoveError,
    SamplerConfigError,
    SamplerError,
    SchedulerError,
    TopologyError,
    TreeError,
    UnspecifiedConfigParameterError,
)
from arboreal.mixins.logging import logger
from arboreal.mixins.warnings import SamplerWarning, TreeWarning
