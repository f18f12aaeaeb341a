class TreeError(Exception):
    """An Exception class for the Tree class."""

    pass


class NodeNotFound(TreeError):
    """Raised when a query or mutation references a node not in the tree."""

    pass


class NodeAlreadyExists(TreeError):
    """Raised when an explicitly requested node id is already in use."""

    pass


class TopologyError(TreeError):
    """Raised when a mutation would break the rooted-tree structure."""

    pass


class InvalidMove(Exception):
    """Raised when a proposal move's precondition fails on a tree."""

    pass


class ProposalMoveError(Exception):
    """An Exception class for malformed proposal move mixtures."""

    pass


class LikelihoodEvaluationError(Exception):
    """Raised when a likelihood or prior returns an invalid score."""

    pass


class SamplerError(Exception):
    """An Exception class for the MCMC and SMC samplers."""

    pass


class SchedulerError(Exception):
    """Raised when a worker fails or the scheduler is misconfigured."""

    pass


class SamplerConfigError(Exception):
    """An Exception class for malformed sampler configuration files."""

    pass


class UnspecifiedConfigParameterError(Exception):
    """Raised when a required configuration parameter is missing."""

    pass
