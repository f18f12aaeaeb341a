class TreeWarning(UserWarning):
    """A Warning for the Tree class."""

    pass


class SamplerWarning(UserWarning):
    """A Warning for recoverable sampler conditions."""

    pass
