"""Top-level for arboreal development."""

from importlib.metadata import version

from . import data, moves, sampler

package_name = "arboreal"
__version__ = version(package_name)

__all__ = ["data", "moves", "sampler"]
