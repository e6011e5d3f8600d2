"""StackRail - command-line client for the StackRail task/priority tracker."""
from .__version__ import __version__

__all__ = ["__version__"]
