# lazytiff/__init__.py

from .lazytiff import *
from .lazytiff import __all__, __doc__, __version__

# constants are repeated for documentation

__version__ = __version__
"""Lazytiff version string."""
