"""
Routes API par domaine.
"""

from . import mcp
from . import execute
from . import health

__all__ = [
    "mcp",
    "execute",
    "health",
]
