"""Source provider interfaces and implementations."""

from .base import SourceProvider
from .nix import NixAttrTree, NixProvider
from .static import StaticProvider, leaves

__all__ = [
    "NixAttrTree",
    "NixProvider",
    "SourceProvider",
    "StaticProvider",
    "leaves",
]
