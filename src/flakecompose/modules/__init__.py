"""Built-in profile modules."""

from .declared import DeclaredModule
from .devtools import DEVTOOLS_PACKAGES, Devtools
from .overlay import SourceOverlay
from .toolchain import DEFAULT_COMPONENTS, Toolchain

__all__ = [
    "DEFAULT_COMPONENTS",
    "DEVTOOLS_PACKAGES",
    "DeclaredModule",
    "Devtools",
    "SourceOverlay",
    "Toolchain",
]
