"""Built-in Devtools module.

Installs auxiliary developer tools next to a toolchain. Names resolve through
the profile, so overlays registered by earlier modules (for instance a
``rust-analyzer`` overlay from the toolchain source) take precedence over the
base package set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flakecompose.composer import ProfileBuilder

DEVTOOLS_PACKAGES: tuple[str, ...] = (
    "git",
    "gnumake",
    "pkg-config",
)


@dataclass(frozen=True, slots=True)
class Devtools:
    packages: tuple[str, ...] = DEVTOOLS_PACKAGES
    extra: tuple[str, ...] = ()
    name: str = "devtools"

    def setup(self, profile: ProfileBuilder) -> None:
        """No overlays for devtools."""

    def install(self, profile: ProfileBuilder) -> None:
        for package in (*self.packages, *self.extra):
            profile.install(package)

    def apply(self, profile: ProfileBuilder) -> None:
        """Convenience: run setup() then install() through the profile."""
        profile.apply(self)
