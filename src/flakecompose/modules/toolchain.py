"""Built-in Toolchain module.

Installs a composite toolchain artifact restricted to a component set, e.g.
``fenix.packages.<platform>.complete`` with cargo, clippy, rust-src, rustc and
rustfmt.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from flakecompose.errors import ValidationError
from flakecompose.models import PLATFORM_PLACEHOLDER

if TYPE_CHECKING:
    from flakecompose.composer import ProfileBuilder

DEFAULT_COMPONENTS: tuple[str, ...] = (
    "cargo",
    "clippy",
    "rust-src",
    "rustc",
    "rustfmt",
)


@dataclass(frozen=True, slots=True)
class Toolchain:
    source: str = "fenix"
    variant: str = "complete"
    components: tuple[str, ...] = DEFAULT_COMPONENTS
    prefix: tuple[str, ...] = ("packages", PLATFORM_PLACEHOLDER)
    name: str = "toolchain"

    def setup(self, profile: ProfileBuilder) -> None:
        """No overlays for the toolchain."""

    def install(self, profile: ProfileBuilder) -> None:
        if not self.components:
            raise ValidationError(
                "Toolchain requires at least one component.",
                context={"source": self.source, "variant": self.variant},
            )
        profile.install(
            profile.select(
                self.source,
                *self.prefix,
                self.variant,
                components=self.components,
            )
        )

    def apply(self, profile: ProfileBuilder) -> None:
        """Convenience: run setup() then install() through the profile."""
        profile.apply(self)
