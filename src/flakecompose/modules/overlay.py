"""Built-in SourceOverlay module.

Exposes attributes of a source as named overlays so later modules can install
them by name, the way a flake's ``overlays.default`` adds its packages to a
package set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from flakecompose.models import PLATFORM_PLACEHOLDER, Artifact

if TYPE_CHECKING:
    from flakecompose.composer import OverlayFn, PrevFn, ProfileBuilder


@dataclass(frozen=True, slots=True)
class SourceOverlay:
    """Register one overlay per attribute under ``<prefix>.<attribute>`` of *source*.

    ``prefix`` may contain ``{platform}``; it is substituted with the profile's
    platform when the overlay is looked up.
    """

    source: str
    attributes: tuple[str, ...]
    prefix: tuple[str, ...] = ("packages", PLATFORM_PLACEHOLDER)
    name: str = "source-overlay"

    def setup(self, profile: ProfileBuilder) -> None:
        for attribute in self.attributes:
            profile.overlay(attribute, self._overlay_for(attribute))

    def install(self, profile: ProfileBuilder) -> None:
        """Overlays only; nothing is installed."""

    def apply(self, profile: ProfileBuilder) -> None:
        """Convenience: run setup() then install() through the profile."""
        profile.apply(self)

    def _overlay_for(self, attribute: str) -> OverlayFn:
        def overlay(profile: ProfileBuilder, prev: PrevFn) -> Artifact:
            return profile.select(self.source, *self.prefix, attribute)

        return overlay
