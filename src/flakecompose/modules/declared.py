"""Data-driven module built from a declaration file entry."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from flakecompose.models import Artifact, ArtifactSelector

if TYPE_CHECKING:
    from flakecompose.composer import OverlayFn, PrevFn, ProfileBuilder


@dataclass(frozen=True, slots=True)
class DeclaredModule:
    """Overlays and packages declared as data.

    Overlay values and package entries are selectors; package entries may also
    be plain names resolved through the profile.
    """

    name: str
    overlays: Mapping[str, ArtifactSelector] = field(default_factory=dict)
    packages: tuple[str | ArtifactSelector, ...] = ()

    def setup(self, profile: ProfileBuilder) -> None:
        for overlay_name, selector in self.overlays.items():
            profile.overlay(overlay_name, _selector_overlay(selector))

    def install(self, profile: ProfileBuilder) -> None:
        for entry in self.packages:
            if isinstance(entry, ArtifactSelector):
                profile.install(
                    profile.select(entry.source, *entry.path, components=entry.components)
                )
            else:
                profile.install(entry)


def _selector_overlay(selector: ArtifactSelector) -> OverlayFn:
    def overlay(profile: ProfileBuilder, prev: PrevFn) -> Artifact:
        return profile.select(selector.source, *selector.path, components=selector.components)

    return overlay
