"""Source provider interface."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from flakecompose.models import Source


@runtime_checkable
class SourceProvider(Protocol):
    """Read-only access to remote content addressed by a locator.

    Artifact trees are nested mappings. Leaves are
    :class:`~flakecompose.models.ArtifactLeaf` values; a composite artifact is a
    mapping whose keys are the components it recognizes.
    """

    name: str

    def revision(self, source: Source) -> str:
        """Return the current immutable revision for *source*."""

    def artifact_tree(self, source: Source, revision: str) -> Mapping[str, Any]:
        """Return the artifact tree *source* exposes at *revision*."""
