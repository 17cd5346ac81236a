"""In-memory source provider for tests and offline evaluation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from flakecompose.errors import BackendExecutionError
from flakecompose.models import ArtifactLeaf, Source


def leaves(*names: str, version: str | None = None) -> dict[str, ArtifactLeaf]:
    """Build a composite node exposing one leaf per name."""
    return {name: ArtifactLeaf(name=name, version=version) for name in names}


@dataclass(slots=True)
class StaticProvider:
    """Provider serving fixed artifact trees keyed by locator and revision."""

    name: str = "static"
    _current: dict[str, str] = field(default_factory=dict)
    _trees: dict[tuple[str, str], Mapping[str, Any]] = field(default_factory=dict)
    revision_calls: list[str] = field(default_factory=list)

    def publish(self, locator: str, revision: str, tree: Mapping[str, Any]) -> None:
        """Make *tree* available at *revision* and mark it as the current one."""
        self._trees[(locator, revision)] = tree
        self._current[locator] = revision

    def revision(self, source: Source) -> str:
        self.revision_calls.append(source.name)
        revision = self._current.get(source.locator)
        if revision is None:
            raise BackendExecutionError(
                "Static provider has no content for locator.",
                hint="Publish a tree for this locator before evaluating.",
                context={
                    "backend": self.name,
                    "operation": "revision",
                    "source": source.name,
                    "locator": source.locator,
                },
            )
        return revision

    def artifact_tree(self, source: Source, revision: str) -> Mapping[str, Any]:
        tree = self._trees.get((source.locator, revision))
        if tree is None:
            raise BackendExecutionError(
                "Static provider has no tree for the requested revision.",
                context={
                    "backend": self.name,
                    "operation": "artifact_tree",
                    "source": source.name,
                    "locator": source.locator,
                    "revision": revision,
                },
            )
        return tree
