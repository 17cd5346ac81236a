"""Single-pass source resolution against a provider and an optional lockfile."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from flakecompose.errors import LockfileError
from flakecompose.locators import is_pinned
from flakecompose.lockfile import Lockfile, lock_entry_matches
from flakecompose.models import ResolvedSource, Source
from flakecompose.observability import StructuredLogger
from flakecompose.policy import Policy, enforce_mutable_ref_policy
from flakecompose.providers import SourceProvider
from flakecompose.registry import SourceRegistry


@dataclass(slots=True)
class SourceResolver:
    """Pins every registry source to a revision exactly once per pass.

    Followed sources are resolved before their consumers, so every consumer of
    a followed dependency sees the same revision. Lock entries are reused when
    they still match the declared locator and ``follows`` links.
    """

    registry: SourceRegistry
    provider: SourceProvider
    lock: Lockfile | None = None
    frozen: bool = False
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    _resolved: dict[str, ResolvedSource] = field(default_factory=dict, init=False, repr=False)
    _trees: dict[str, Mapping[str, Any]] = field(default_factory=dict, init=False, repr=False)

    def resolve(self, name: str) -> ResolvedSource:
        cached = self._resolved.get(name)
        if cached is not None:
            return cached
        source = self.registry.resolve(name)
        for dependency in self.registry.closure(name)[:-1]:
            self.resolve(dependency)
        revision = self._revision_for(source)
        resolved = ResolvedSource(
            name=source.name,
            locator=source.locator,
            revision=revision,
            inputs=dict(source.follows),
        )
        self._resolved[name] = resolved
        return resolved

    def resolve_all(self) -> dict[str, ResolvedSource]:
        for name in self.registry.order():
            self.resolve(name)
        return dict(self._resolved)

    def input_revisions(self, name: str) -> dict[str, str]:
        """Map each followed dependency of *name* to the revision it resolves to."""
        return {
            dependency: self.resolve(source.name).revision
            for dependency, source in self.registry.inputs(name).items()
        }

    def tree(self, name: str) -> Mapping[str, Any]:
        tree = self._trees.get(name)
        if tree is None:
            resolved = self.resolve(name)
            tree = self.provider.artifact_tree(self.registry.resolve(name), resolved.revision)
            self._trees[name] = tree
        return tree

    def _revision_for(self, source: Source) -> str:
        entry = self.lock.sources.get(source.name) if self.lock is not None else None
        if entry is not None and lock_entry_matches(entry, source):
            self.logger.log(
                operation="resolve_source",
                source=source.name,
                message="Using locked revision.",
                extra={"revision": entry.revision},
            )
            return entry.revision

        if self.frozen:
            raise LockfileError(
                "Frozen lockfile is stale for the declared source.",
                hint="Re-run flake.lock() and commit the updated lockfile.",
                context={
                    "operation": "resolve_source",
                    "mode": "frozen",
                    "source": source.name,
                    "reason": "missing" if entry is None else "locator or follows changed",
                },
            )
        if entry is not None:
            self.logger.log(
                operation="resolve_source",
                source=source.name,
                level="warning",
                message="Lock entry no longer matches declaration; resolving again.",
            )
        if not is_pinned(source.locator):
            enforce_mutable_ref_policy(
                policy=self.policy,
                source=source.name,
                locator=source.locator,
            )
        revision = self.provider.revision(source)
        self.logger.log(
            operation="resolve_source",
            source=source.name,
            message="Resolved revision from provider.",
            extra={"revision": revision, "provider": self.provider.name},
        )
        return revision
