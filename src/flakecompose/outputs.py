"""Output declarations: target identifiers mapped to artifacts selected from sources."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from flakecompose.errors import (
    InvalidSelectorPathError,
    UnrecognizedComponentError,
    ValidationError,
)
from flakecompose.models import Artifact, ArtifactLeaf, ArtifactSelector, artifact_identity
from flakecompose.resolution import SourceResolver


def walk_path(tree: Mapping[str, Any], selector: ArtifactSelector) -> Any:
    """Follow *selector*'s path through *tree* and return the node it names."""
    node: Any = tree
    for depth, key in enumerate(selector.path):
        if not isinstance(node, Mapping) or key not in node:
            raise InvalidSelectorPathError(
                f"Selector path `{selector.describe()}` is not valid in source "
                f"`{selector.source}`.",
                hint="Check the attribute names exposed by the source at this revision.",
                context={
                    "source": selector.source,
                    "path": ".".join(selector.path),
                    "missing": key,
                    "parent": ".".join(selector.path[:depth]),
                },
            )
        node = node[key]
    return node


def select_artifact(
    resolver: SourceResolver,
    selector: ArtifactSelector,
    *,
    target: str,
) -> Artifact:
    """Resolve *selector* against its source's artifact tree."""
    if not selector.path:
        raise InvalidSelectorPathError(
            "Selector path must not be empty.",
            context={"source": selector.source, "target": target},
        )
    resolved = resolver.resolve(selector.source)
    node = walk_path(resolver.tree(selector.source), selector)
    components = tuple(dict.fromkeys(selector.components))

    if components:
        if not isinstance(node, Mapping):
            raise InvalidSelectorPathError(
                f"Selector path `{selector.describe()}` does not name a composite artifact.",
                hint="Components can only be requested from an attribute set of artifacts.",
                context={"source": selector.source, "path": ".".join(selector.path)},
            )
        for component in components:
            if not isinstance(node.get(component), ArtifactLeaf):
                recognized = sorted(key for key in node if isinstance(node[key], ArtifactLeaf))
                raise UnrecognizedComponentError(
                    f"Component `{component}` is not recognized by "
                    f"`{'.'.join((selector.source, *selector.path))}`.",
                    component=component,
                    hint="Request only components the provider exposes.",
                    context={
                        "source": selector.source,
                        "path": ".".join(selector.path),
                        "component": component,
                        "recognized": ", ".join(recognized),
                    },
                )
    elif not isinstance(node, ArtifactLeaf):
        raise InvalidSelectorPathError(
            f"Selector path `{selector.describe()}` does not name an artifact.",
            hint="Extend the path to an artifact or request components from it.",
            context={"source": selector.source, "path": ".".join(selector.path)},
        )

    inputs = resolver.input_revisions(selector.source)
    return Artifact(
        target=target,
        source=resolved.name,
        locator=resolved.locator,
        revision=resolved.revision,
        path=selector.path,
        components=components,
        inputs=inputs,
        identity=artifact_identity(
            source=resolved,
            path=selector.path,
            components=components,
            inputs=inputs,
        ),
    )


@dataclass(slots=True)
class OutputDeclarationSet:
    resolver: SourceResolver
    _selectors: dict[str, ArtifactSelector] = field(default_factory=dict, init=False)
    _artifacts: dict[str, Artifact] = field(default_factory=dict, init=False)

    def declare(self, target_id: str, selector: ArtifactSelector) -> Artifact:
        if not target_id:
            raise ValidationError("Output target identifiers must be non-empty.")
        existing = self._selectors.get(target_id)
        if existing is not None:
            if existing != selector:
                raise ValidationError(
                    "Output target is already declared with a different selector.",
                    context={
                        "target": target_id,
                        "declared": existing.describe(),
                        "requested": selector.describe(),
                    },
                )
            return self._artifacts[target_id]

        artifact = select_artifact(self.resolver, selector, target=target_id)
        self._selectors[target_id] = selector
        self._artifacts[target_id] = artifact
        self.resolver.logger.log(
            operation="declare_output",
            source=selector.source,
            target=target_id,
            message="Declared output artifact.",
            extra={"path": list(selector.path), "identity": artifact.identity},
        )
        return artifact

    def resolve(self, target_id: str) -> Artifact:
        artifact = self._artifacts.get(target_id)
        if artifact is None:
            raise ValidationError(
                f"Unknown output target `{target_id}`.",
                context={"target": target_id, "known": ", ".join(sorted(self._artifacts))},
            )
        return artifact

    def artifacts(self) -> dict[str, Artifact]:
        return dict(self._artifacts)

    def selectors(self) -> dict[str, ArtifactSelector]:
        return dict(self._selectors)
