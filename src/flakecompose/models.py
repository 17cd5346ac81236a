"""Core typed dataclasses for sources, selectors, artifacts and resolved profiles."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

import cbor2

Platform = Literal["x86_64-linux", "aarch64-linux", "x86_64-darwin", "aarch64-darwin"]

SUPPORTED_PLATFORMS: tuple[str, ...] = (
    "x86_64-linux",
    "aarch64-linux",
    "x86_64-darwin",
    "aarch64-darwin",
)

PLATFORM_PLACEHOLDER = "{platform}"


@dataclass(frozen=True, slots=True)
class Source:
    name: str
    locator: str
    follows: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ArtifactLeaf:
    """A selectable artifact exposed by a source's artifact tree."""

    name: str
    version: str | None = None


@dataclass(frozen=True, slots=True)
class ArtifactSelector:
    source: str
    path: tuple[str, ...]
    components: tuple[str, ...] = ()

    def for_platform(self, platform: str) -> ArtifactSelector:
        """Substitute ``{platform}`` placeholders in the selection path."""
        if not any(PLATFORM_PLACEHOLDER in key for key in self.path):
            return self
        path = tuple(key.replace(PLATFORM_PLACEHOLDER, platform) for key in self.path)
        return replace(self, path=path)

    def describe(self) -> str:
        text = ".".join((self.source, *self.path))
        if self.components:
            text += f"[{','.join(self.components)}]"
        return text


@dataclass(frozen=True, slots=True)
class ResolvedSource:
    name: str
    locator: str
    revision: str
    inputs: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Artifact:
    target: str
    source: str
    locator: str
    revision: str
    path: tuple[str, ...]
    identity: str
    components: tuple[str, ...] = ()
    inputs: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "source": self.source,
            "locator": self.locator,
            "revision": self.revision,
            "path": list(self.path),
            "components": list(self.components),
            "inputs": dict(sorted(self.inputs.items())),
            "identity": self.identity,
        }


def artifact_identity(
    *,
    source: ResolvedSource,
    path: tuple[str, ...],
    components: tuple[str, ...] = (),
    inputs: Mapping[str, str] | None = None,
) -> str:
    """Digest of the canonical CBOR encoding of everything that pins an artifact.

    ``inputs`` maps followed dependency names to their resolved revisions so a
    change in a followed source changes every dependent identity.
    """
    payload = {
        "source": source.name,
        "locator": source.locator,
        "revision": source.revision,
        "inputs": dict(sorted((inputs or {}).items())),
        "path": list(path),
        "components": sorted(set(components)),
    }
    return hashlib.sha256(cbor2.dumps(payload, canonical=True)).hexdigest()


@dataclass(frozen=True, slots=True)
class ResolvedProfile:
    name: str
    platform: str
    modules: tuple[str, ...]
    packages: tuple[Artifact, ...]
    overlays: Mapping[str, str] = field(default_factory=dict)

    @property
    def identity(self) -> str:
        digest = hashlib.sha256()
        digest.update(self.platform.encode("utf-8"))
        for artifact in self.packages:
            digest.update(b"\0")
            digest.update(artifact.identity.encode("utf-8"))
        return digest.hexdigest()

    def package_names(self) -> tuple[str, ...]:
        return tuple(artifact.target for artifact in self.packages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "platform": self.platform,
            "modules": list(self.modules),
            "overlays": dict(sorted(self.overlays.items())),
            "packages": [artifact.to_dict() for artifact in self.packages],
            "identity": self.identity,
        }


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    sources: Mapping[str, ResolvedSource]
    outputs: Mapping[str, Artifact]
    profiles: Mapping[str, ResolvedProfile]
    declaration_digest: str
    lock_path: Path | None = None

    def output_for(self, target: str) -> Artifact | None:
        return self.outputs.get(target)

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self._payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self, path: str | Path | None = None) -> bytes:
        encoded = cbor2.dumps(self._payload(), canonical=True)
        if path is not None:
            Path(path).write_bytes(encoded)
        return encoded

    def _payload(self) -> dict[str, Any]:
        return {
            "declaration_digest": self.declaration_digest,
            "sources": {
                name: {
                    "locator": source.locator,
                    "revision": source.revision,
                    "inputs": dict(sorted(source.inputs.items())),
                }
                for name, source in sorted(self.sources.items())
            },
            "outputs": {
                target: artifact.to_dict() for target, artifact in sorted(self.outputs.items())
            },
            "profiles": {
                name: profile.to_dict() for name, profile in sorted(self.profiles.items())
            },
        }
