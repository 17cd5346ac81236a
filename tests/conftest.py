"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from flakecompose.models import ArtifactLeaf
from flakecompose.observability import StructuredLogger
from flakecompose.policy import Policy
from flakecompose.providers import StaticProvider, leaves
from flakecompose.registry import SourceRegistry
from flakecompose.resolution import SourceResolver

FENIX_LOCATOR = "github:nix-community/fenix"
NIXPKGS_LOCATOR = "github:nixos/nixpkgs/nixos-unstable"
FENIX_REV = "1" * 40
NIXPKGS_REV = "2" * 40

PLATFORMS = ("x86_64-linux", "aarch64-linux")


def fenix_tree(version: str = "nightly") -> dict[str, Any]:
    per_platform = {
        "minimal": leaves("cargo", "rustc", "toolchain", version=version),
        "complete": {
            **leaves("cargo", "clippy", "rust-src", "rustc", "rustfmt", "toolchain"),
            "withComponents": None,
        },
        "rust-analyzer": ArtifactLeaf(name="rust-analyzer-nightly", version=version),
    }
    return {"packages": {platform: dict(per_platform) for platform in PLATFORMS}}


def nixpkgs_tree() -> dict[str, Any]:
    packages = leaves("git", "gnumake", "pkg-config", "jq", "rust-analyzer")
    return {"legacyPackages": {platform: dict(packages) for platform in PLATFORMS}}


@pytest.fixture
def provider() -> StaticProvider:
    static = StaticProvider()
    static.publish(FENIX_LOCATOR, FENIX_REV, fenix_tree())
    static.publish(NIXPKGS_LOCATOR, NIXPKGS_REV, nixpkgs_tree())
    return static


@pytest.fixture
def registry() -> SourceRegistry:
    sources = SourceRegistry()
    sources.add("nixpkgs", NIXPKGS_LOCATOR)
    sources.add("fenix", FENIX_LOCATOR, follows={"nixpkgs": "nixpkgs"})
    return sources


@pytest.fixture
def resolver(registry: SourceRegistry, provider: StaticProvider) -> SourceResolver:
    return SourceResolver(
        registry=registry,
        provider=provider,
        policy=Policy(mutable_ref_policy="allow"),
        logger=StructuredLogger(),
    )
