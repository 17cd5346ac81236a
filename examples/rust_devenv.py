"""Rust development environment: fenix toolchain pinned next to nixpkgs."""

from flakecompose import Flake, PackageSet
from flakecompose.modules import Devtools, SourceOverlay, Toolchain
from flakecompose.providers import NixProvider


def build_rust_devenv() -> Flake:
    flake = Flake(provider=NixProvider())
    flake.source("nixpkgs", "github:nixos/nixpkgs/nixos-unstable")
    flake.source("fenix", "github:nix-community/fenix", follows={"nixpkgs": "nixpkgs"})
    flake.output(
        "packages.x86_64-linux.default",
        "fenix",
        "packages",
        "x86_64-linux",
        "minimal",
        "toolchain",
    )
    flake.profile(
        "workstation",
        "x86_64-linux",
        SourceOverlay(source="fenix", attributes=("rust-analyzer",)),
        Toolchain(components=("cargo", "clippy", "rust-src", "rustc", "rustfmt")),
        Devtools(extra=("rust-analyzer",)),
        packages=PackageSet(source="nixpkgs", root=("legacyPackages", "{platform}")),
    )
    return flake


if __name__ == "__main__":
    result = build_rust_devenv().evaluate()
    print(result.to_json(), end="")
