"""Offline evaluation against in-memory artifact trees."""

from flakecompose import Flake, Policy
from flakecompose.models import ArtifactLeaf
from flakecompose.modules import Toolchain
from flakecompose.providers import StaticProvider, leaves

FENIX_TREE = {
    "packages": {
        "x86_64-linux": {
            "minimal": leaves("cargo", "rustc", "toolchain"),
            "complete": leaves("cargo", "clippy", "rust-src", "rustc", "rustfmt", "toolchain"),
            "rust-analyzer": ArtifactLeaf(name="rust-analyzer-nightly"),
        },
    },
}


def evaluate_offline() -> None:
    provider = StaticProvider()
    provider.publish("github:nix-community/fenix", "a" * 40, FENIX_TREE)

    flake = Flake(provider=provider, policy=Policy(mutable_ref_policy="allow"))
    flake.source("fenix", "github:nix-community/fenix")
    flake.output("default", "fenix", "packages", "x86_64-linux", "minimal", "toolchain")
    flake.profile("rust", "x86_64-linux", Toolchain())
    result = flake.evaluate(write_lock=False)
    print(result.outputs["default"].identity)


if __name__ == "__main__":
    evaluate_offline()
