from flakecompose.locators import is_pinned, pinned_ref

COMMIT = "0123456789abcdef0123456789abcdef01234567"


def test_forge_locators_are_pinned_only_with_a_commit_segment() -> None:
    assert not is_pinned("github:nix-community/fenix")
    assert not is_pinned("github:nixos/nixpkgs/nixos-unstable")
    assert is_pinned(f"github:nixos/nixpkgs/{COMMIT}")


def test_query_parameters_pin_other_schemes() -> None:
    assert is_pinned(f"git+https://example.com/repo.git?rev={COMMIT}")
    assert is_pinned("tarball+https://example.com/src.tar.gz?narHash=sha256-abc")
    assert not is_pinned("git+https://example.com/repo.git?ref=main")


def test_pinned_ref_replaces_forge_branch_with_commit() -> None:
    assert pinned_ref("github:nixos/nixpkgs/nixos-unstable", COMMIT) == (
        f"github:nixos/nixpkgs/{COMMIT}"
    )
    assert pinned_ref("github:nix-community/fenix", COMMIT) == (
        f"github:nix-community/fenix/{COMMIT}"
    )


def test_pinned_ref_uses_query_parameters_for_other_schemes() -> None:
    assert pinned_ref("git+https://example.com/repo.git?ref=main", COMMIT) == (
        f"git+https://example.com/repo.git?rev={COMMIT}"
    )
    assert pinned_ref("path:/src/flake", "sha256-abc") == "path:/src/flake?narHash=sha256-abc"
