import json
from pathlib import Path

import pytest

from flakecompose.errors import LockfileError
from flakecompose.lockfile import (
    LOCKFILE_VERSION,
    LockedSource,
    Lockfile,
    build_lockfile,
    check_lock_consistency,
    declaration_digest,
    lock_entry_matches,
    parse_lockfile,
    read_lockfile,
    serialize_lockfile,
    write_lockfile,
)
from flakecompose.models import ResolvedSource, Source
from tests.conftest import FENIX_LOCATOR, FENIX_REV, NIXPKGS_LOCATOR, NIXPKGS_REV

DECLARATION = {"sources": {"nixpkgs": {"locator": NIXPKGS_LOCATOR, "follows": {}}}}


def _resolved() -> dict[str, ResolvedSource]:
    return {
        "nixpkgs": ResolvedSource("nixpkgs", NIXPKGS_LOCATOR, NIXPKGS_REV),
        "fenix": ResolvedSource(
            "fenix", FENIX_LOCATOR, FENIX_REV, inputs={"nixpkgs": "nixpkgs"}
        ),
    }


def test_build_and_write_lockfile(tmp_path: Path) -> None:
    lockfile = build_lockfile(declaration=DECLARATION, sources=_resolved())
    path = write_lockfile(lockfile, tmp_path / "nested" / "flake.lock.json")

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == LOCKFILE_VERSION
    assert payload["declaration_digest"] == declaration_digest(DECLARATION)
    assert list(payload["sources"]) == ["fenix", "nixpkgs"]
    assert payload["sources"]["fenix"] == {
        "locator": FENIX_LOCATOR,
        "revision": FENIX_REV,
        "inputs": {"nixpkgs": "nixpkgs"},
    }
    assert read_lockfile(path) == lockfile
    assert lockfile.revision_for("nixpkgs") == NIXPKGS_REV
    assert lockfile.revision_for("rust-overlay") is None


def test_serialization_is_stable() -> None:
    lockfile = build_lockfile(declaration=DECLARATION, sources=_resolved())

    assert serialize_lockfile(lockfile) == serialize_lockfile(
        parse_lockfile(serialize_lockfile(lockfile))
    )


def test_declaration_digest_ignores_key_order() -> None:
    reordered = {"sources": {"nixpkgs": {"follows": {}, "locator": NIXPKGS_LOCATOR}}}

    assert declaration_digest(reordered) == declaration_digest(DECLARATION)
    assert declaration_digest({"sources": {}}) != declaration_digest(DECLARATION)


def test_missing_lockfile_is_reported(tmp_path: Path) -> None:
    with pytest.raises(LockfileError) as excinfo:
        read_lockfile(tmp_path / "flake.lock.json")

    assert "does not exist" in str(excinfo.value)


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        "[]",
        '{"declaration_digest": "d", "sources": {}}',
        '{"version": 1, "sources": {}}',
        '{"version": 1, "declaration_digest": "d", "sources": []}',
        '{"version": 1, "declaration_digest": "d", "sources": {"a": {"locator": "x"}}}',
    ],
)
def test_malformed_lockfiles_are_rejected(raw: str) -> None:
    with pytest.raises(LockfileError):
        parse_lockfile(raw)


def test_unsupported_version_is_rejected() -> None:
    raw = json.dumps({"version": 99, "declaration_digest": "d", "sources": {}})

    with pytest.raises(LockfileError) as excinfo:
        parse_lockfile(raw)

    assert excinfo.value.context["actual"] == "99"


def test_inputs_must_name_locked_sources() -> None:
    lockfile = Lockfile(
        version=LOCKFILE_VERSION,
        declaration_digest="d",
        sources={
            "fenix": LockedSource("fenix", FENIX_LOCATOR, FENIX_REV, {"nixpkgs": "nixpkgs"}),
        },
    )

    with pytest.raises(LockfileError) as excinfo:
        check_lock_consistency(lockfile)

    assert excinfo.value.context["follows"] == "nixpkgs"


def test_lock_entry_matches_locator_and_follows() -> None:
    entry = LockedSource("fenix", FENIX_LOCATOR, FENIX_REV, {"nixpkgs": "nixpkgs"})

    assert lock_entry_matches(entry, Source("fenix", FENIX_LOCATOR, {"nixpkgs": "nixpkgs"}))
    assert not lock_entry_matches(entry, Source("fenix", FENIX_LOCATOR))
    assert not lock_entry_matches(
        entry, Source("fenix", f"{FENIX_LOCATOR}/monthly", {"nixpkgs": "nixpkgs"})
    )
