import json
from pathlib import Path

import pytest

from flakecompose import cli
from flakecompose.providers import StaticProvider
from tests.conftest import FENIX_REV, NIXPKGS_REV

DECLARATIONS = """\
sources:
  nixpkgs: github:nixos/nixpkgs/nixos-unstable
  fenix:
    url: github:nix-community/fenix
    follows: {nixpkgs: nixpkgs}
outputs:
  default:
    source: fenix
    path: [packages, x86_64-linux, minimal, toolchain]
"""

SETTINGS = """\
policy:
  mutable_ref_policy: allow
lockfile: dev.lock.json
"""


@pytest.fixture
def workspace(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    provider: StaticProvider,
) -> Path:
    (tmp_path / "flake.yaml").write_text(DECLARATIONS, encoding="utf-8")
    (tmp_path / "settings.yaml").write_text(SETTINGS, encoding="utf-8")
    monkeypatch.setattr(cli, "make_provider", lambda settings: provider)
    return tmp_path


def _run(workspace: Path, *argv: str) -> int:
    return cli.main(["--settings", str(workspace / "settings.yaml"), *argv])


def test_evaluate_prints_the_result(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "evaluate", str(workspace / "flake.yaml")) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["outputs"]["default"]["revision"] == FENIX_REV
    assert payload["sources"]["fenix"]["inputs"] == {"nixpkgs": "nixpkgs"}
    assert (workspace / "dev.lock.json").exists()


def test_lock_then_frozen_evaluate(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    declarations = str(workspace / "flake.yaml")

    assert _run(workspace, "lock", declarations) == 0
    assert capsys.readouterr().out.strip() == f"Wrote {workspace / 'dev.lock.json'}"
    assert _run(workspace, "evaluate", declarations, "--frozen") == 0
    assert json.loads(capsys.readouterr().out)["sources"]["nixpkgs"]["revision"] == NIXPKGS_REV


def test_lock_output_override(workspace: Path) -> None:
    target = workspace / "locks" / "ci.lock.json"

    assert _run(workspace, "lock", str(workspace / "flake.yaml"), "--output", str(target)) == 0
    assert target.exists()
    assert not (workspace / "dev.lock.json").exists()


def test_update_prints_revisions(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "update", str(workspace / "flake.yaml"), "fenix") == 0

    assert capsys.readouterr().out.splitlines() == [
        f"fenix: {FENIX_REV}",
        f"nixpkgs: {NIXPKGS_REV}",
    ]


def test_show_prints_declarations(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "show", str(workspace / "flake.yaml")) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["outputs"]["default"]["path"] == [
        "packages",
        "x86_64-linux",
        "minimal",
        "toolchain",
    ]
    assert payload["profiles"] == {}


def test_errors_are_reported_as_json(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = _run(workspace, "evaluate", str(workspace / "flake.yaml"), "--frozen")

    assert exit_code == 1
    error = json.loads(capsys.readouterr().err)
    assert error["code"] == "E_LOCKFILE"
    assert error["context"]["path"] == str(workspace / "dev.lock.json")


def test_missing_declaration_file(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "show", str(workspace / "absent.yaml")) == 1
    assert json.loads(capsys.readouterr().err)["code"] == "E_DECLARATION"


def test_log_file_records_operations(workspace: Path) -> None:
    log_file = workspace / "logs" / "run.jsonl"
    argv = ("--log-file", str(log_file), "evaluate", str(workspace / "flake.yaml"))

    assert _run(workspace, *argv) == 0

    records = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    operations = {record["operation"] for record in records}
    assert {"resolve_source", "declare_output", "write_lock"} <= operations
