"""Reading and writing ``flake.lock.json``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from flakecompose.errors import LockfileError
from flakecompose.lockfile.model import LockedSource, Lockfile
from flakecompose.lockfile.resolve import check_lock_consistency


def serialize_lockfile(lockfile: Lockfile) -> str:
    sources = {
        name: {
            "locator": entry.locator,
            "revision": entry.revision,
            "inputs": dict(sorted(entry.inputs.items())),
        }
        for name, entry in sorted(lockfile.sources.items())
    }
    payload = {
        "version": lockfile.version,
        "declaration_digest": lockfile.declaration_digest,
        "sources": sources,
    }
    return json.dumps(payload, indent=2, sort_keys=True) + "\n"


def parse_lockfile(raw: str) -> Lockfile:
    """Parse and consistency-check a serialized lockfile."""
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LockfileError("Lockfile is not valid JSON.", hint=str(exc)) from exc
    if not isinstance(payload, dict):
        raise LockfileError("Lockfile must contain a JSON object.")

    sources_raw = _field(payload, "sources", dict, default={})
    lockfile = Lockfile(
        version=_field(payload, "version", int),
        declaration_digest=_field(payload, "declaration_digest", str),
        sources={name: _locked_source(name, entry) for name, entry in sources_raw.items()},
    )
    check_lock_consistency(lockfile)
    return lockfile


def read_lockfile(path: str | Path) -> Lockfile:
    lock_path = Path(path)
    if not lock_path.is_file():
        raise LockfileError(
            "Lockfile does not exist.",
            hint="Run `flakecompose lock` (or flake.lock()) before evaluating in frozen mode.",
            context={"path": str(lock_path)},
        )
    return parse_lockfile(lock_path.read_text(encoding="utf-8"))


def write_lockfile(lockfile: Lockfile, path: str | Path) -> Path:
    lock_path = Path(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.write_text(serialize_lockfile(lockfile), encoding="utf-8")
    return lock_path


def _locked_source(name: str, entry: Any) -> LockedSource:
    if not name or not isinstance(entry, dict):
        raise LockfileError("Malformed source entry in lockfile.", context={"source": name})
    inputs = _field(entry, "inputs", dict, default={}, source=name)
    if not all(isinstance(value, str) and value for value in inputs.values()):
        raise LockfileError("Lockfile inputs must name sources.", context={"source": name})
    return LockedSource(
        name=name,
        locator=_field(entry, "locator", str, source=name),
        revision=_field(entry, "revision", str, source=name),
        inputs=dict(inputs),
    )


def _field(
    payload: dict[str, Any],
    key: str,
    kind: type,
    *,
    default: Any = None,
    source: str = "",
) -> Any:
    value = payload.get(key, default)
    # bool is an int subclass; a version of `true` is still malformed.
    if not isinstance(value, kind) or isinstance(value, bool) or value in ("", None):
        raise LockfileError(
            f"Lockfile field `{key}` is missing or has the wrong type.",
            context={"field": key, "source": source},
        )
    return value
