"""Lockfile resolution helpers."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from flakecompose.errors import LockfileError
from flakecompose.lockfile.model import LOCKFILE_VERSION, LockedSource, Lockfile
from flakecompose.models import ResolvedSource, Source


def declaration_digest(declaration: dict[str, Any]) -> str:
    canonical = json.dumps(declaration, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def build_lockfile(
    *,
    declaration: dict[str, Any],
    sources: Mapping[str, ResolvedSource],
) -> Lockfile:
    locked = {
        name: LockedSource(
            name=name,
            locator=source.locator,
            revision=source.revision,
            inputs=dict(source.inputs),
        )
        for name, source in sorted(sources.items())
    }
    lockfile = Lockfile(
        version=LOCKFILE_VERSION,
        declaration_digest=declaration_digest(declaration),
        sources=locked,
    )
    check_lock_consistency(lockfile)
    return lockfile


def check_lock_consistency(lockfile: Lockfile) -> None:
    """Every locked input must name another locked source."""
    if lockfile.version != LOCKFILE_VERSION:
        raise LockfileError(
            "Unsupported lockfile version.",
            hint="Regenerate the lockfile with this version of flakecompose.",
            context={"expected": str(LOCKFILE_VERSION), "actual": str(lockfile.version)},
        )
    for name, entry in lockfile.sources.items():
        if entry.name != name:
            raise LockfileError(
                "Lockfile entry name does not match its key.",
                context={"source": name, "entry": entry.name},
            )
        for dependency, target in entry.inputs.items():
            if target not in lockfile.sources:
                raise LockfileError(
                    "Lockfile input refers to a source that is not locked.",
                    hint="Re-run flake.lock() to regenerate a consistent lockfile.",
                    context={"source": name, "dependency": dependency, "follows": target},
                )


def lock_entry_matches(entry: LockedSource, source: Source) -> bool:
    return entry.locator == source.locator and dict(entry.inputs) == dict(source.follows)
