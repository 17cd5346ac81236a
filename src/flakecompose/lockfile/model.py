"""Lockfile typed model."""

from __future__ import annotations

from dataclasses import dataclass, field

LOCKFILE_VERSION = 1


@dataclass(frozen=True, slots=True)
class LockedSource:
    name: str
    locator: str
    revision: str
    inputs: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Lockfile:
    version: int
    declaration_digest: str
    sources: dict[str, LockedSource] = field(default_factory=dict)

    def revision_for(self, name: str) -> str | None:
        entry = self.sources.get(name)
        return entry.revision if entry is not None else None
