"""Lockfile parsing, serialization and resolution helpers."""

from .io import parse_lockfile, read_lockfile, serialize_lockfile, write_lockfile
from .model import LOCKFILE_VERSION, LockedSource, Lockfile
from .resolve import (
    build_lockfile,
    check_lock_consistency,
    declaration_digest,
    lock_entry_matches,
)

__all__ = [
    "LOCKFILE_VERSION",
    "LockedSource",
    "Lockfile",
    "build_lockfile",
    "check_lock_consistency",
    "declaration_digest",
    "lock_entry_matches",
    "parse_lockfile",
    "read_lockfile",
    "serialize_lockfile",
    "write_lockfile",
]
