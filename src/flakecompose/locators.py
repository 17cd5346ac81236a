"""Helpers for flake-style source locators (``github:owner/repo/ref``, ``git+https://...``)."""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode

COMMIT_PATTERN = re.compile(r"^[0-9a-f]{40}$")

FORGE_SCHEMES = ("github:", "gitlab:", "sourcehut:")


def split_locator(locator: str) -> tuple[str, dict[str, str]]:
    base, _, query = locator.partition("?")
    return base, dict(parse_qsl(query, keep_blank_values=True))


def is_pinned(locator: str) -> bool:
    """Return True when the locator already names an immutable revision."""
    base, query = split_locator(locator)
    if COMMIT_PATTERN.fullmatch(query.get("rev", "")) or query.get("narHash"):
        return True
    if base.startswith(FORGE_SCHEMES):
        segments = base.split(":", 1)[1].split("/")
        return len(segments) >= 3 and bool(COMMIT_PATTERN.fullmatch(segments[2]))
    return False


def pinned_ref(locator: str, revision: str) -> str:
    """Return *locator* rewritten so it resolves to exactly *revision*.

    Forge shorthands carry the commit as the third path segment; every other
    scheme gets a ``rev`` (commit) or ``narHash`` (content hash) query parameter.
    """
    base, query = split_locator(locator)
    if COMMIT_PATTERN.fullmatch(revision) and base.startswith(FORGE_SCHEMES):
        scheme, rest = base.split(":", 1)
        owner_repo = "/".join(rest.split("/")[:2])
        query.pop("ref", None)
        query.pop("rev", None)
        base = f"{scheme}:{owner_repo}/{revision}"
    elif COMMIT_PATTERN.fullmatch(revision):
        query.pop("ref", None)
        query["rev"] = revision
    else:
        query["narHash"] = revision
    if not query:
        return base
    return f"{base}?{urlencode(sorted(query.items()))}"
