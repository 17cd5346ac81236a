"""Nix-backed source provider.

Revisions come from ``nix flake metadata --json``; artifact trees are walked
lazily with ``nix eval --json`` against the flake pinned to the resolved
revision, so only the attributes a selector touches are ever evaluated.

This provider requires ``nix`` available in PATH. Flakes and the
``nix-command`` feature are enabled per invocation. In offline mode revision
lookups are refused and every evaluation runs with ``--offline``.
"""

from __future__ import annotations

import json
import shutil
import subprocess
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from flakecompose.errors import BackendExecutionError
from flakecompose.locators import pinned_ref
from flakecompose.models import ArtifactLeaf, Source
from flakecompose.policy import Policy, ensure_network_allowed

EXPERIMENTAL_FEATURES = ("--extra-experimental-features", "nix-command flakes")

NODE_EXPR_TEMPLATE = """\
let
  flake = builtins.getFlake "{ref}";
  node = flake.outputs{attrpath};
in
  if builtins.isAttrs node && (node.type or null) == "derivation" then
    {{ kind = "derivation"; name = node.name; version = node.version or null; }}
  else if builtins.isAttrs node then
    {{ kind = "attrs"; names = builtins.attrNames node; }}
  else
    {{ kind = "other"; }}
"""


@dataclass(slots=True)
class NixProvider:
    """Provider that asks a local ``nix`` for revisions and attribute trees."""

    name: str = "nix"
    nix_args: list[str] = field(default_factory=list)
    policy: Policy = field(default_factory=Policy)

    def revision(self, source: Source) -> str:
        ensure_network_allowed(policy=self.policy, operation="revision")
        payload = self._run_json(
            ["flake", "metadata", "--json", source.locator],
            operation="revision",
            source=source.name,
        )
        locked = payload.get("locked", {}) if isinstance(payload, dict) else {}
        revision = locked.get("rev") or locked.get("narHash")
        if not isinstance(revision, str) or not revision:
            raise BackendExecutionError(
                "nix flake metadata did not report a locked revision.",
                hint="Check that the locator points at a lockable flake.",
                context={
                    "backend": self.name,
                    "operation": "revision",
                    "source": source.name,
                    "locator": source.locator,
                },
            )
        return revision

    def artifact_tree(self, source: Source, revision: str) -> Mapping[str, Any]:
        return NixAttrTree(self, pinned_ref(source.locator, revision), ())

    def describe(self, ref: str, path: tuple[str, ...]) -> dict[str, Any]:
        """Evaluate the attribute at *path* and report its kind."""
        expr = NODE_EXPR_TEMPLATE.format(ref=_nix_string(ref), attrpath=_attrpath(path))
        payload = self._run_json(
            ["eval", "--json", "--impure", "--expr", expr],
            operation="artifact_tree",
            source=ref,
        )
        if not isinstance(payload, dict) or "kind" not in payload:
            raise BackendExecutionError(
                "Unexpected nix eval output.",
                context={"backend": self.name, "ref": ref, "path": ".".join(path)},
            )
        return payload

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run_json(self, argv: list[str], *, operation: str, source: str) -> Any:
        self._ensure_prerequisites()
        offline = ("--offline",) if self.policy.network_mode == "offline" else ()
        cmd = ["nix", *EXPERIMENTAL_FEATURES, *offline, *self.nix_args, *argv]
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise BackendExecutionError(
                "nix command failed.",
                hint="Check nix output for details.",
                context={
                    "backend": self.name,
                    "operation": operation,
                    "source": source,
                    "returncode": str(result.returncode),
                    "stderr": result.stderr[-2000:] if result.stderr else "",
                },
            )
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise BackendExecutionError(
                "nix command produced invalid JSON.",
                hint=str(exc),
                context={"backend": self.name, "operation": operation, "source": source},
            ) from exc

    def _ensure_prerequisites(self) -> None:
        if shutil.which("nix") is None:
            raise BackendExecutionError(
                "Nix provider requires `nix` in PATH.",
                hint="Install Nix: https://nixos.org/download.html",
                context={"backend": self.name, "operation": "prepare"},
            )


class NixAttrTree(Mapping[str, Any]):
    """Lazy view of a flake's output attributes."""

    def __init__(
        self,
        provider: NixProvider,
        ref: str,
        path: tuple[str, ...],
        names: tuple[str, ...] | None = None,
    ) -> None:
        self._provider = provider
        self._ref = ref
        self._path = path
        self._names = names
        self._children: dict[str, Any] = {}

    def __getitem__(self, key: str) -> Any:
        if key not in self._keys():
            raise KeyError(key)
        if key not in self._children:
            self._children[key] = self._load(key)
        return self._children[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys())

    def __len__(self) -> int:
        return len(self._keys())

    def __contains__(self, key: object) -> bool:
        return key in self._keys()

    def _keys(self) -> tuple[str, ...]:
        if self._names is None:
            node = self._provider.describe(self._ref, self._path)
            self._names = tuple(node.get("names", ())) if node["kind"] == "attrs" else ()
        return self._names

    def _load(self, key: str) -> Any:
        path = (*self._path, key)
        node = self._provider.describe(self._ref, path)
        if node["kind"] == "derivation":
            return ArtifactLeaf(name=node["name"], version=node.get("version"))
        if node["kind"] == "attrs":
            return NixAttrTree(self._provider, self._ref, path, tuple(node.get("names", ())))
        return None


def _nix_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")


def _attrpath(path: tuple[str, ...]) -> str:
    return "".join(f'."{_nix_string(key)}"' for key in path)
