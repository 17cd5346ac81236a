"""YAML declaration files: sources, outputs and profiles as data.

A declaration file looks like::

    sources:
      nixpkgs: github:nixos/nixpkgs/nixos-unstable
      fenix:
        url: github:nix-community/fenix
        follows: {nixpkgs: nixpkgs}
    outputs:
      packages.x86_64-linux.default:
        source: fenix
        path: [packages, x86_64-linux, minimal, toolchain]
    profiles:
      workstation:
        platform: x86_64-linux
        packages: {source: nixpkgs, path: [legacyPackages, "{platform}"]}
        modules:
          - builtin: source-overlay
            options: {source: fenix, attributes: [rust-analyzer]}
          - builtin: toolchain
          - name: extras
            packages: [git, {source: nixpkgs, path: [legacyPackages, "{platform}", jq]}]
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import yaml

from flakecompose.composer import PackageSet, ProfileModule
from flakecompose.errors import DeclarationError
from flakecompose.flake import DEFAULT_LOCK_NAME, Flake
from flakecompose.models import ArtifactSelector
from flakecompose.modules import DeclaredModule, Devtools, SourceOverlay, Toolchain
from flakecompose.observability import StructuredLogger
from flakecompose.policy import Policy
from flakecompose.providers import SourceProvider

BUILTIN_MODULES: dict[str, Callable[..., ProfileModule]] = {
    "devtools": Devtools,
    "source-overlay": SourceOverlay,
    "toolchain": Toolchain,
}

_TUPLE_OPTIONS = ("attributes", "components", "extra", "packages", "prefix")


def load_yaml_mapping(path: str | Path) -> dict[str, Any]:
    """Read *path* as YAML and require a top-level mapping."""
    file_path = Path(path)
    try:
        raw = file_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise DeclarationError(
            f"Configuration file not found at path: {file_path}",
            context={"path": str(file_path)},
        ) from exc
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise DeclarationError(
            "Invalid YAML.",
            hint=str(exc),
            context={"path": str(file_path)},
        ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DeclarationError(
            "Expected a mapping at the top level.",
            context={"path": str(file_path)},
        )
    return data


def load_declarations(
    path: str | Path,
    *,
    provider: SourceProvider,
    policy: Policy | None = None,
    lock_name: str = DEFAULT_LOCK_NAME,
    logger: StructuredLogger | None = None,
) -> Flake:
    """Build a :class:`Flake` from a YAML declaration file.

    The lockfile lives next to the declaration file.
    """
    declaration_path = Path(path)
    data = load_yaml_mapping(declaration_path)
    return parse_declarations(
        data,
        provider=provider,
        root=declaration_path.parent,
        policy=policy,
        lock_name=lock_name,
        logger=logger,
    )


def parse_declarations(
    data: Mapping[str, Any],
    *,
    provider: SourceProvider,
    root: Path = Path("."),
    policy: Policy | None = None,
    lock_name: str = DEFAULT_LOCK_NAME,
    logger: StructuredLogger | None = None,
) -> Flake:
    unknown = sorted(set(data) - {"sources", "outputs", "profiles"})
    if unknown:
        raise DeclarationError(
            "Unknown top-level declaration keys.",
            context={"keys": ", ".join(unknown)},
        )
    flake = Flake(
        provider=provider,
        root=root,
        lock_name=lock_name,
        policy=policy or Policy(),
        logger=logger or StructuredLogger(),
    )

    for name, entry in _mapping(data.get("sources", {}), "sources").items():
        if isinstance(entry, str):
            flake.source(name, entry)
            continue
        entry = _mapping(entry, f"sources.{name}")
        follows = _mapping(entry.get("follows", {}), f"sources.{name}.follows")
        flake.source(
            name,
            _string(entry.get("url"), f"sources.{name}.url"),
            follows={
                str(key): _string(value, f"sources.{name}.follows")
                for key, value in follows.items()
            },
        )

    for target, entry in _mapping(data.get("outputs", {}), "outputs").items():
        selector = _selector(entry, f"outputs.{target}")
        flake.output(str(target), selector.source, *selector.path, components=selector.components)

    for name, entry in _mapping(data.get("profiles", {}), "profiles").items():
        entry = _mapping(entry, f"profiles.{name}")
        packages = None
        if entry.get("packages") is not None:
            base = _selector(entry["packages"], f"profiles.{name}.packages")
            packages = PackageSet(source=base.source, root=base.path)
        module_entries = _list(entry.get("modules", []), f"profiles.{name}.modules")
        modules = [
            _module(item, f"profiles.{name}.modules[{index}]")
            for index, item in enumerate(module_entries)
        ]
        flake.profile(
            str(name),
            _string(entry.get("platform"), f"profiles.{name}.platform"),
            *modules,
            packages=packages,
        )
    return flake


def _module(raw: Any, where: str) -> ProfileModule:
    entry = _mapping(raw, where)
    builtin = entry.get("builtin")
    if builtin is not None:
        factory = BUILTIN_MODULES.get(builtin)
        if factory is None:
            raise DeclarationError(
                f"Unknown builtin module `{builtin}`.",
                hint=f"Use one of: {', '.join(sorted(BUILTIN_MODULES))}.",
                context={"where": where},
            )
        options = dict(_mapping(entry.get("options", {}), f"{where}.options"))
        for key in _TUPLE_OPTIONS:
            if key in options:
                options[key] = tuple(_list(options[key], f"{where}.options.{key}"))
        try:
            return factory(**options)
        except TypeError as exc:
            raise DeclarationError(
                f"Invalid options for builtin module `{builtin}`.",
                hint=str(exc),
                context={"where": where},
            ) from exc

    overlays = {
        str(overlay): _selector(selector, f"{where}.overlays.{overlay}")
        for overlay, selector in _mapping(entry.get("overlays", {}), f"{where}.overlays").items()
    }
    packages: list[str | ArtifactSelector] = []
    for index, item in enumerate(_list(entry.get("packages", []), f"{where}.packages")):
        if isinstance(item, str):
            packages.append(item)
        else:
            packages.append(_selector(item, f"{where}.packages[{index}]"))
    return DeclaredModule(
        name=_string(entry.get("name"), f"{where}.name"),
        overlays=overlays,
        packages=tuple(packages),
    )


def _selector(raw: Any, where: str) -> ArtifactSelector:
    entry = _mapping(raw, where)
    path = entry.get("path")
    if isinstance(path, str):
        keys = tuple(path.split("."))
    else:
        keys = tuple(_string(key, f"{where}.path") for key in _list(path, f"{where}.path"))
    components = tuple(
        _string(item, f"{where}.components")
        for item in _list(entry.get("components", []), f"{where}.components")
    )
    return ArtifactSelector(
        source=_string(entry.get("source"), f"{where}.source"),
        path=keys,
        components=components,
    )


def _mapping(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise DeclarationError("Expected a mapping.", context={"where": where})
    return value


def _list(value: Any, where: str) -> list[Any]:
    if not isinstance(value, list):
        raise DeclarationError("Expected a list.", context={"where": where})
    return value


def _string(value: Any, where: str) -> str:
    if not isinstance(value, str) or not value:
        raise DeclarationError("Expected a non-empty string.", context={"where": where})
    return value
