"""User settings loaded from ``~/.config/flakecompose/config.yaml``."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, get_args

from flakecompose.declarations import load_yaml_mapping
from flakecompose.errors import DeclarationError
from flakecompose.flake import DEFAULT_LOCK_NAME
from flakecompose.policy import MutableRefPolicy, NetworkMode, Policy

DEFAULT_CONFIG_PATH = "~/.config/flakecompose/config.yaml"


@dataclass(frozen=True, slots=True)
class Settings:
    policy: Policy = field(default_factory=Policy)
    lock_name: str = DEFAULT_LOCK_NAME
    nix_args: tuple[str, ...] = ()


def home_dir() -> Path | None:
    variable = "USERPROFILE" if os.name == "nt" else "HOME"
    value = os.environ.get(variable)
    return Path(value) if value else None


def expand_tilde(path: str | Path) -> Path | None:
    """Expand a leading ``~`` to the home directory; None when it is unknown."""
    text = str(path)
    if text == "~":
        return home_dir()
    if text.startswith("~/"):
        home = home_dir()
        return home / text[2:] if home is not None else None
    return Path(text)


def get_config_path() -> Path | None:
    return expand_tilde(DEFAULT_CONFIG_PATH)


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from *path*, or from the default location when it exists.

    An explicit path that does not exist is an error; a missing default file
    yields default settings.
    """
    if path is not None:
        config_path = expand_tilde(path)
        if config_path is None:
            raise DeclarationError(
                "Cannot expand `~` without a home directory.",
                context={"path": str(path)},
            )
    else:
        config_path = get_config_path()
        if config_path is None or not config_path.exists():
            return Settings()

    data = load_yaml_mapping(config_path)
    return _parse_settings(data, where=str(config_path))


def _parse_settings(data: dict[str, Any], *, where: str) -> Settings:
    policy_raw = data.get("policy", {})
    if not isinstance(policy_raw, dict):
        raise DeclarationError("Invalid `policy` section.", context={"path": where})

    require_frozen_lock = policy_raw.get("require_frozen_lock", False)
    if not isinstance(require_frozen_lock, bool):
        raise DeclarationError(
            "Invalid `policy.require_frozen_lock` value.",
            context={"path": where},
        )
    mutable_ref_policy = policy_raw.get("mutable_ref_policy", "warn")
    if mutable_ref_policy not in get_args(MutableRefPolicy):
        raise DeclarationError(
            "Invalid `policy.mutable_ref_policy` value.",
            hint=f"Use one of: {', '.join(get_args(MutableRefPolicy))}.",
            context={"path": where, "value": str(mutable_ref_policy)},
        )
    network_mode = policy_raw.get("network_mode", "online")
    if network_mode not in get_args(NetworkMode):
        raise DeclarationError(
            "Invalid `policy.network_mode` value.",
            hint=f"Use one of: {', '.join(get_args(NetworkMode))}.",
            context={"path": where, "value": str(network_mode)},
        )

    lock_name = data.get("lockfile", DEFAULT_LOCK_NAME)
    if not isinstance(lock_name, str) or not lock_name:
        raise DeclarationError("Invalid `lockfile` value.", context={"path": where})
    nix_args = data.get("nix_args", [])
    if not isinstance(nix_args, list) or not all(isinstance(item, str) for item in nix_args):
        raise DeclarationError("Invalid `nix_args` value.", context={"path": where})

    return Settings(
        policy=Policy(
            require_frozen_lock=require_frozen_lock,
            mutable_ref_policy=mutable_ref_policy,
            network_mode=network_mode,
        ),
        lock_name=lock_name,
        nix_args=tuple(nix_args),
    )
