"""Policy configuration and enforcement helpers."""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Literal

from flakecompose.errors import PolicyError, ValidationError

MutableRefPolicy = Literal["warn", "error", "allow"]
NetworkMode = Literal["online", "offline"]


class MutableRefWarning(UserWarning):
    """Warning raised when a source is resolved from an unpinned locator."""


@dataclass(frozen=True, slots=True)
class Policy:
    require_frozen_lock: bool = False
    mutable_ref_policy: MutableRefPolicy = "warn"
    network_mode: NetworkMode = "online"


def ensure_evaluate_policy(*, policy: Policy, frozen: bool) -> None:
    if policy.require_frozen_lock and not frozen:
        raise PolicyError(
            "Frozen lock mode is required by policy.",
            hint="Call evaluate(frozen=True) or relax policy.require_frozen_lock.",
            context={"operation": "evaluate"},
        )


def ensure_network_allowed(*, policy: Policy, operation: str) -> None:
    if policy.network_mode == "offline":
        raise PolicyError(
            "Network operations are disabled by policy.",
            hint="Switch policy.network_mode to 'online' for this operation.",
            context={"operation": operation},
        )


def enforce_mutable_ref_policy(*, policy: Policy, source: str, locator: str) -> None:
    mode = policy.mutable_ref_policy
    if mode == "allow":
        return
    if mode == "warn":
        warnings.warn(
            f"Source `{source}` resolves mutable locator `{locator}`; "
            "the result is only stable once locked.",
            MutableRefWarning,
            stacklevel=3,
        )
        return
    if mode == "error":
        raise PolicyError(
            "Unlocked mutable locators are not allowed by policy.",
            hint="Pin the locator to a commit or lock the source before evaluating.",
            context={"operation": "resolve_source", "source": source, "locator": locator},
        )
    raise ValidationError(f"Unsupported mutable_ref_policy value: {mode}")
