"""Error taxonomy for flakecompose.

Every error carries a stable code from :class:`ErrorCode`, an optional hint for
the user, and a flat string context (source name, selector path, ...) that the
CLI prints as JSON.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import ClassVar


class ErrorCode(StrEnum):
    UNKNOWN_SOURCE = "E_UNKNOWN_SOURCE"
    CYCLIC_DEPENDENCY = "E_CYCLIC_DEPENDENCY"
    INVALID_SELECTOR_PATH = "E_INVALID_SELECTOR_PATH"
    UNRECOGNIZED_COMPONENT = "E_UNRECOGNIZED_COMPONENT"
    INVALID_PLATFORM = "E_INVALID_PLATFORM"
    VALIDATION = "E_VALIDATION"
    LOCKFILE = "E_LOCKFILE"
    POLICY = "E_POLICY"
    BACKEND_EXECUTION = "E_BACKEND_EXECUTION"
    DECLARATION = "E_DECLARATION"


class FlakeComposeError(Exception):
    """Base class; subclasses pin ``default_code``."""

    default_code: ClassVar[ErrorCode] = ErrorCode.VALIDATION

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = (code or self.default_code).value
        self.hint = hint
        self.context = dict(context or {})

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def __str__(self) -> str:
        lines = [self.message]
        if self.hint:
            lines.append(f"Hint: {self.hint}")
        lines.extend(f"  {key}: {value}" for key, value in self.context.items() if value)
        return "\n".join(lines)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class UnknownSourceError(FlakeComposeError):
    default_code = ErrorCode.UNKNOWN_SOURCE


class CyclicDependencyError(FlakeComposeError):
    """``follows`` links or overlay lookups form a cycle.

    ``cycle`` lists the participating names in traversal order, with the first
    name repeated at the end.
    """

    default_code = ErrorCode.CYCLIC_DEPENDENCY

    def __init__(
        self,
        message: str,
        *,
        cycle: Sequence[str] = (),
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, hint=hint, context=context)
        self.cycle = tuple(cycle)


class InvalidSelectorPathError(FlakeComposeError):
    default_code = ErrorCode.INVALID_SELECTOR_PATH


class UnrecognizedComponentError(FlakeComposeError):
    """A component set names something the selected artifact does not expose."""

    default_code = ErrorCode.UNRECOGNIZED_COMPONENT

    def __init__(
        self,
        message: str,
        *,
        component: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, hint=hint, context=context)
        self.component = component


class InvalidPlatformError(FlakeComposeError):
    default_code = ErrorCode.INVALID_PLATFORM


class ValidationError(FlakeComposeError):
    default_code = ErrorCode.VALIDATION


class LockfileError(FlakeComposeError):
    default_code = ErrorCode.LOCKFILE


class PolicyError(FlakeComposeError):
    default_code = ErrorCode.POLICY


class BackendExecutionError(FlakeComposeError):
    default_code = ErrorCode.BACKEND_EXECUTION


class DeclarationError(FlakeComposeError):
    """Malformed declaration or settings file."""

    default_code = ErrorCode.DECLARATION


__all__ = [
    "BackendExecutionError",
    "CyclicDependencyError",
    "DeclarationError",
    "ErrorCode",
    "FlakeComposeError",
    "InvalidPlatformError",
    "InvalidSelectorPathError",
    "LockfileError",
    "PolicyError",
    "UnknownSourceError",
    "UnrecognizedComponentError",
    "ValidationError",
]
