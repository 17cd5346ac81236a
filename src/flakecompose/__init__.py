"""Public package entrypoint for flakecompose."""

from .composer import PackageSet, ProfileBuilder, ProfileModule, compose
from .errors import (
    BackendExecutionError,
    CyclicDependencyError,
    DeclarationError,
    FlakeComposeError,
    InvalidPlatformError,
    InvalidSelectorPathError,
    LockfileError,
    PolicyError,
    UnknownSourceError,
    UnrecognizedComponentError,
    ValidationError,
)
from .flake import Flake
from .models import (
    SUPPORTED_PLATFORMS,
    Artifact,
    ArtifactLeaf,
    ArtifactSelector,
    EvaluationResult,
    ResolvedProfile,
    ResolvedSource,
    Source,
)
from .outputs import OutputDeclarationSet
from .policy import Policy
from .registry import SourceRegistry
from .resolution import SourceResolver

__all__ = [
    "SUPPORTED_PLATFORMS",
    "Artifact",
    "ArtifactLeaf",
    "ArtifactSelector",
    "BackendExecutionError",
    "CyclicDependencyError",
    "DeclarationError",
    "EvaluationResult",
    "Flake",
    "FlakeComposeError",
    "InvalidPlatformError",
    "InvalidSelectorPathError",
    "LockfileError",
    "OutputDeclarationSet",
    "PackageSet",
    "Policy",
    "PolicyError",
    "ProfileBuilder",
    "ProfileModule",
    "ResolvedProfile",
    "ResolvedSource",
    "Source",
    "SourceRegistry",
    "SourceResolver",
    "UnknownSourceError",
    "UnrecognizedComponentError",
    "ValidationError",
    "compose",
]
