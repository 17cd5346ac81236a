"""Profile composition: ordered modules registering overlays and installing packages."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Protocol, Self, runtime_checkable

from flakecompose.errors import (
    CyclicDependencyError,
    InvalidPlatformError,
    InvalidSelectorPathError,
    ValidationError,
)
from flakecompose.models import (
    SUPPORTED_PLATFORMS,
    Artifact,
    ArtifactSelector,
    ResolvedProfile,
)
from flakecompose.outputs import select_artifact
from flakecompose.resolution import SourceResolver

PrevFn = Callable[[], Artifact | None]
OverlayFn = Callable[["ProfileBuilder", PrevFn], Artifact]


@runtime_checkable
class ProfileModule(Protocol):
    """Runtime protocol for modules that compose into a profile.

    A module's configuration is recorded in the declaration digest from its
    dataclass fields, or from an optional ``config()`` mapping.
    """

    def setup(self, profile: ProfileBuilder) -> None:
        """Register overlays visible to this module and every later one."""

    def install(self, profile: ProfileBuilder) -> None:
        """Append packages to the profile's package list."""


@dataclass(frozen=True, slots=True)
class OverlayRecord:
    name: str
    module: str
    fn: OverlayFn


@dataclass(frozen=True, slots=True)
class PackageSet:
    """Base package set: named artifacts under *root* in *source*'s tree."""

    source: str
    root: tuple[str, ...] = ()

    def for_platform(self, platform: str) -> PackageSet:
        selector = ArtifactSelector(source=self.source, path=self.root).for_platform(platform)
        return replace(self, root=selector.path)

    def find(self, resolver: SourceResolver, name: str) -> Artifact | None:
        """Select *name* from the set; None when the root or the name is absent."""
        node: Any = resolver.tree(self.source)
        for key in (*self.root, name):
            if not isinstance(node, Mapping) or key not in node:
                return None
            node = node[key]
        selector = ArtifactSelector(source=self.source, path=(*self.root, name))
        return select_artifact(resolver, selector, target=name)


def module_name(module: object) -> str:
    name = getattr(module, "name", None)
    return name if isinstance(name, str) and name else type(module).__name__


@dataclass(slots=True)
class ProfileBuilder:
    """Mutable profile under composition; modules operate on this object."""

    name: str
    platform: str
    resolver: SourceResolver
    packages: PackageSet | None = None
    _overlays: list[OverlayRecord] = field(default_factory=list, init=False, repr=False)
    _installed: list[Artifact] = field(default_factory=list, init=False, repr=False)
    _modules: list[str] = field(default_factory=list, init=False, repr=False)
    _current_module: str | None = field(default=None, init=False, repr=False)
    _resolving: list[str] = field(default_factory=list, init=False, repr=False)

    def apply(self, module: ProfileModule) -> Self:
        if not isinstance(module, ProfileModule):
            raise ValidationError(
                "Profile modules must implement setup() and install().",
                context={"profile": self.name, "module": type(module).__name__},
            )
        name = module_name(module)
        self._current_module = name
        self._modules.append(name)
        self.resolver.logger.log(
            operation="apply_module",
            profile=self.name,
            module=name,
            message="Applying profile module.",
        )
        try:
            module.setup(self)
            module.install(self)
        finally:
            self._current_module = None
        return self

    def overlay(self, name: str, fn: OverlayFn) -> Self:
        if not name:
            raise ValidationError("overlay() requires a non-empty name.")
        owner = self._current_module or self.name
        self._overlays.append(OverlayRecord(name=name, module=owner, fn=fn))
        self.resolver.logger.log(
            operation="register_overlay",
            profile=self.name,
            module=owner,
            message="Registered overlay.",
            extra={"overlay": name},
        )
        return self

    def lookup(self, name: str) -> Artifact:
        """Resolve *name* through the base package set and every overlay registered so far."""
        if name in self._resolving:
            cycle = (*self._resolving[self._resolving.index(name) :], name)
            raise CyclicDependencyError(
                "Overlay lookups refer back to themselves.",
                cycle=cycle,
                hint="Call the `prev` thunk instead of looking up the overlaid name.",
                context={"profile": self.name, "cycle": " -> ".join(cycle)},
            )
        self._resolving.append(name)
        try:
            return self._lookup(name)
        finally:
            self._resolving.pop()

    def select(self, source: str, *path: str, components: Iterable[str] = ()) -> Artifact:
        selector = ArtifactSelector(
            source=source,
            path=tuple(path),
            components=tuple(components),
        ).for_platform(self.platform)
        target = selector.path[-1] if selector.path else source
        return select_artifact(self.resolver, selector, target=target)

    def install(self, *items: str | Artifact) -> Self:
        if not items:
            raise ValidationError("install() requires at least one package.")
        for item in items:
            if isinstance(item, Artifact):
                artifact = item
            elif isinstance(item, str) and item:
                artifact = self.lookup(item)
            else:
                raise ValidationError(
                    "Packages must be non-empty names or artifacts.",
                    context={"profile": self.name},
                )
            self._installed.append(artifact)
        return self

    def effective_overlays(self) -> dict[str, str]:
        """Overlay name to the module whose registration currently wins."""
        effective: dict[str, str] = {}
        for record in self._overlays:
            effective[record.name] = record.module
        return effective

    def resolved(self) -> ResolvedProfile:
        return ResolvedProfile(
            name=self.name,
            platform=self.platform,
            modules=tuple(self._modules),
            packages=tuple(self._installed),
            overlays=self.effective_overlays(),
        )

    def _lookup(self, name: str) -> Artifact:
        records = [record for record in self._overlays if record.name == name]
        artifact = self._layer(name, records, len(records))
        if artifact is None:
            raise InvalidSelectorPathError(
                f"No overlay or package set provides `{name}`.",
                hint="Register an overlay for the name or configure a base package set.",
                context={
                    "profile": self.name,
                    "package": name,
                    "package_set": (
                        ".".join((self.packages.source, *self.packages.root))
                        if self.packages is not None
                        else ""
                    ),
                },
            )
        return artifact

    def _layer(self, name: str, records: list[OverlayRecord], depth: int) -> Artifact | None:
        """Resolve *name* through the first *depth* overlays.

        Earlier overlays and the base package set only run when a later overlay
        calls its ``prev`` thunk.
        """
        if depth == 0:
            if self.packages is None:
                return None
            return self.packages.find(self.resolver, name)
        record = records[depth - 1]
        result = record.fn(self, lambda: self._layer(name, records, depth - 1))
        if not isinstance(result, Artifact):
            raise ValidationError(
                "Overlays must return an artifact.",
                context={"profile": self.name, "overlay": name, "module": record.module},
            )
        return replace(result, target=name)


def compose(
    base_platform: str,
    modules: Iterable[ProfileModule],
    *,
    resolver: SourceResolver,
    packages: PackageSet | None = None,
    name: str = "default",
) -> ResolvedProfile:
    """Apply *modules* in order on *base_platform* and return the resolved profile.

    Any error aborts the whole composition; no partial profile escapes.
    """
    if base_platform not in SUPPORTED_PLATFORMS:
        raise InvalidPlatformError(
            f"Unsupported base platform `{base_platform}`.",
            hint=f"Use one of: {', '.join(SUPPORTED_PLATFORMS)}.",
            context={"profile": name, "platform": base_platform},
        )
    builder = ProfileBuilder(
        name=name,
        platform=base_platform,
        resolver=resolver,
        packages=packages.for_platform(base_platform) if packages is not None else None,
    )
    for module in modules:
        builder.apply(module)
    profile = builder.resolved()
    resolver.logger.log(
        operation="compose_profile",
        profile=name,
        message="Composed profile.",
        extra={"platform": base_platform, "packages": len(profile.packages)},
    )
    return profile
