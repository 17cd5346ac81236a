"""Flake object: sources, outputs and profiles evaluated in one resolution pass."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path, PurePath
from typing import Any, Self

from flakecompose.composer import PackageSet, ProfileModule, compose, module_name
from flakecompose.errors import LockfileError, ValidationError
from flakecompose.lockfile import (
    Lockfile,
    build_lockfile,
    declaration_digest,
    read_lockfile,
    write_lockfile,
)
from flakecompose.models import ArtifactSelector, EvaluationResult, ResolvedProfile
from flakecompose.observability import StructuredLogger
from flakecompose.outputs import OutputDeclarationSet
from flakecompose.policy import Policy, ensure_evaluate_policy
from flakecompose.providers import SourceProvider
from flakecompose.registry import SourceRegistry
from flakecompose.resolution import SourceResolver

DEFAULT_LOCK_NAME = "flake.lock.json"


@dataclass(frozen=True, slots=True)
class ProfileDeclaration:
    name: str
    platform: str
    modules: tuple[ProfileModule, ...] = ()
    packages: PackageSet | None = None


@dataclass(slots=True)
class Flake:
    """Represents a configuration root: pinned sources, default outputs, profiles."""

    provider: SourceProvider
    root: Path = field(default_factory=lambda: Path("."))
    lock_name: str = DEFAULT_LOCK_NAME
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    _registry: SourceRegistry = field(default_factory=SourceRegistry, init=False, repr=False)
    _outputs: dict[str, ArtifactSelector] = field(default_factory=dict, init=False, repr=False)
    _profiles: dict[str, ProfileDeclaration] = field(
        default_factory=dict, init=False, repr=False
    )
    _last_result: EvaluationResult | None = field(default=None, init=False, repr=False)

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    @property
    def lock_path(self) -> Path:
        return Path(self.root) / self.lock_name

    @property
    def last_result(self) -> EvaluationResult | None:
        return self._last_result

    def set_policy(self, policy: Policy) -> Self:
        self.policy = policy
        return self

    def source(
        self,
        name: str,
        locator: str,
        *,
        follows: Mapping[str, str] | None = None,
    ) -> Self:
        self._registry.add(name, locator, follows=follows)
        return self

    def output(
        self,
        target: str,
        source: str,
        *path: str,
        components: Iterable[str] = (),
    ) -> Self:
        if not target:
            raise ValidationError("output() requires a non-empty target identifier.")
        selector = ArtifactSelector(
            source=source,
            path=tuple(path),
            components=tuple(components),
        )
        existing = self._outputs.get(target)
        if existing is not None and existing != selector:
            raise ValidationError(
                "Output target is already declared with a different selector.",
                context={
                    "target": target,
                    "declared": existing.describe(),
                    "requested": selector.describe(),
                },
            )
        self._outputs[target] = selector
        return self

    def profile(
        self,
        name: str,
        platform: str,
        *modules: ProfileModule,
        packages: PackageSet | None = None,
    ) -> Self:
        if not name:
            raise ValidationError("profile() requires a non-empty name.")
        if name in self._profiles:
            raise ValidationError(
                "Profile is already declared.",
                context={"profile": name},
            )
        self._profiles[name] = ProfileDeclaration(
            name=name,
            platform=platform,
            modules=tuple(modules),
            packages=packages,
        )
        return self

    def declaration(self) -> dict[str, Any]:
        """JSON-compatible description of everything declared so far."""
        sources = {
            source.name: {
                "locator": source.locator,
                "follows": dict(sorted(source.follows.items())),
            }
            for source in self._registry.sources()
        }
        outputs = {
            target: {
                "source": selector.source,
                "path": list(selector.path),
                "components": list(selector.components),
            }
            for target, selector in self._outputs.items()
        }
        profiles = {
            name: {
                "platform": declaration.platform,
                "modules": [_module_payload(module) for module in declaration.modules],
                "packages": (
                    {
                        "source": declaration.packages.source,
                        "root": list(declaration.packages.root),
                    }
                    if declaration.packages is not None
                    else None
                ),
            }
            for name, declaration in self._profiles.items()
        }
        return {"sources": sources, "outputs": outputs, "profiles": profiles}

    def evaluate(self, *, frozen: bool = False, write_lock: bool = True) -> EvaluationResult:
        """Run one resolution pass; write the lockfile afterwards unless frozen."""
        return self._evaluate(frozen=frozen, lock_path=self.lock_path if write_lock else None)

    def lock(self, path: str | Path | None = None) -> Path:
        lock_path = Path(path) if path is not None else self.lock_path
        self._evaluate(frozen=False, lock_path=lock_path)
        return lock_path

    def update(self, *names: str) -> EvaluationResult:
        """Drop lock entries for *names* (all sources when empty) and re-resolve them."""
        for name in names:
            self._registry.resolve(name)
        lock = self._read_lock(required=False)
        if lock is not None and names:
            dropped = set(names)
            kept = {name: entry for name, entry in lock.sources.items() if name not in dropped}
            lock = Lockfile(
                version=lock.version,
                declaration_digest=lock.declaration_digest,
                sources=kept,
            )
        else:
            lock = None
        self.logger.log(
            operation="update",
            message="Updating locked sources.",
            extra={"sources": list(names) or list(self._registry.names())},
        )
        return self._evaluate(frozen=False, lock_path=self.lock_path, lock=lock, read_lock=False)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _evaluate(
        self,
        *,
        frozen: bool,
        lock_path: Path | None,
        lock: Lockfile | None = None,
        read_lock: bool = True,
    ) -> EvaluationResult:
        ensure_evaluate_policy(policy=self.policy, frozen=frozen)
        declaration = self.declaration()
        digest = declaration_digest(declaration)
        if lock is None and read_lock:
            lock = self._read_lock(required=frozen)
        if frozen and lock is not None and lock.declaration_digest != digest:
            raise LockfileError(
                "Frozen lockfile is stale for current declarations.",
                hint="Re-run flake.lock() and commit the updated lockfile.",
                context={
                    "operation": "evaluate",
                    "mode": "frozen",
                    "expected": digest,
                    "actual": lock.declaration_digest,
                    "path": str(self.lock_path),
                },
            )

        resolver = SourceResolver(
            registry=self._registry,
            provider=self.provider,
            lock=lock,
            frozen=frozen,
            policy=self.policy,
            logger=self.logger,
        )
        sources = resolver.resolve_all()

        output_set = OutputDeclarationSet(resolver)
        for target, selector in self._outputs.items():
            output_set.declare(target, selector)

        profiles: dict[str, ResolvedProfile] = {}
        for name, profile in self._profiles.items():
            profiles[name] = compose(
                profile.platform,
                profile.modules,
                resolver=resolver,
                packages=profile.packages,
                name=name,
            )

        written: Path | None = None
        if lock_path is not None and not frozen:
            lockfile = build_lockfile(declaration=declaration, sources=sources)
            written = write_lockfile(lockfile, lock_path)
            self.logger.log(
                operation="write_lock",
                message="Wrote lockfile.",
                extra={"path": str(written), "sources": len(lockfile.sources)},
            )

        result = EvaluationResult(
            sources=sources,
            outputs=output_set.artifacts(),
            profiles=profiles,
            declaration_digest=digest,
            lock_path=written,
        )
        self._last_result = result
        return result

    def _read_lock(self, *, required: bool) -> Lockfile | None:
        if not required and not self.lock_path.exists():
            return None
        return read_lockfile(self.lock_path)


def _module_payload(module: ProfileModule) -> dict[str, Any]:
    """Declaration entry for *module*.

    Dataclass modules contribute their fields; other modules contribute the
    mapping returned by an optional ``config()`` method, or only their name.
    Configuration a module keeps elsewhere does not reach the declaration
    digest, so changing it never makes a frozen lock stale.
    """
    name = module_name(module)
    payload: dict[str, Any] = {"module": name}
    if is_dataclass(module) and not isinstance(module, type):
        config: Any = {item.name: getattr(module, item.name) for item in fields(module)}
    elif callable(getattr(module, "config", None)):
        config = module.config()  # type: ignore[attr-defined]
    else:
        return payload
    payload["config"] = _canonical(config, module=name, where="config")
    return payload


def _canonical(value: Any, *, module: str, where: str) -> Any:
    """Convert *value* to plain JSON data, or reject it."""
    if value is None or isinstance(value, str | int | float | bool):
        return value
    if isinstance(value, PurePath):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        value = {item.name: getattr(value, item.name) for item in fields(value)}
    if isinstance(value, Mapping):
        return {
            str(key): _canonical(item, module=module, where=f"{where}.{key}")
            for key, item in value.items()
        }
    if isinstance(value, list | tuple):
        return [
            _canonical(item, module=module, where=f"{where}[{index}]")
            for index, item in enumerate(value)
        ]
    if isinstance(value, set | frozenset):
        items = [_canonical(item, module=module, where=where) for item in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
    raise ValidationError(
        "Module configuration is not serializable.",
        hint="Use plain data (strings, numbers, paths, lists, mappings) in module fields.",
        context={"module": module, "field": where, "type": type(value).__name__},
    )
