import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import cbor2
import pytest

from flakecompose import Flake
from flakecompose.composer import PackageSet, ProfileBuilder
from flakecompose.errors import (
    CyclicDependencyError,
    LockfileError,
    PolicyError,
    UnknownSourceError,
    ValidationError,
)
from flakecompose.lockfile import read_lockfile
from flakecompose.modules import Devtools, SourceOverlay, Toolchain
from flakecompose.policy import Policy
from flakecompose.providers import StaticProvider
from tests.conftest import (
    FENIX_LOCATOR,
    FENIX_REV,
    NIXPKGS_LOCATOR,
    NIXPKGS_REV,
    fenix_tree,
    nixpkgs_tree,
)

NEW_FENIX_REV = "4" * 40
NEW_NIXPKGS_REV = "5" * 40


def _flake(tmp_path: Path, provider: StaticProvider) -> Flake:
    flake = Flake(
        provider=provider,
        root=tmp_path,
        policy=Policy(mutable_ref_policy="allow"),
    )
    flake.source("nixpkgs", NIXPKGS_LOCATOR)
    flake.source("fenix", FENIX_LOCATOR, follows={"nixpkgs": "nixpkgs"})
    flake.output("default", "fenix", "packages", "x86_64-linux", "minimal", "toolchain")
    flake.profile(
        "workstation",
        "x86_64-linux",
        SourceOverlay(source="fenix", attributes=("rust-analyzer",)),
        Toolchain(),
        Devtools(extra=("rust-analyzer",)),
        packages=PackageSet("nixpkgs", ("legacyPackages", "{platform}")),
    )
    return flake


def _publish_new_revisions(provider: StaticProvider) -> None:
    provider.publish(FENIX_LOCATOR, NEW_FENIX_REV, fenix_tree("beta"))
    provider.publish(NIXPKGS_LOCATOR, NEW_NIXPKGS_REV, nixpkgs_tree())


def test_evaluate_resolves_outputs_and_profiles(tmp_path: Path, provider: StaticProvider) -> None:
    flake = _flake(tmp_path, provider)

    result = flake.evaluate()

    default = result.output_for("default")
    assert default is not None
    assert default.revision == FENIX_REV
    assert default.inputs == {"nixpkgs": NIXPKGS_REV}
    assert result.profiles["workstation"].package_names()[-1] == "rust-analyzer"
    assert result.lock_path == tmp_path / "flake.lock.json"
    assert flake.last_result is result


def test_evaluate_writes_a_lock_that_frozen_mode_reuses(
    tmp_path: Path,
    provider: StaticProvider,
) -> None:
    flake = _flake(tmp_path, provider)
    first = flake.evaluate()
    lock = read_lockfile(flake.lock_path)
    assert lock.revision_for("fenix") == FENIX_REV
    assert lock.declaration_digest == first.declaration_digest

    _publish_new_revisions(provider)
    provider.revision_calls.clear()
    frozen = _flake(tmp_path, provider).evaluate(frozen=True)

    assert provider.revision_calls == []
    assert frozen.lock_path is None
    assert frozen.outputs == first.outputs
    assert frozen.to_json() == first.to_json()


def test_evaluation_results_serialize_deterministically(
    tmp_path: Path,
    provider: StaticProvider,
) -> None:
    first = _flake(tmp_path, provider).evaluate(write_lock=False)
    second = _flake(tmp_path, provider).evaluate(write_lock=False)

    assert first.to_json() == second.to_json()
    assert first.to_cbor() == second.to_cbor()
    payload = json.loads(first.to_json(tmp_path / "result.json"))
    assert payload["outputs"]["default"]["identity"] == first.outputs["default"].identity
    assert cbor2.loads(first.to_cbor()) == payload
    assert not (tmp_path / "flake.lock.json").exists()


def test_frozen_mode_requires_a_lockfile(tmp_path: Path, provider: StaticProvider) -> None:
    with pytest.raises(LockfileError) as excinfo:
        _flake(tmp_path, provider).evaluate(frozen=True)

    assert "does not exist" in str(excinfo.value)


def test_frozen_mode_rejects_changed_declarations(
    tmp_path: Path,
    provider: StaticProvider,
) -> None:
    _flake(tmp_path, provider).lock()
    changed = _flake(tmp_path, provider)
    changed.output("analyzer", "fenix", "packages", "x86_64-linux", "rust-analyzer")

    with pytest.raises(LockfileError) as excinfo:
        changed.evaluate(frozen=True)

    assert "stale" in str(excinfo.value)
    assert excinfo.value.context["mode"] == "frozen"


def test_policy_can_require_frozen_evaluation(tmp_path: Path, provider: StaticProvider) -> None:
    flake = _flake(tmp_path, provider)
    flake.lock()
    flake.set_policy(Policy(require_frozen_lock=True, mutable_ref_policy="allow"))

    with pytest.raises(PolicyError):
        flake.evaluate()
    assert flake.evaluate(frozen=True).output_for("default") is not None


def test_lock_to_explicit_path(tmp_path: Path, provider: StaticProvider) -> None:
    path = _flake(tmp_path, provider).lock(tmp_path / "locks" / "dev.lock.json")

    assert read_lockfile(path).revision_for("nixpkgs") == NIXPKGS_REV
    assert not (tmp_path / "flake.lock.json").exists()


def test_update_selected_sources_keeps_other_pins(
    tmp_path: Path,
    provider: StaticProvider,
) -> None:
    _flake(tmp_path, provider).lock()
    _publish_new_revisions(provider)

    result = _flake(tmp_path, provider).update("fenix")

    assert result.sources["fenix"].revision == NEW_FENIX_REV
    assert result.sources["nixpkgs"].revision == NIXPKGS_REV
    assert read_lockfile(tmp_path / "flake.lock.json").revision_for("fenix") == NEW_FENIX_REV


def test_update_without_names_refreshes_everything(
    tmp_path: Path,
    provider: StaticProvider,
) -> None:
    flake = _flake(tmp_path, provider)
    before = flake.evaluate()
    _publish_new_revisions(provider)

    after = flake.update()

    assert after.sources["fenix"].revision == NEW_FENIX_REV
    assert after.sources["nixpkgs"].revision == NEW_NIXPKGS_REV
    assert after.outputs["default"].identity != before.outputs["default"].identity


def test_update_rejects_unknown_sources(tmp_path: Path, provider: StaticProvider) -> None:
    with pytest.raises(UnknownSourceError):
        _flake(tmp_path, provider).update("rust-overlay")


def test_duplicate_declarations_are_rejected(tmp_path: Path, provider: StaticProvider) -> None:
    flake = _flake(tmp_path, provider)

    with pytest.raises(ValidationError):
        flake.output("default", "fenix", "packages", "x86_64-linux", "minimal", "cargo")
    with pytest.raises(ValidationError):
        flake.profile("workstation", "aarch64-linux")
    with pytest.raises(ValidationError):
        flake.source("nixpkgs", NIXPKGS_LOCATOR)


def test_cyclic_follows_abort_evaluation(tmp_path: Path, provider: StaticProvider) -> None:
    flake = Flake(provider=provider, root=tmp_path)
    flake.source("a", "github:example/a", follows={"b": "b"})
    flake.source("b", "github:example/b", follows={"a": "a"})

    with pytest.raises(CyclicDependencyError):
        flake.evaluate()
    assert not flake.lock_path.exists()


def test_declaration_describes_modules(tmp_path: Path, provider: StaticProvider) -> None:
    declaration = _flake(tmp_path, provider).declaration()

    assert declaration["sources"]["fenix"] == {
        "locator": FENIX_LOCATOR,
        "follows": {"nixpkgs": "nixpkgs"},
    }
    modules = declaration["profiles"]["workstation"]["modules"]
    assert [module["module"] for module in modules] == ["source-overlay", "toolchain", "devtools"]
    assert modules[2]["config"]["extra"] == ["rust-analyzer"]
    assert declaration["profiles"]["workstation"]["packages"] == {
        "source": "nixpkgs",
        "root": ["legacyPackages", "{platform}"],
    }


def test_redeclaring_an_identical_output_is_idempotent(
    tmp_path: Path,
    provider: StaticProvider,
) -> None:
    flake = _flake(tmp_path, provider)
    flake.output("default", "fenix", "packages", "x86_64-linux", "minimal", "toolchain")

    result = flake.evaluate(write_lock=False)

    assert list(result.outputs) == ["default"]


@dataclass(frozen=True)
class MountedTools:
    root: Path
    tags: frozenset[str] = frozenset()
    name: str = "mounted-tools"

    def setup(self, profile: ProfileBuilder) -> None:
        pass

    def install(self, profile: ProfileBuilder) -> None:
        profile.install("git")


@dataclass(frozen=True)
class HookedTools:
    hook: Callable[[], None]
    name: str = "hooked-tools"

    def setup(self, profile: ProfileBuilder) -> None:
        pass

    def install(self, profile: ProfileBuilder) -> None:
        pass


class ConfiguredTools:
    name = "configured-tools"

    def __init__(self, packages: tuple[str, ...]) -> None:
        self.packages = packages

    def config(self) -> dict[str, object]:
        return {"packages": self.packages}

    def setup(self, profile: ProfileBuilder) -> None:
        pass

    def install(self, profile: ProfileBuilder) -> None:
        profile.install(*self.packages)


class OpaqueTools(ConfiguredTools):
    name = "opaque-tools"
    config = None  # type: ignore[assignment]


def _single_module_flake(tmp_path: Path, provider: StaticProvider, module: object) -> Flake:
    flake = Flake(provider=provider, root=tmp_path, policy=Policy(mutable_ref_policy="allow"))
    flake.source("nixpkgs", NIXPKGS_LOCATOR)
    flake.profile(
        "tools",
        "x86_64-linux",
        module,  # type: ignore[arg-type]
        packages=PackageSet("nixpkgs", ("legacyPackages", "{platform}")),
    )
    return flake


def test_module_paths_and_sets_are_declared_as_plain_data(
    tmp_path: Path,
    provider: StaticProvider,
) -> None:
    module = MountedTools(root=Path("/etc/tools"), tags=frozenset({"vcs", "build"}))
    flake = _single_module_flake(tmp_path, provider, module)

    (entry,) = flake.declaration()["profiles"]["tools"]["modules"]
    assert entry["config"] == {
        "root": "/etc/tools",
        "tags": ["build", "vcs"],
        "name": "mounted-tools",
    }
    assert flake.evaluate().profiles["tools"].package_names() == ("git",)


def test_unserializable_module_config_is_a_validation_error(
    tmp_path: Path,
    provider: StaticProvider,
) -> None:
    flake = _single_module_flake(tmp_path, provider, HookedTools(hook=lambda: None))

    with pytest.raises(ValidationError) as excinfo:
        flake.evaluate()

    assert excinfo.value.context["module"] == "hooked-tools"
    assert excinfo.value.context["field"] == "config.hook"
    assert not flake.lock_path.exists()


def test_non_dataclass_module_config_reaches_the_lock_digest(
    tmp_path: Path,
    provider: StaticProvider,
) -> None:
    _single_module_flake(tmp_path, provider, ConfiguredTools(("git",))).lock()

    changed = _single_module_flake(tmp_path, provider, ConfiguredTools(("git", "jq")))
    with pytest.raises(LockfileError):
        changed.evaluate(frozen=True)

    (entry,) = changed.declaration()["profiles"]["tools"]["modules"]
    assert entry == {"module": "configured-tools", "config": {"packages": ["git", "jq"]}}


def test_modules_without_config_are_declared_by_name(
    tmp_path: Path,
    provider: StaticProvider,
) -> None:
    _single_module_flake(tmp_path, provider, OpaqueTools(("git",))).lock()

    changed = _single_module_flake(tmp_path, provider, OpaqueTools(("git", "jq")))
    (entry,) = changed.declaration()["profiles"]["tools"]["modules"]

    assert entry == {"module": "opaque-tools"}
    assert changed.evaluate(frozen=True).profiles["tools"].package_names() == ("git", "jq")
