"""Source registry: named content sources and their ``follows`` links."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

from flakecompose.errors import CyclicDependencyError, UnknownSourceError, ValidationError
from flakecompose.models import Source


@dataclass(slots=True)
class SourceRegistry:
    """Mapping from symbolic names to external content sources.

    ``follows`` links are checked lazily: a source may follow a name declared
    after it, but every link must resolve, and the link graph must be acyclic,
    before any source is resolved.
    """

    _sources: dict[str, Source] = field(default_factory=dict)
    _order: tuple[str, ...] | None = field(default=None, repr=False)

    def add(self, name: str, locator: str, *, follows: Mapping[str, str] | None = None) -> Source:
        if not name:
            raise ValidationError("Source names must be non-empty.")
        if not locator:
            raise ValidationError(
                "Sources require a non-empty locator.",
                context={"source": name},
            )
        if name in self._sources:
            raise ValidationError(
                "Source is already declared.",
                hint="Each source name may be declared once per configuration.",
                context={"source": name},
            )
        links = dict(follows or {})
        for dependency, target in links.items():
            if not dependency or not target:
                raise ValidationError(
                    "follows entries require a dependency name and a target source.",
                    context={"source": name, "dependency": dependency},
                )
        source = Source(name=name, locator=locator, follows=links)
        self._sources[name] = source
        self._order = None
        return source

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    def __iter__(self) -> Iterator[str]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def names(self) -> tuple[str, ...]:
        return tuple(self._sources)

    def sources(self) -> tuple[Source, ...]:
        """Declared sources in declaration order, without validating links."""
        return tuple(self._sources.values())

    def validate(self) -> tuple[str, ...]:
        """Check every ``follows`` link and return all sources in dependency order."""
        if self._order is not None:
            return self._order

        for source in self._sources.values():
            for dependency, target in source.follows.items():
                if target not in self._sources:
                    raise UnknownSourceError(
                        f"Source `{source.name}` follows unknown source `{target}`.",
                        hint="Declare the followed source before evaluating.",
                        context={
                            "operation": "validate",
                            "source": source.name,
                            "dependency": dependency,
                            "follows": target,
                        },
                    )

        order: list[str] = []
        state: dict[str, str] = {}
        for name in self._sources:
            self._visit(name, state=state, stack=[], order=order)
        self._order = tuple(order)
        return self._order

    def resolve(self, name: str) -> Source:
        self.validate()
        source = self._sources.get(name)
        if source is None:
            raise UnknownSourceError(
                f"Unknown source `{name}`.",
                hint="Declare the source in the registry before referencing it.",
                context={
                    "operation": "resolve",
                    "source": name,
                    "known": ", ".join(sorted(self._sources)),
                },
            )
        return source

    def inputs(self, name: str) -> dict[str, Source]:
        """Return the sources that *name*'s dependencies follow, keyed by dependency name."""
        source = self.resolve(name)
        return {
            dependency: self._sources[target]
            for dependency, target in sorted(source.follows.items())
        }

    def closure(self, name: str) -> tuple[str, ...]:
        """Transitive ``follows`` closure of *name*, dependencies first, *name* last."""
        self.resolve(name)
        order: list[str] = []
        state: dict[str, str] = {}
        self._visit(name, state=state, stack=[], order=order)
        return tuple(order)

    def order(self) -> tuple[str, ...]:
        return self.validate()

    def _visit(
        self,
        name: str,
        *,
        state: dict[str, str],
        stack: list[str],
        order: list[str],
    ) -> None:
        status = state.get(name)
        if status == "done":
            return
        if status == "active":
            cycle = (*stack[stack.index(name) :], name)
            raise CyclicDependencyError(
                "Cyclic follows links between sources.",
                cycle=cycle,
                hint="Remove one of the follows links so the sources form a DAG.",
                context={"operation": "validate", "cycle": " -> ".join(cycle)},
            )
        state[name] = "active"
        stack.append(name)
        for target in sorted(set(self._sources[name].follows.values())):
            self._visit(target, state=state, stack=stack, order=order)
        stack.pop()
        state[name] = "done"
        order.append(name)
