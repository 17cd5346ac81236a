"""In-memory structured log of one or more evaluation passes.

Records are flat dicts so they serialize directly to JSON lines. The subject
fields (``source``, ``target``, ``profile``, ``module``) are always present and
``None`` when they do not apply.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

SUBJECT_FIELDS = ("source", "target", "profile", "module")


@dataclass(slots=True)
class StructuredLogger:
    records: list[dict[str, Any]] = field(default_factory=list)

    def log(
        self,
        *,
        operation: str,
        message: str,
        source: str | None = None,
        target: str | None = None,
        profile: str | None = None,
        module: str | None = None,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        subjects = dict(zip(SUBJECT_FIELDS, (source, target, profile, module), strict=True))
        record: dict[str, Any] = {"level": level, "operation": operation, **subjects}
        record["message"] = message
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)

    def filter(self, **criteria: Any) -> list[dict[str, Any]]:
        """Records whose fields equal every given criterion."""
        return [
            record
            for record in self.records
            if all(record.get(key) == value for key, value in criteria.items())
        ]

    def records_for_profile(self, profile: str) -> list[dict[str, Any]]:
        return self.filter(profile=profile)

    def records_for_operation(self, operation: str) -> list[dict[str, Any]]:
        return self.filter(operation=operation)

    def warnings(self) -> list[dict[str, Any]]:
        return self.filter(level="warning")

    def to_json_lines(self, path: str | Path) -> Path:
        output = Path(path)
        output.parent.mkdir(parents=True, exist_ok=True)
        with output.open("w", encoding="utf-8") as handle:
            for record in self.records:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        return output
