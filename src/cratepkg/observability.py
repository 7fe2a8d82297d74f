"""Structured logging and observability helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO

_ECHO_PREFIXES: dict[str, str] = {
    "note": "note",
    "warn": "warning",
    "error": "error",
}


@dataclass(slots=True)
class StructuredLogger:
    records: list[dict[str, Any]] = field(default_factory=list)
    stream: TextIO | None = None

    def log(
        self,
        *,
        operation: str,
        package: str | None,
        phase: str | None,
        message: str,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "package": package,
            "phase": phase,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)
        prefix = _ECHO_PREFIXES.get(level)
        if self.stream is not None and prefix is not None:
            self.stream.write(f"{prefix}: {message}\n")

    def debug(self, operation: str, message: str, *, package: str | None = None,
              phase: str | None = None, **extra: Any) -> None:
        self.log(operation=operation, package=package, phase=phase, message=message,
                 level="debug", extra=extra or None)

    def note(self, operation: str, message: str, *, package: str | None = None,
             phase: str | None = None, **extra: Any) -> None:
        self.log(operation=operation, package=package, phase=phase, message=message,
                 level="note", extra=extra or None)

    def warn(self, operation: str, message: str, *, package: str | None = None,
             phase: str | None = None, **extra: Any) -> None:
        self.log(operation=operation, package=package, phase=phase, message=message,
                 level="warn", extra=extra or None)

    def error(self, operation: str, message: str, *, package: str | None = None,
              phase: str | None = None, **extra: Any) -> None:
        self.log(operation=operation, package=package, phase=phase, message=message,
                 level="error", extra=extra or None)

    def records_for_package(self, package: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("package") == package]

    def messages(self, level: str) -> list[str]:
        return [record["message"] for record in self.records if record["level"] == level]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True, default=str) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path
