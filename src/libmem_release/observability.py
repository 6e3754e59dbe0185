"""Structured logging and console progress helpers."""

from __future__ import annotations

import json
import shlex
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO


@dataclass(slots=True)
class StructuredLogger:
    """Collects log records and echoes a human-readable line per record.

    ``stream=None`` silences the echo; records are still kept.
    """

    platform: str | None = None
    stream: TextIO | None = field(default_factory=lambda: sys.stdout)
    records: list[dict[str, Any]] = field(default_factory=list)

    def log(
        self,
        *,
        operation: str,
        message: str,
        variant: str | None = None,
        step: str | None = None,
        level: str = "info",
        extra: dict[str, Any] | None = None,
        echo: bool = True,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "platform": self.platform,
            "variant": variant,
            "step": step,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)
        if echo:
            self._echo(record)

    def step(self, operation: str, message: str, *, variant: str | None = None) -> None:
        self.log(operation=operation, message=message, variant=variant, step="start")

    def command(
        self,
        argv: Sequence[str],
        *,
        operation: str = "run",
        variant: str | None = None,
    ) -> None:
        self.log(
            operation=operation,
            message=shlex.join(argv),
            variant=variant,
            step="command",
            extra={"argv": list(argv)},
        )

    def records_for_variant(self, variant: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("variant") == variant]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path

    def _echo(self, record: dict[str, Any]) -> None:
        if self.stream is None:
            return
        message = record["message"]
        if record["step"] == "start":
            line = f"[+] {message}"
        elif record["step"] == "command":
            line = f"+ {message}"
        elif record["level"] != "info":
            line = f"{record['level']}: {message}"
        else:
            line = message
        print(line, file=self.stream, flush=True)
