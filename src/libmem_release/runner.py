"""External process execution seam."""

from __future__ import annotations

import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from libmem_release.errors import ToolExecutionError
from libmem_release.observability import StructuredLogger


@dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        capture: bool = False,
    ) -> CommandResult:
        """Run *argv* to completion and report its exit status."""


@dataclass(slots=True)
class SubprocessRunner:
    """Runs commands on the host, echoing each one before it starts.

    Output streams straight to the terminal unless ``capture`` is requested.
    There is no timeout: a hung tool hangs the caller.
    """

    logger: StructuredLogger | None = None

    def run(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        capture: bool = False,
    ) -> CommandResult:
        command = tuple(str(arg) for arg in argv)
        if self.logger is not None and not capture:
            self.logger.command(command)
        completed = subprocess.run(
            command,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            capture_output=capture,
            text=True,
            check=False,
        )
        return CommandResult(
            argv=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


def check_result(
    result: CommandResult,
    *,
    operation: str,
    hint: str | None = None,
    context: Mapping[str, str] | None = None,
) -> CommandResult:
    """Raise :class:`ToolExecutionError` unless *result* exited cleanly."""
    if result.ok:
        return result
    details = {
        "operation": operation,
        "returncode": str(result.returncode),
        "command": shlex.join(result.argv),
        "stderr": result.stderr[-2000:] if result.stderr else "",
    }
    details.update(context or {})
    raise ToolExecutionError(
        f"`{result.argv[0]}` exited with status {result.returncode}.",
        hint=hint or "Check the tool output above for details.",
        context=details,
    )
