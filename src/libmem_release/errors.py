"""Typed release-build error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers reported by the CLI and in log records."""

    VALIDATION = "E_VALIDATION"
    TOOL_EXECUTION = "E_TOOL_EXECUTION"
    ENVIRONMENT = "E_ENVIRONMENT"


class ReleaseBuildError(Exception):
    """Failure of one release build, reported by the CLI and in log records.

    ``message`` is the one-line summary; ``context`` holds the details a
    maintainer needs to reproduce the failure (platform, variant, command,
    stderr tail). Empty context values are omitted when rendered.
    """

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code: str = code.value
        self.hint = hint
        self.context: dict[str, str] = dict(context or {})

    def details(self) -> dict[str, str]:
        return {key: value for key, value in self.context.items() if value}

    def __str__(self) -> str:
        lines = [self.message]
        if self.hint:
            lines.append(f"Hint: {self.hint}")
        lines.extend(f"  {key}: {value}" for key, value in self.details().items())
        return "\n".join(lines)

    def to_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "message": self.message,
            "hint": self.hint,
            "context": self.details(),
        }


class ValidationError(ReleaseBuildError):
    """Bad input: platform, output directory or source tree."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class UnsupportedPlatformError(ValidationError):
    def __init__(self, platform: str, *, supported: tuple[str, ...]) -> None:
        super().__init__(
            f"Unknown platform: {platform}",
            hint="Supported platforms: " + ", ".join(supported),
            context={"platform": platform},
        )
        self.platform = platform


class OutputExistsError(ValidationError):
    def __init__(self, path: str) -> None:
        super().__init__(
            f"Output directory already exists: {path}",
            hint="Remove it or point LIBMEM_BUILD_OUT_DIR at a new location.",
            context={"out_dir": path},
        )
        self.path = path


class ToolExecutionError(ReleaseBuildError):
    """An external build tool exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.TOOL_EXECUTION, hint=hint, context=context)


class EnvironmentSetupError(ReleaseBuildError):
    """A build environment prerequisite is missing on the host."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.ENVIRONMENT, hint=hint, context=context)


__all__ = [
    "EnvironmentSetupError",
    "ErrorCode",
    "OutputExistsError",
    "ReleaseBuildError",
    "ToolExecutionError",
    "UnsupportedPlatformError",
    "ValidationError",
]
