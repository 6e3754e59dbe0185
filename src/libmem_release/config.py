"""Run configuration read once from the process environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from libmem_release.models import Platform
from libmem_release.platforms import default_out_dir_name

ENV_OUT_DIR = "LIBMEM_BUILD_OUT_DIR"
ENV_SKIP_ARCHIVE = "LIBMEM_BUILD_SKIP_ARCHIVE"
ENV_SOURCE_DIR = "LIBMEM_BUILD_SOURCE_DIR"
ENV_LOG_FILE = "LIBMEM_BUILD_LOG_FILE"

_TRUTHY = frozenset({"1", "true", "yes", "on"})

ENVIRONMENT_HELP: tuple[tuple[str, str], ...] = (
    (ENV_OUT_DIR, 'The output directory (default: "build/out/libmem-local-${platform}").'),
    (ENV_SKIP_ARCHIVE, "Skip the final archive creation (default: false)."),
    (ENV_SOURCE_DIR, "The libmem source checkout to build (default: current directory)."),
    (ENV_LOG_FILE, "Write structured log records to this file as JSON lines."),
)


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _optional_path(value: str | None, base: Path) -> Path | None:
    if not value:
        return None
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base / path
    return path.resolve()


@dataclass(frozen=True, slots=True)
class Settings:
    source_dir: Path
    out_dir: Path | None = None
    skip_archive: bool = False
    log_file: Path | None = None

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        cwd: Path | None = None,
    ) -> Settings:
        env = os.environ if environ is None else environ
        base = cwd or Path.cwd()
        source = _optional_path(env.get(ENV_SOURCE_DIR), base) or base
        return cls(
            source_dir=source.resolve(),
            out_dir=_optional_path(env.get(ENV_OUT_DIR), base),
            skip_archive=_flag(env.get(ENV_SKIP_ARCHIVE)),
            log_file=_optional_path(env.get(ENV_LOG_FILE), base),
        )

    @property
    def explicit_out_dir(self) -> bool:
        return self.out_dir is not None

    def resolve_out_dir(self, platform: Platform, cwd: Path | None = None) -> Path:
        if self.out_dir is not None:
            return self.out_dir
        base = cwd or Path.cwd()
        return (base / "build" / "out" / default_out_dir_name(platform)).resolve()
