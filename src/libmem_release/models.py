"""Core typed dataclasses for platforms, variants, and build requests/results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from libmem_release.errors import ValidationError
from libmem_release.workspace import TransientWorkspace

BuildType = Literal["Release", "Debug"]
Linkage = Literal["static", "shared"]
MsvcRuntime = Literal[
    "MultiThreaded",
    "MultiThreadedDebug",
    "MultiThreadedDLL",
    "MultiThreadedDebugDLL",
]

MATRIX_ENV_PLATFORM = "LIBMEM_MATRIX_PLATFORM"
MATRIX_ENV_SOURCE_DIR = "LIBMEM_MATRIX_SOURCE_DIR"
MATRIX_ENV_BUILD_DIR = "LIBMEM_MATRIX_BUILD_DIR"
MATRIX_ENV_OUT_DIR = "LIBMEM_MATRIX_OUT_DIR"


@dataclass(frozen=True, slots=True)
class Platform:
    os: str
    abi: str
    arch: str

    @classmethod
    def parse(cls, text: str) -> Platform:
        """Split ``{os}-{abi}-{arch}``; allow-list checks live in ``platforms``."""
        parts = text.split("-")
        if len(parts) != 3 or not all(parts):
            raise ValidationError(
                f"Malformed platform identifier: {text}",
                hint="Expected the form {os}-{abi}-{arch}, e.g. linux-gnu-x86_64.",
                context={"platform": text},
            )
        return cls(os=parts[0], abi=parts[1], arch=parts[2])

    @property
    def identifier(self) -> str:
        return f"{self.os}-{self.abi}-{self.arch}"

    @property
    def toolchain(self) -> str:
        return f"{self.os}-{self.abi}"

    @property
    def is_linux(self) -> bool:
        return self.os == "linux"

    @property
    def is_msvc(self) -> bool:
        return self.os == "windows" and self.abi == "msvc"

    def __str__(self) -> str:
        return self.identifier


@dataclass(frozen=True, slots=True)
class BuildVariant:
    name: str
    build_type: BuildType
    linkage: Linkage
    msvc_runtime: MsvcRuntime | None = None

    def cmake_flags(self) -> tuple[str, ...]:
        static = "ON" if self.linkage == "static" else "OFF"
        flags = [f"-DLIBMEM_BUILD_STATIC={static}"]
        if self.msvc_runtime is not None:
            flags.append(f"-DCMAKE_MSVC_RUNTIME_LIBRARY={self.msvc_runtime}")
        return tuple(flags)


@dataclass(frozen=True, slots=True)
class MatrixContext:
    """The four inputs every environment hands to the build matrix.

    Paths are absolute as seen from inside the environment, so for the
    container strategy they point at mount targets, not host paths.
    """

    platform: Platform
    source_dir: Path
    build_dir: Path
    out_dir: Path

    def to_env(self) -> dict[str, str]:
        return {
            MATRIX_ENV_PLATFORM: self.platform.identifier,
            MATRIX_ENV_SOURCE_DIR: str(self.source_dir),
            MATRIX_ENV_BUILD_DIR: str(self.build_dir),
            MATRIX_ENV_OUT_DIR: str(self.out_dir),
        }

    @staticmethod
    def read_env(environ: Mapping[str, str]) -> dict[str, str]:
        """Return the raw matrix variables, failing on the first missing one."""
        values: dict[str, str] = {}
        for key in (
            MATRIX_ENV_PLATFORM,
            MATRIX_ENV_SOURCE_DIR,
            MATRIX_ENV_BUILD_DIR,
            MATRIX_ENV_OUT_DIR,
        ):
            value = environ.get(key, "")
            if not value:
                raise ValidationError(
                    f"Missing required matrix variable `{key}`.",
                    hint="The build matrix is started by an environment; run `libmem-release` instead.",
                    context={"variable": key},
                )
            values[key] = value
        return values


@dataclass(frozen=True, slots=True)
class BuildRequest:
    platform: Platform
    source_dir: Path
    out_dir: Path
    workspace: TransientWorkspace


@dataclass(frozen=True, slots=True)
class VariantResult:
    variant: BuildVariant
    build_dir: Path
    artifact: Path


@dataclass(slots=True)
class MatrixResult:
    platform: Platform
    variants: list[VariantResult] = field(default_factory=list)
    headers_dir: Path | None = None
    licenses: list[Path] = field(default_factory=list)
    stamps: list[Path] = field(default_factory=list)

    def artifact_for(self, variant: str) -> Path | None:
        for result in self.variants:
            if result.variant.name == variant:
                return result.artifact
        return None


@dataclass(frozen=True, slots=True)
class ReleaseResult:
    platform: Platform
    out_dir: Path
    archive: Path | None = None
