"""Shared, non-variant artifacts: headers, license files, toolchain stamps."""

from __future__ import annotations

import os
import shutil
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from libmem_release.errors import ValidationError
from libmem_release.models import MatrixContext, Platform
from libmem_release.observability import StructuredLogger
from libmem_release.runner import CommandRunner

FILE_MODE = 0o644

LICENSE_PREFIXES = ("license", "copying", "exception")

# (component name, directory relative to the source root)
LICENSE_COMPONENTS: tuple[tuple[str, str], ...] = (
    ("libmem", "."),
    ("capstone", "external/capstone"),
    ("keystone", "external/keystone"),
    ("LIEF", "external/LIEF"),
    ("llvm", "external/llvm"),
    ("injector", "external/injector"),
)


def install_file(source: Path, destination: Path, mode: int = FILE_MODE) -> Path:
    """Copy *source* to *destination*, creating parents and setting *mode*."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, destination)
    os.chmod(destination, mode)
    return destination


def install_text(content: str, destination: Path, mode: int = FILE_MODE) -> Path:
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(content, encoding="utf-8")
    os.chmod(destination, mode)
    return destination


def copy_headers(context: MatrixContext, logger: StructuredLogger | None = None) -> Path:
    if logger is not None:
        logger.step("collect", "Copy headers")
    source = context.source_dir / "include"
    if not source.is_dir():
        raise ValidationError(
            f"Source tree has no header directory: {source}",
            hint="Point LIBMEM_BUILD_SOURCE_DIR at the root of a libmem checkout.",
            context={"operation": "collect", "source_dir": str(context.source_dir)},
        )
    destination = context.out_dir / "include"
    destination.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, destination, dirs_exist_ok=True)
    return destination


def license_destination_name(component: str, filename: str) -> str:
    """``LICENSE.MD`` of ``capstone`` becomes ``capstone-license.txt``."""
    stem, _, extension = filename.rpartition(".")
    if not stem:
        stem = extension
    return f"{component}-{stem.lower()}.txt"


def is_license_file(name: str) -> bool:
    return name.lower().startswith(LICENSE_PREFIXES)


def copy_licenses(
    context: MatrixContext,
    logger: StructuredLogger | None = None,
    components: tuple[tuple[str, str], ...] = LICENSE_COMPONENTS,
) -> list[Path]:
    if logger is not None:
        logger.step("collect", "Copy licenses")
    destination_dir = context.out_dir / "licenses"
    destination_dir.mkdir(parents=True, exist_ok=True)

    copied: list[Path] = []
    for component, relative in components:
        component_dir = context.source_dir / relative
        if not component_dir.is_dir():
            if logger is not None:
                logger.log(
                    operation="collect",
                    message=f"No license directory for {component}: {component_dir}",
                    level="warning",
                )
            continue
        for entry in sorted(component_dir.iterdir(), key=lambda path: path.name):
            if not entry.is_file() or not is_license_file(entry.name):
                continue
            target = destination_dir / license_destination_name(component, entry.name)
            copied.append(install_file(entry, target))
            if logger is not None:
                logger.log(operation="collect", message=f"'{entry}' -> '{target}'")
    return copied


class TolerantProbe(Protocol):
    """Best-effort toolchain query; ``None`` means the value is unknown."""

    name: str

    def read(self, runner: CommandRunner, environ: Mapping[str, str]) -> str | None:
        """Return the probed value without ever raising for tool failures."""


@dataclass(frozen=True, slots=True)
class CommandProbe:
    name: str
    argv: tuple[str, ...]
    parse: Callable[[str], str]

    def read(self, runner: CommandRunner, environ: Mapping[str, str]) -> str | None:
        try:
            result = runner.run(self.argv, capture=True)
        except OSError:
            return None
        # Exit status is ignored: `ldd --version` exits non-zero on some libcs.
        output = result.stdout.strip()
        if not output:
            return None
        value = self.parse(output.splitlines()[0]).strip()
        return value or None


@dataclass(frozen=True, slots=True)
class EnvironmentProbe:
    name: str
    keys: tuple[str, ...]

    def read(self, runner: CommandRunner, environ: Mapping[str, str]) -> str | None:
        for key in self.keys:
            value = environ.get(key, "").strip()
            if value:
                return value
        return None


def _last_token(line: str) -> str:
    tokens = line.split()
    return tokens[-1] if tokens else ""


def _musl_package_version(line: str) -> str:
    tokens = line.split()
    return tokens[0].removeprefix("musl-") if tokens else ""


GLIBC_PROBE = CommandProbe("GLIBC_VERSION", ("ldd", "--version"), _last_token)
MUSL_PROBE = CommandProbe("MUSL_VERSION", ("apk", "info", "musl"), _musl_package_version)
MSVC_PROBE = EnvironmentProbe("MSVC_VERSION", ("VCToolsVersion", "VSCMD_ARG_VCVARS_VER"))
WINSDK_PROBE = EnvironmentProbe("WINSDK_VERSION", ("WindowsSDKVersion",))


def toolchain_probes(platform: Platform) -> tuple[TolerantProbe, ...]:
    if platform.toolchain == "linux-gnu":
        return (GLIBC_PROBE,)
    if platform.toolchain == "linux-musl":
        return (MUSL_PROBE,)
    if platform.os == "windows":
        return (MSVC_PROBE, WINSDK_PROBE)
    return ()


def write_toolchain_stamps(
    context: MatrixContext,
    runner: CommandRunner,
    environ: Mapping[str, str] | None = None,
    logger: StructuredLogger | None = None,
) -> list[Path]:
    """Write one ``<NAME>.txt`` line per probe; unknown values become blank lines."""
    if logger is not None:
        logger.step("collect", "Add stdlib information")
    env = os.environ if environ is None else environ
    stamps: list[Path] = []
    for probe in toolchain_probes(context.platform):
        value = probe.read(runner, env)
        if value is None and logger is not None:
            logger.log(
                operation="collect",
                message=f"Could not determine {probe.name}; writing a blank value.",
                level="warning",
            )
        stamps.append(install_text(f"{value or ''}\n", context.out_dir / f"{probe.name}.txt"))
    return stamps
