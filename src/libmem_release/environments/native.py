"""Host-native build execution under an activated toolchain.

The toolchain is keyed by ``{os}-{abi}``. For ``windows-msvc`` the Visual
Studio developer environment is captured from ``vcvarsall.bat`` (located
through ``vswhere``) unless the current process already runs in a developer
prompt for the requested target architecture.
"""

from __future__ import annotations

import os
import platform as host
import shutil
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from libmem_release.environments.base import MountSpec
from libmem_release.errors import EnvironmentSetupError
from libmem_release.models import BuildRequest, MatrixContext, Platform
from libmem_release.observability import StructuredLogger
from libmem_release.runner import CommandRunner, SubprocessRunner, check_result

MSVC_TARGET_ARCHES: dict[str, str] = {
    "i686": "x86",
    "x86_64": "x64",
    "aarch64": "arm64",
}

MSVC_HOST_ARCHES: dict[str, str] = {
    "AMD64": "x64",
    "ARM64": "arm64",
    "x86": "x86",
}

VSWHERE_DEFAULT = Path(
    os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)"),
    "Microsoft Visual Studio",
    "Installer",
    "vswhere.exe",
)


class ToolchainActivator(Protocol):
    def activate(
        self,
        platform: Platform,
        runner: CommandRunner,
        environ: Mapping[str, str],
    ) -> dict[str, str]:
        """Return the full process environment with the toolchain usable."""


def parse_set_output(output: str) -> dict[str, str]:
    """Parse ``set`` output (``KEY=VALUE`` per line) into a mapping."""
    env: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep and key:
            env[key] = value
    return env


@dataclass(slots=True)
class MsvcActivator:
    vswhere: Path = VSWHERE_DEFAULT

    def vcvars_arch(self, platform: Platform, host_machine: str | None = None) -> str:
        target = MSVC_TARGET_ARCHES[platform.arch]
        machine = host_machine or host.machine()
        host_arch = MSVC_HOST_ARCHES.get(machine, "x64")
        return target if host_arch == target else f"{host_arch}_{target}"

    def activate(
        self,
        platform: Platform,
        runner: CommandRunner,
        environ: Mapping[str, str],
    ) -> dict[str, str]:
        target = MSVC_TARGET_ARCHES[platform.arch]
        if environ.get("VCToolsVersion") and environ.get("VSCMD_ARG_TGT_ARCH") == target:
            return dict(environ)

        vcvarsall = self.locate_vcvarsall(runner)
        result = check_result(
            runner.run(
                ["cmd", "/d", "/c", "call", str(vcvarsall), self.vcvars_arch(platform), ">nul", "&&", "set"],
                capture=True,
            ),
            operation="activate",
            hint="Ensure the MSVC build tools for the target architecture are installed.",
            context={"toolchain": platform.toolchain, "vcvarsall": str(vcvarsall)},
        )
        activated = parse_set_output(result.stdout)
        if "VCToolsVersion" not in activated and "VCTOOLSVERSION" not in activated:
            raise EnvironmentSetupError(
                "vcvarsall.bat did not set up an MSVC environment.",
                context={"toolchain": platform.toolchain, "vcvarsall": str(vcvarsall)},
            )
        return activated

    def locate_vcvarsall(self, runner: CommandRunner) -> Path:
        vswhere = str(self.vswhere) if self.vswhere.is_file() else shutil.which("vswhere")
        if vswhere is None:
            raise EnvironmentSetupError(
                "Cannot find `vswhere.exe` to locate Visual Studio.",
                hint="Install Visual Studio (or Build Tools) with the C++ workload.",
                context={"operation": "activate", "vswhere": str(self.vswhere)},
            )
        result = check_result(
            runner.run(
                [
                    vswhere,
                    "-latest",
                    "-products",
                    "*",
                    "-requires",
                    "Microsoft.VisualStudio.Component.VC.Tools.x86.x64",
                    "-property",
                    "installationPath",
                ],
                capture=True,
            ),
            operation="activate",
        )
        install_dir = result.stdout.strip().splitlines()[0] if result.stdout.strip() else ""
        vcvarsall = Path(install_dir, "VC", "Auxiliary", "Build", "vcvarsall.bat")
        if not install_dir or not vcvarsall.is_file():
            raise EnvironmentSetupError(
                "No Visual Studio installation with the C++ toolset was found.",
                hint="Install the `Desktop development with C++` workload.",
                context={"operation": "activate", "installation": install_dir},
            )
        return vcvarsall


TOOLCHAIN_ACTIVATORS: dict[str, type[ToolchainActivator]] = {
    "windows-msvc": MsvcActivator,
}


@dataclass(slots=True)
class NativeEnvironment:
    name: str = "native"
    logger: StructuredLogger | None = None
    runner: CommandRunner | None = None
    activator: ToolchainActivator | None = None
    _activated: dict[str, str] | None = field(default=None, init=False, repr=False)

    @property
    def python(self) -> str:
        return sys.executable

    def mount_plan(self, request: BuildRequest) -> tuple[MountSpec, ...]:
        """Local mounts: every directory lives on the host."""
        return (
            MountSpec(source=request.source_dir, target=str(request.source_dir), read_only=True),
            MountSpec(source=request.out_dir, target=str(request.out_dir)),
        )

    def matrix_context(self, request: BuildRequest) -> MatrixContext:
        return MatrixContext(
            platform=request.platform,
            source_dir=request.source_dir,
            build_dir=request.workspace.ensure() / "build",
            out_dir=request.out_dir,
        )

    def prepare(self, request: BuildRequest) -> None:
        activator = self.activator or self._activator_for(request.platform)
        if self.logger is not None:
            self.logger.step("environment", f"Activate {request.platform.toolchain} toolchain")
        self._activated = activator.activate(request.platform, self._runner, os.environ)
        request.workspace.ensure()
        request.out_dir.mkdir(parents=True, exist_ok=True)

    def run(self, command: Sequence[str], request: BuildRequest) -> int:
        if self._activated is None:
            raise EnvironmentSetupError(
                "Native environment used before prepare().",
                context={"environment": self.name, "operation": "run"},
            )
        env = {**self._activated, **self.matrix_context(request).to_env()}
        return self._runner.run(command, env=env).returncode

    def cleanup(self, request: BuildRequest) -> None:
        self._activated = None

    @property
    def _runner(self) -> CommandRunner:
        return self.runner or SubprocessRunner(logger=self.logger)

    def _activator_for(self, platform: Platform) -> ToolchainActivator:
        activator_type = TOOLCHAIN_ACTIVATORS.get(platform.toolchain)
        if activator_type is None:
            raise EnvironmentSetupError(
                f"No host toolchain activator for `{platform.toolchain}`.",
                context={"environment": self.name, "operation": "prepare"},
            )
        if platform.os == "windows" and sys.platform != "win32":
            raise EnvironmentSetupError(
                f"Native `{platform.toolchain}` builds require a Windows host.",
                context={"environment": self.name, "operation": "prepare"},
            )
        return activator_type()
