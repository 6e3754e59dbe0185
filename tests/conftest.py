"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from libmem_release.environments.inprocess import InProcessEnvironment
from libmem_release.observability import StructuredLogger
from libmem_release.runner import CommandResult

# Every candidate library name for a linkage; the executor picks one by platform.
PLACEHOLDER_ARTIFACTS = {
    "shared": ("libmem.dll", "liblibmem.so"),
    "static": ("libmem.lib", "liblibmem.a"),
}


@dataclass
class FakeRunner:
    """Records commands; ``cmake --build`` drops placeholder libraries."""

    fail_on: str | None = None
    stdout: dict[str, str] = field(default_factory=dict)
    calls: list[tuple[str, ...]] = field(default_factory=list)
    envs: list[Mapping[str, str] | None] = field(default_factory=list)

    def run(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        capture: bool = False,
    ) -> CommandResult:
        command = tuple(str(arg) for arg in argv)
        self.calls.append(command)
        self.envs.append(env)
        if self.fail_on is not None and self.fail_on in " ".join(command):
            return CommandResult(argv=command, returncode=2, stderr="simulated failure\n")
        if command[:2] == ("cmake", "--build"):
            build_dir = Path(command[2])
            build_dir.mkdir(parents=True, exist_ok=True)
            linkage = "shared" if build_dir.name.startswith("shared") else "static"
            for name in PLACEHOLDER_ARTIFACTS[linkage]:
                (build_dir / name).write_bytes(f"{build_dir.name}:{name}".encode())
        return CommandResult(argv=command, returncode=0, stdout=self.stdout.get(command[0], ""))

    def commands(self, program: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call and call[0] == program]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner(
        stdout={
            "ldd": "ldd (Debian GLIBC 2.36-9+deb12u4) 2.36\nCopyright (C) 2022\n",
            "apk": "musl-1.2.5-r0 description:\nthe musl c library\n",
        }
    )


@pytest.fixture
def quiet_logger() -> StructuredLogger:
    return StructuredLogger(stream=None)


@pytest.fixture
def inprocess_environment(
    fake_runner: FakeRunner,
    quiet_logger: StructuredLogger,
) -> InProcessEnvironment:
    """Provide an in-process environment for tests that run the whole pipeline."""
    return InProcessEnvironment(logger=quiet_logger, runner=fake_runner, environ={}, jobs=4)


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """A minimal libmem-shaped checkout: headers plus bundled license files."""
    root = tmp_path / "libmem"
    headers = root / "include" / "libmem"
    headers.mkdir(parents=True)
    (headers / "libmem.h").write_text("#pragma once\nint lm_version(void);\n", encoding="utf-8")
    (headers / "libmem.hpp").write_text("#pragma once\n", encoding="utf-8")
    (root / "LICENSE").write_text("AGPL\n", encoding="utf-8")
    (root / "README.md").write_text("libmem\n", encoding="utf-8")

    external = root / "external"
    for component, files in {
        "capstone": ("LICENSE.TXT", "LICENSE_LLVM.TXT"),
        "keystone": ("COPYING",),
        "LIEF": ("LICENSE.MD",),
        "llvm": ("LICENSE.TXT", "Exceptions.txt"),
    }.items():
        component_dir = external / component
        component_dir.mkdir(parents=True)
        for name in files:
            (component_dir / name).write_text(f"{component} {name}\n", encoding="utf-8")
    nested = external / "capstone" / "docs"
    nested.mkdir()
    (nested / "LICENSE.nested").write_text("not collected\n", encoding="utf-8")
    return root
