"""Protocol for build-matrix execution environments."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from libmem_release.models import BuildRequest, MatrixContext

MATRIX_MODULE = "libmem_release.run_matrix"


@dataclass(frozen=True, slots=True)
class MountSpec:
    source: Path
    target: str
    read_only: bool = False

    def docker_volume(self) -> str:
        mode = "ro" if self.read_only else "rw"
        return f"{self.source}:{self.target}:{mode}"


class BuildEnvironment(Protocol):
    name: str

    @property
    def python(self) -> str:
        """Interpreter that starts the matrix entry point inside the environment."""

    def mount_plan(self, request: BuildRequest) -> tuple[MountSpec, ...]:
        """Return deterministic host/environment path mapping for this request."""

    def matrix_context(self, request: BuildRequest) -> MatrixContext:
        """Return the matrix inputs as seen from inside the environment."""

    def prepare(self, request: BuildRequest) -> None:
        """Check prerequisites and provision the environment."""

    def run(self, command: Sequence[str], request: BuildRequest) -> int:
        """Run *command* inside the environment and return its exit status."""

    def cleanup(self, request: BuildRequest) -> None:
        """Release environment resources."""


def matrix_command(environment: BuildEnvironment) -> tuple[str, ...]:
    return (environment.python, "-m", MATRIX_MODULE)
