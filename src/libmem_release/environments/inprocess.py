"""In-process environment for tests and local development.

Runs the build matrix directly in the current interpreter instead of
spawning the matrix entry point, with an injectable runner for the build
tool. Tests pair it with a fake runner that writes placeholder artifacts.
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from libmem_release.environments.base import MountSpec
from libmem_release.matrix import MatrixExecutor
from libmem_release.models import BuildRequest, MatrixContext, MatrixResult
from libmem_release.observability import StructuredLogger
from libmem_release.runner import CommandRunner, SubprocessRunner


@dataclass(slots=True)
class InProcessEnvironment:
    name: str = "inprocess"
    logger: StructuredLogger | None = None
    runner: CommandRunner | None = None
    environ: Mapping[str, str] | None = None
    jobs: int | None = None
    last_result: MatrixResult | None = field(default=None, init=False, repr=False)

    @property
    def python(self) -> str:
        return "<in-process>"

    def mount_plan(self, request: BuildRequest) -> tuple[MountSpec, ...]:
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
        request.workspace.ensure()
        request.out_dir.mkdir(parents=True, exist_ok=True)

    def run(self, command: Sequence[str], request: BuildRequest) -> int:
        """Ignore *command* and execute the matrix it would have started."""
        logger = self.logger or StructuredLogger(platform=request.platform.identifier)
        executor = MatrixExecutor(
            context=self.matrix_context(request),
            runner=self.runner or SubprocessRunner(logger=logger),
            logger=logger,
            environ=self.environ if self.environ is not None else os.environ,
        )
        if self.jobs is not None:
            executor.jobs = self.jobs
        self.last_result = executor.run()
        return 0

    def cleanup(self, request: BuildRequest) -> None:
        pass
