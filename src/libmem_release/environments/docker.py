"""Containerized build execution via Docker.

The build matrix runs inside a per-family image built from the descriptors
shipped in ``libmem_release/docker_env``. Only the source tree (read-only),
the output directory (read-write) and this package (read-only) are mounted;
the workspace lives in the container's own filesystem at ``/build`` and
disappears with the container. The container is named after the platform
and the invoking process so :meth:`DockerEnvironment.cleanup` can force its
removal when the run is interrupted.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from libmem_release.environments.base import MountSpec
from libmem_release.errors import EnvironmentSetupError, ValidationError
from libmem_release.models import BuildRequest, MatrixContext, Platform
from libmem_release.observability import StructuredLogger
from libmem_release.runner import CommandRunner, SubprocessRunner, check_result

PACKAGE_DIR = Path(__file__).resolve().parent.parent
DOCKER_ENV_DIR = PACKAGE_DIR / "docker_env"

CONTAINER_SOURCE_DIR = "/source"
CONTAINER_BUILD_DIR = "/build"
CONTAINER_OUT_DIR = "/out"
CONTAINER_PACKAGE_ROOT = "/opt/libmem-release"

DOCKER_PLATFORMS: dict[str, str] = {
    "x86_64": "linux/amd64",
    "aarch64": "linux/arm64",
}


def docker_platform(platform: Platform) -> str:
    try:
        return DOCKER_PLATFORMS[platform.arch]
    except KeyError:
        raise ValidationError(
            f"No container platform for architecture `{platform.arch}`.",
            context={"platform": platform.identifier},
        ) from None


def image_tag(platform: Platform) -> str:
    """``linux-musl-x86_64`` builds in ``libmem-build-linux-musl-amd64``."""
    return f"libmem-build-{platform.toolchain}-{docker_platform(platform).rsplit('/', 1)[-1]}"


@dataclass(slots=True)
class DockerEnvironment:
    name: str = "docker"
    logger: StructuredLogger | None = None
    runner: CommandRunner | None = None
    descriptor_dir: Path = DOCKER_ENV_DIR

    @property
    def python(self) -> str:
        return "python3"

    def mount_plan(self, request: BuildRequest) -> tuple[MountSpec, ...]:
        mounts = [
            MountSpec(source=request.source_dir, target=CONTAINER_SOURCE_DIR, read_only=True),
            MountSpec(source=request.out_dir, target=CONTAINER_OUT_DIR),
            MountSpec(
                source=PACKAGE_DIR,
                target=f"{CONTAINER_PACKAGE_ROOT}/{PACKAGE_DIR.name}",
                read_only=True,
            ),
        ]
        # Deterministic order by container mount target.
        return tuple(sorted(mounts, key=lambda mount: mount.target))

    def matrix_context(self, request: BuildRequest) -> MatrixContext:
        return MatrixContext(
            platform=request.platform,
            source_dir=Path(CONTAINER_SOURCE_DIR),
            build_dir=Path(CONTAINER_BUILD_DIR),
            out_dir=Path(CONTAINER_OUT_DIR),
        )

    def descriptor(self, platform: Platform) -> Path:
        return self.descriptor_dir / f"{platform.toolchain}.Dockerfile"

    def build_image_args(self, platform: Platform) -> list[str]:
        return [
            "docker",
            "build",
            "--platform",
            docker_platform(platform),
            "-t",
            image_tag(platform),
            "-f",
            str(self.descriptor(platform)),
            str(self.descriptor_dir),
        ]

    def run_args(self, command: Sequence[str], request: BuildRequest) -> list[str]:
        platform = request.platform
        env = {
            # Files written to /out end up owned by the invoking user.
            "PUID": str(os.getuid()),
            "PGID": str(os.getgid()),
            "PYTHONPATH": CONTAINER_PACKAGE_ROOT,
            "PYTHONUNBUFFERED": "1",
            **self.matrix_context(request).to_env(),
        }
        argv = [
            "docker",
            "run",
            "--platform",
            docker_platform(platform),
            "--rm",
            "--name",
            self.container_name(request),
        ]
        for key, value in env.items():
            argv.extend(["-e", f"{key}={value}"])
        for mount in self.mount_plan(request):
            argv.extend(["-v", mount.docker_volume()])
        argv.append(image_tag(platform))
        argv.extend(command)
        return argv

    def prepare(self, request: BuildRequest) -> None:
        self._ensure_prerequisites(request.platform)
        request.out_dir.mkdir(parents=True, exist_ok=True)
        if self.logger is not None:
            self.logger.step("environment", f"Build image {image_tag(request.platform)}")
        check_result(
            self._runner.run(self.build_image_args(request.platform)),
            operation="build-image",
            hint="Check that the Docker daemon is running and can pull the base image.",
            context={"environment": self.name, "image": image_tag(request.platform)},
        )

    def run(self, command: Sequence[str], request: BuildRequest) -> int:
        return self._runner.run(self.run_args(command, request)).returncode

    def container_name(self, request: BuildRequest) -> str:
        """One container per invocation, so cleanup can find it by name."""
        return f"libmem-build-{request.platform.identifier}-{os.getpid()}"

    def cleanup(self, request: BuildRequest) -> None:
        # An interrupted `docker run` client is killed without stopping the
        # container; remove it so it cannot keep writing into /out.
        # Exits non-zero when the container already went away with --rm.
        self._runner.run(["docker", "rm", "-f", self.container_name(request)], capture=True)

    @property
    def _runner(self) -> CommandRunner:
        return self.runner or SubprocessRunner(logger=self.logger)

    def _ensure_prerequisites(self, platform: Platform) -> None:
        if not platform.is_linux:
            raise EnvironmentSetupError(
                f"Docker environment only builds Linux targets, not `{platform}`.",
                context={"environment": self.name, "operation": "prepare"},
            )
        if not hasattr(os, "getuid"):
            raise EnvironmentSetupError(
                "Docker environment requires a POSIX host.",
                hint="Run Linux builds from a Linux or macOS machine.",
                context={"environment": self.name, "operation": "prepare"},
            )
        if shutil.which("docker") is None:
            raise EnvironmentSetupError(
                "Docker environment requires `docker` in PATH.",
                hint="Install Docker: https://docs.docker.com/engine/install/",
                context={"environment": self.name, "operation": "prepare"},
            )
        if not self.descriptor(platform).is_file():
            raise EnvironmentSetupError(
                f"Missing environment descriptor {self.descriptor(platform)}.",
                context={"environment": self.name, "operation": "prepare"},
            )
