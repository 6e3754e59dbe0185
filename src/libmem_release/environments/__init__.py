"""Build environment interfaces and implementations."""

from __future__ import annotations

from libmem_release.models import Platform
from libmem_release.observability import StructuredLogger

from .base import BuildEnvironment, MountSpec, matrix_command
from .docker import DockerEnvironment, image_tag
from .inprocess import InProcessEnvironment
from .native import MsvcActivator, NativeEnvironment


def select_environment(
    platform: Platform,
    logger: StructuredLogger | None = None,
) -> BuildEnvironment:
    """Linux targets build in a container; everything else on the host."""
    if platform.is_linux:
        return DockerEnvironment(logger=logger)
    return NativeEnvironment(logger=logger)


__all__ = [
    "BuildEnvironment",
    "DockerEnvironment",
    "InProcessEnvironment",
    "MountSpec",
    "MsvcActivator",
    "NativeEnvironment",
    "image_tag",
    "matrix_command",
    "select_environment",
]
