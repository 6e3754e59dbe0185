"""Supported platform allow-list and the build variants each one expands to."""

from __future__ import annotations

from libmem_release.errors import UnsupportedPlatformError, ValidationError
from libmem_release.models import BuildVariant, Platform

SUPPORTED_PLATFORMS: tuple[str, ...] = (
    # Linux (GNU/glibc)
    "linux-gnu-x86_64",
    "linux-gnu-aarch64",
    # Linux (Alpine/musl)
    "linux-musl-x86_64",
    "linux-musl-aarch64",
    # Windows (MSVC)
    "windows-msvc-i686",
    "windows-msvc-x86_64",
    "windows-msvc-aarch64",
)

MSVC_VARIANTS: tuple[BuildVariant, ...] = (
    BuildVariant("shared-MD", "Release", "shared", "MultiThreadedDLL"),
    BuildVariant("shared-MDd", "Debug", "shared", "MultiThreadedDebugDLL"),
    BuildVariant("static-MD", "Release", "static", "MultiThreadedDLL"),
    BuildVariant("static-MDd", "Debug", "static", "MultiThreadedDebugDLL"),
    BuildVariant("static-MT", "Release", "static", "MultiThreaded"),
    BuildVariant("static-MTd", "Debug", "static", "MultiThreadedDebug"),
)

DEFAULT_VARIANTS: tuple[BuildVariant, ...] = (
    BuildVariant("shared", "Release", "shared"),
    BuildVariant("static", "Release", "static"),
)


def resolve_platform(value: str) -> Platform:
    """Validate *value* against the allow-list without touching the filesystem."""
    if value not in SUPPORTED_PLATFORMS:
        raise UnsupportedPlatformError(value, supported=SUPPORTED_PLATFORMS)
    return Platform.parse(value)


def variants_for(platform: Platform) -> tuple[BuildVariant, ...]:
    if platform.is_msvc:
        return MSVC_VARIANTS
    return DEFAULT_VARIANTS


def arch_compile_flags(platform: Platform) -> str:
    """Baseline ``-march`` for GCC-style toolchains."""
    if platform.arch == "x86_64":
        return "-march=westmere"
    if platform.arch == "aarch64":
        return "-march=armv8-a"
    raise ValidationError(
        f"No baseline compile flags for architecture `{platform.arch}`.",
        context={"platform": platform.identifier},
    )


def default_out_dir_name(platform: Platform) -> str:
    return f"libmem-local-{platform.identifier}"
