"""Build matrix executor: one CMake pass per variant, then shared collection.

The executor only sees a :class:`MatrixContext`, so it behaves the same
whether it runs inside a container, under an activated host toolchain, or
in-process under test with a fake runner.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from libmem_release.collect import copy_headers, copy_licenses, install_file, write_toolchain_stamps
from libmem_release.errors import ToolExecutionError
from libmem_release.models import BuildVariant, Linkage, MatrixContext, MatrixResult, VariantResult
from libmem_release.observability import StructuredLogger
from libmem_release.platforms import arch_compile_flags, variants_for
from libmem_release.runner import CommandRunner, check_result

# (is MSVC, linkage) -> file produced at the root of the variant build tree
ARTIFACT_NAMES: dict[tuple[bool, Linkage], str] = {
    (True, "shared"): "libmem.dll",
    (True, "static"): "libmem.lib",
    (False, "shared"): "liblibmem.so",
    (False, "static"): "liblibmem.a",
}


def available_cpus() -> int:
    if hasattr(os, "sched_getaffinity"):
        return max(len(os.sched_getaffinity(0)), 1)
    return os.cpu_count() or 1


@dataclass(slots=True)
class MatrixExecutor:
    context: MatrixContext
    runner: CommandRunner
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    jobs: int = field(default_factory=available_cpus)
    environ: Mapping[str, str] | None = None

    @property
    def variants(self) -> tuple[BuildVariant, ...]:
        return variants_for(self.context.platform)

    def variant_build_dir(self, variant: BuildVariant) -> Path:
        return self.context.build_dir / variant.name

    def variant_out_dir(self, variant: BuildVariant) -> Path:
        return self.context.out_dir / "lib" / variant.name

    def artifact_name(self, variant: BuildVariant) -> str:
        return ARTIFACT_NAMES[(self.context.platform.is_msvc, variant.linkage)]

    def generator_args(self) -> tuple[str, ...]:
        platform = self.context.platform
        if platform.is_msvc:
            return ("-G", "NMake Makefiles")
        flags = arch_compile_flags(platform)
        return (
            "-G",
            "Unix Makefiles",
            f"-DCMAKE_C_FLAGS={flags}",
            f"-DCMAKE_CXX_FLAGS={flags}",
        )

    def configure_args(self, variant: BuildVariant) -> list[str]:
        return [
            "cmake",
            "-S",
            str(self.context.source_dir),
            "-B",
            str(self.variant_build_dir(variant)),
            f"-DCMAKE_BUILD_TYPE={variant.build_type}",
            *variant.cmake_flags(),
            *self.generator_args(),
            # Release artifacts never build the test suite.
            "-DLIBMEM_BUILD_TESTS=OFF",
        ]

    def build_args(self, variant: BuildVariant) -> list[str]:
        return [
            "cmake",
            "--build",
            str(self.variant_build_dir(variant)),
            "--config",
            variant.build_type,
            "--parallel",
            str(self.jobs),
        ]

    def configure(self, variant: BuildVariant) -> None:
        self._run(self.configure_args(variant), variant=variant, operation="configure")

    def compile(self, variant: BuildVariant) -> None:
        self._run(self.build_args(variant), variant=variant, operation="build")

    def install_artifact(self, variant: BuildVariant) -> Path:
        source = self.variant_build_dir(variant) / self.artifact_name(variant)
        if not source.is_file():
            raise ToolExecutionError(
                f"Build of variant `{variant.name}` did not produce `{source.name}`.",
                hint="Check the CMake target names and output locations.",
                context={
                    "operation": "install",
                    "variant": variant.name,
                    "expected": str(source),
                },
            )
        destination = install_file(source, self.variant_out_dir(variant) / source.name)
        self.logger.log(
            operation="install",
            message=f"'{source}' -> '{destination}'",
            variant=variant.name,
        )
        return destination

    def build_variant(self, variant: BuildVariant) -> VariantResult:
        self.logger.step("build", f"Build {variant.name}", variant=variant.name)
        self.configure(variant)
        self.compile(variant)
        artifact = self.install_artifact(variant)
        return VariantResult(
            variant=variant,
            build_dir=self.variant_build_dir(variant),
            artifact=artifact,
        )

    def collect_shared(self, result: MatrixResult) -> MatrixResult:
        result.headers_dir = copy_headers(self.context, self.logger)
        result.licenses = copy_licenses(self.context, self.logger)
        result.stamps = write_toolchain_stamps(
            self.context,
            self.runner,
            environ=self.environ,
            logger=self.logger,
        )
        return result

    def run(self) -> MatrixResult:
        """Build every variant in order, stopping at the first failure."""
        result = MatrixResult(platform=self.context.platform)
        for variant in self.variants:
            result.variants.append(self.build_variant(variant))
        return self.collect_shared(result)

    def _run(self, argv: list[str], *, variant: BuildVariant, operation: str) -> None:
        result = self.runner.run(argv)
        check_result(
            result,
            operation=operation,
            context={"platform": self.context.platform.identifier, "variant": variant.name},
        )
