"""Entry point executed inside a build environment.

Usage: ``python -m libmem_release.run_matrix`` with the ``LIBMEM_MATRIX_*``
variables set by the environment that launched it.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from pathlib import Path

from libmem_release.errors import ReleaseBuildError
from libmem_release.matrix import MatrixExecutor
from libmem_release.models import (
    MATRIX_ENV_BUILD_DIR,
    MATRIX_ENV_OUT_DIR,
    MATRIX_ENV_PLATFORM,
    MATRIX_ENV_SOURCE_DIR,
    MatrixContext,
)
from libmem_release.observability import StructuredLogger
from libmem_release.platforms import resolve_platform
from libmem_release.runner import SubprocessRunner


def context_from_env(environ: Mapping[str, str]) -> MatrixContext:
    values = MatrixContext.read_env(environ)
    return MatrixContext(
        platform=resolve_platform(values[MATRIX_ENV_PLATFORM]),
        source_dir=Path(values[MATRIX_ENV_SOURCE_DIR]),
        build_dir=Path(values[MATRIX_ENV_BUILD_DIR]),
        out_dir=Path(values[MATRIX_ENV_OUT_DIR]),
    )


def main(environ: Mapping[str, str] | None = None) -> int:
    env = os.environ if environ is None else environ
    try:
        context = context_from_env(env)
        logger = StructuredLogger(platform=context.platform.identifier)
        executor = MatrixExecutor(
            context=context,
            runner=SubprocessRunner(logger=logger),
            logger=logger,
            environ=env,
        )
        executor.run()
    except ReleaseBuildError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
