"""Release build orchestration: validate, provision, build, collect, archive."""

from __future__ import annotations

import shutil
from pathlib import Path

from libmem_release.archive import create_archive
from libmem_release.config import Settings
from libmem_release.environments import BuildEnvironment, matrix_command, select_environment
from libmem_release.errors import OutputExistsError, ReleaseBuildError, ToolExecutionError, ValidationError
from libmem_release.models import BuildRequest, Platform, ReleaseResult
from libmem_release.observability import StructuredLogger
from libmem_release.platforms import resolve_platform
from libmem_release.workspace import TransientWorkspace


def prepare_output_dir(settings: Settings, platform: Platform, cwd: Path | None = None) -> Path:
    """Create an empty output directory.

    An explicit directory must not exist yet; the default location is
    wiped and recreated on every run.
    """
    out_dir = settings.resolve_out_dir(platform, cwd)
    if settings.explicit_out_dir:
        if out_dir.exists():
            raise OutputExistsError(str(out_dir))
    else:
        shutil.rmtree(out_dir, ignore_errors=True)
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir


def run_release_build(
    platform_text: str,
    settings: Settings | None = None,
    *,
    environment: BuildEnvironment | None = None,
    logger: StructuredLogger | None = None,
    cwd: Path | None = None,
) -> ReleaseResult:
    platform = resolve_platform(platform_text)
    settings = settings or Settings.from_env(cwd=cwd)
    logger = logger or StructuredLogger()
    logger.platform = platform.identifier

    if not settings.source_dir.is_dir():
        raise ValidationError(
            f"Source directory does not exist: {settings.source_dir}",
            hint="Run from a libmem checkout or set LIBMEM_BUILD_SOURCE_DIR.",
            context={"source_dir": str(settings.source_dir)},
        )

    try:
        out_dir = prepare_output_dir(settings, platform, cwd)
        logger.log(operation="setup", message=f"Platform: {platform}")
        logger.log(operation="setup", message=f"Source directory: {settings.source_dir}")
        logger.log(operation="setup", message=f"Output directory: {out_dir}")
        logger.log(operation="setup", message="")

        with TransientWorkspace() as workspace:
            request = BuildRequest(
                platform=platform,
                source_dir=settings.source_dir,
                out_dir=out_dir,
                workspace=workspace,
            )
            env = environment or select_environment(platform, logger)
            _build_in_environment(env, request)

        archive = None
        if not settings.skip_archive:
            archive = create_archive(out_dir, logger)

        logger.step("done", "Done")
        return ReleaseResult(platform=platform, out_dir=out_dir, archive=archive)
    except ReleaseBuildError as exc:
        logger.log(
            operation="error",
            message=exc.message,
            level="error",
            extra=exc.to_dict(),
            echo=False,
        )
        raise
    finally:
        if settings.log_file is not None:
            logger.to_json_lines(settings.log_file)


def _build_in_environment(env: BuildEnvironment, request: BuildRequest) -> None:
    env.prepare(request)
    try:
        status = env.run(matrix_command(env), request)
    finally:
        env.cleanup(request)
    if status != 0:
        raise ToolExecutionError(
            f"Build matrix failed in the `{env.name}` environment.",
            hint="The failing step is reported in the build output above.",
            context={
                "environment": env.name,
                "platform": request.platform.identifier,
                "returncode": str(status),
            },
        )
