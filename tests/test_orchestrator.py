import json
import tarfile
from pathlib import Path

import pytest
from conftest import FakeRunner

from libmem_release.config import Settings
from libmem_release.environments.inprocess import InProcessEnvironment
from libmem_release.errors import OutputExistsError, ToolExecutionError, UnsupportedPlatformError, ValidationError
from libmem_release.observability import StructuredLogger
from libmem_release.orchestrator import prepare_output_dir, run_release_build
from libmem_release.platforms import resolve_platform


def test_linux_musl_release_produces_tree_and_archive(
    tmp_path: Path,
    source_tree: Path,
    inprocess_environment: InProcessEnvironment,
    quiet_logger: StructuredLogger,
) -> None:
    result = run_release_build(
        "linux-musl-x86_64",
        Settings(source_dir=source_tree),
        environment=inprocess_environment,
        logger=quiet_logger,
        cwd=tmp_path,
    )

    out_dir = tmp_path / "build" / "out" / "libmem-local-linux-musl-x86_64"
    assert result.out_dir == out_dir.resolve()
    assert (out_dir / "lib" / "shared" / "liblibmem.so").is_file()
    assert (out_dir / "lib" / "static" / "liblibmem.a").is_file()
    assert (out_dir / "include" / "libmem" / "libmem.h").is_file()
    assert (out_dir / "licenses" / "libmem-license.txt").is_file()
    assert (out_dir / "MUSL_VERSION.txt").read_text() == "1.2.5-r0\n"
    assert not (out_dir / "GLIBC_VERSION.txt").exists()

    assert result.archive == out_dir.resolve().with_name(out_dir.name + ".tar.gz")
    with tarfile.open(result.archive, "r:gz") as tar:
        top_level = {name.split("/")[0] for name in tar.getnames()}
    assert top_level == {"libmem-local-linux-musl-x86_64"}


def test_workspace_is_gone_after_success(
    tmp_path: Path,
    source_tree: Path,
    inprocess_environment: InProcessEnvironment,
    quiet_logger: StructuredLogger,
) -> None:
    run_release_build(
        "linux-gnu-x86_64",
        Settings(source_dir=source_tree, skip_archive=True),
        environment=inprocess_environment,
        logger=quiet_logger,
        cwd=tmp_path,
    )

    result = inprocess_environment.last_result
    assert result is not None
    assert result.variants
    assert not result.variants[0].build_dir.exists()


def test_unsupported_platform_has_no_side_effects(tmp_path: Path, source_tree: Path) -> None:
    with pytest.raises(UnsupportedPlatformError):
        run_release_build(
            "linux-gnu-riscv64",
            Settings(source_dir=source_tree, log_file=tmp_path / "release.jsonl"),
            environment=InProcessEnvironment(runner=FakeRunner()),
            cwd=tmp_path,
        )

    assert not (tmp_path / "build").exists()
    assert not (tmp_path / "release.jsonl").exists()


def test_missing_source_directory_is_a_validation_error(tmp_path: Path) -> None:
    with pytest.raises(ValidationError) as excinfo:
        run_release_build(
            "linux-gnu-x86_64",
            Settings(source_dir=tmp_path / "nowhere"),
            environment=InProcessEnvironment(runner=FakeRunner()),
            logger=StructuredLogger(stream=None),
            cwd=tmp_path,
        )

    assert excinfo.value.context["source_dir"] == str(tmp_path / "nowhere")
    assert not (tmp_path / "build").exists()


def test_existing_explicit_out_dir_is_refused_untouched(
    tmp_path: Path,
    source_tree: Path,
    inprocess_environment: InProcessEnvironment,
    fake_runner: FakeRunner,
    quiet_logger: StructuredLogger,
) -> None:
    out_dir = tmp_path / "release"
    out_dir.mkdir()
    (out_dir / "keep.txt").write_text("mine\n")

    with pytest.raises(OutputExistsError):
        run_release_build(
            "linux-gnu-x86_64",
            Settings(source_dir=source_tree, out_dir=out_dir),
            environment=inprocess_environment,
            logger=quiet_logger,
            cwd=tmp_path,
        )

    assert sorted(p.name for p in out_dir.iterdir()) == ["keep.txt"]
    assert fake_runner.calls == []
    assert not (tmp_path / "release.tar.gz").exists()


def test_default_out_dir_is_replaced_on_rerun(tmp_path: Path) -> None:
    settings = Settings(source_dir=tmp_path)
    platform = resolve_platform("linux-gnu-aarch64")
    stale = prepare_output_dir(settings, platform, tmp_path) / "stale.txt"
    stale.write_text("old\n")

    out_dir = prepare_output_dir(settings, platform, tmp_path)

    assert out_dir.is_dir()
    assert list(out_dir.iterdir()) == []


def test_skip_archive(
    tmp_path: Path,
    source_tree: Path,
    inprocess_environment: InProcessEnvironment,
    quiet_logger: StructuredLogger,
) -> None:
    out_dir = tmp_path / "dist" / "libmem"
    result = run_release_build(
        "linux-gnu-x86_64",
        Settings(source_dir=source_tree, out_dir=out_dir, skip_archive=True),
        environment=inprocess_environment,
        logger=quiet_logger,
        cwd=tmp_path,
    )

    assert result.archive is None
    assert (out_dir / "GLIBC_VERSION.txt").read_text() == "2.36\n"
    assert sorted(p.name for p in out_dir.parent.iterdir()) == ["libmem"]


def test_build_failure_leaves_no_archive(
    tmp_path: Path,
    source_tree: Path,
    quiet_logger: StructuredLogger,
) -> None:
    runner = FakeRunner(fail_on="--build")
    environment = InProcessEnvironment(logger=quiet_logger, runner=runner, environ={}, jobs=1)

    with pytest.raises(ToolExecutionError):
        run_release_build(
            "linux-musl-aarch64",
            Settings(source_dir=source_tree),
            environment=environment,
            logger=quiet_logger,
            cwd=tmp_path,
        )

    out_root = tmp_path / "build" / "out"
    assert not (out_root / "libmem-local-linux-musl-aarch64.tar.gz").exists()
    assert quiet_logger.records[-1]["level"] == "error"
    assert quiet_logger.records[-1]["extra"]["code"] == "E_TOOL_EXECUTION"


class _FailingEnvironment(InProcessEnvironment):
    def run(self, command, request):  # type: ignore[no-untyped-def]
        return 3


def test_non_zero_matrix_status_is_a_tool_error(
    tmp_path: Path,
    source_tree: Path,
    quiet_logger: StructuredLogger,
) -> None:
    with pytest.raises(ToolExecutionError) as excinfo:
        run_release_build(
            "linux-gnu-x86_64",
            Settings(source_dir=source_tree),
            environment=_FailingEnvironment(runner=FakeRunner()),
            logger=quiet_logger,
            cwd=tmp_path,
        )

    assert excinfo.value.context["returncode"] == "3"
    assert excinfo.value.context["environment"] == "inprocess"


def test_log_file_is_written_on_success(
    tmp_path: Path,
    source_tree: Path,
    inprocess_environment: InProcessEnvironment,
    quiet_logger: StructuredLogger,
) -> None:
    log_file = tmp_path / "logs" / "release.jsonl"
    run_release_build(
        "linux-gnu-x86_64",
        Settings(source_dir=source_tree, skip_archive=True, log_file=log_file),
        environment=inprocess_environment,
        logger=quiet_logger,
        cwd=tmp_path,
    )

    records = [json.loads(line) for line in log_file.read_text().splitlines()]
    assert records[0]["message"] == "Platform: linux-gnu-x86_64"
    assert records[-1]["message"] == "Done"
    assert {record["platform"] for record in records} == {"linux-gnu-x86_64"}


def test_repeated_runs_produce_identical_layouts(
    tmp_path: Path,
    source_tree: Path,
    fake_runner: FakeRunner,
    quiet_logger: StructuredLogger,
) -> None:
    layouts = []
    for name in ("first", "second"):
        out_dir = tmp_path / name
        run_release_build(
            "linux-gnu-x86_64",
            Settings(source_dir=source_tree, out_dir=out_dir, skip_archive=True),
            environment=InProcessEnvironment(logger=quiet_logger, runner=fake_runner, environ={}),
            logger=quiet_logger,
            cwd=tmp_path,
        )
        layouts.append(sorted(str(p.relative_to(out_dir)) for p in out_dir.rglob("*")))

    assert layouts[0] == layouts[1]
    assert (tmp_path / "first" / "include" / "libmem" / "libmem.h").read_bytes() == (
        tmp_path / "second" / "include" / "libmem" / "libmem.h"
    ).read_bytes()


def test_source_without_headers_is_reported_as_release_error(
    tmp_path: Path,
    quiet_logger: StructuredLogger,
) -> None:
    source = tmp_path / "checkout"
    source.mkdir()
    environment = InProcessEnvironment(logger=quiet_logger, runner=FakeRunner(), environ={})

    with pytest.raises(ValidationError) as excinfo:
        run_release_build(
            "linux-gnu-x86_64",
            Settings(source_dir=source),
            environment=environment,
            logger=quiet_logger,
            cwd=tmp_path,
        )

    assert "no header directory" in excinfo.value.message
    assert quiet_logger.records[-1]["extra"]["code"] == "E_VALIDATION"
    assert not (tmp_path / "build" / "out" / "libmem-local-linux-gnu-x86_64.tar.gz").exists()


class _InterruptedEnvironment(InProcessEnvironment):
    def run(self, command, request):  # type: ignore[no-untyped-def]
        scratch = request.workspace.ensure() / "build" / "shared"
        scratch.mkdir(parents=True)
        (scratch / "CMakeCache.txt").write_text("partial\n")
        self.scratch = scratch
        raise KeyboardInterrupt


def test_interrupted_build_removes_workspace(
    tmp_path: Path,
    source_tree: Path,
    quiet_logger: StructuredLogger,
) -> None:
    environment = _InterruptedEnvironment(runner=FakeRunner())

    with pytest.raises(KeyboardInterrupt):
        run_release_build(
            "linux-gnu-x86_64",
            Settings(source_dir=source_tree),
            environment=environment,
            logger=quiet_logger,
            cwd=tmp_path,
        )

    assert not environment.scratch.exists()
    assert not environment.scratch.parent.parent.exists()
    assert not (tmp_path / "build" / "out" / "libmem-local-linux-gnu-x86_64.tar.gz").exists()
