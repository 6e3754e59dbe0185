"""Release archive creation with normalized ownership."""

from __future__ import annotations

import tarfile
from pathlib import Path

from libmem_release.observability import StructuredLogger

ARCHIVE_SUFFIX = ".tar.gz"
ARCHIVE_OWNER_ID = 0


def archive_path(out_dir: Path) -> Path:
    return out_dir.with_name(out_dir.name + ARCHIVE_SUFFIX)


def _normalize_owner(tarinfo: tarfile.TarInfo) -> tarfile.TarInfo:
    tarinfo.uid = ARCHIVE_OWNER_ID
    tarinfo.gid = ARCHIVE_OWNER_ID
    tarinfo.uname = ""
    tarinfo.gname = ""
    return tarinfo


def create_archive(out_dir: Path, logger: StructuredLogger | None = None) -> Path:
    """Pack *out_dir* into ``<out_dir>.tar.gz`` under its own base name."""
    if logger is not None:
        logger.step("archive", "Create archive")
    destination = archive_path(out_dir)
    with tarfile.open(destination, "w:gz") as tar:
        tar.add(out_dir, arcname=out_dir.name, filter=_normalize_owner)
    if logger is not None:
        logger.log(
            operation="archive",
            message=f"Wrote {destination}",
            extra={"size": destination.stat().st_size},
        )
    return destination
