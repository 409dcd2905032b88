"""Builds store-only zip archives of files and folders in private temp directories."""

from __future__ import annotations

import asyncio
import logging
import os
import zipfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from ..errors import FilesystemError
from ..utils.file_utils import cleanup_directory, make_staging_directory


def _archive_name(source: Path) -> str:
    return f"{source.resolve().name or 'archive'}.zip"


def write_file_zip(source: Path, archive_path: Path) -> Path:
    """Writes a single-entry zip holding ``source`` under its base name."""

    if not source.is_file():
        raise FilesystemError(f"Cannot stage {source}: not a regular file")
    try:
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_STORED) as archive:
            archive.write(source, arcname=source.name)
    except OSError as exc:
        raise FilesystemError(f"Cannot stage {source} into {archive_path}: {exc}") from exc
    return archive_path


def write_folder_zip(source: Path, archive_path: Path) -> Path:
    """Writes a zip mirroring the tree below ``source``.

    Entry names are relative to ``source``; every directory, empty ones
    included, gets its own ``name/`` entry.
    """

    if not source.is_dir():
        raise FilesystemError(f"Cannot stage {source}: not a directory")
    files = 0
    try:
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_STORED) as archive:
            for current, dirnames, filenames in os.walk(source):
                dirnames.sort()
                current_path = Path(current)
                relative_dir = current_path.relative_to(source)
                if relative_dir.parts:
                    archive.writestr(zipfile.ZipInfo(f"{relative_dir.as_posix()}/"), b"")
                for filename in sorted(filenames):
                    file_path = current_path / filename
                    archive.write(file_path, arcname=(relative_dir / filename).as_posix())
                    files += 1
    except OSError as exc:
        raise FilesystemError(f"Cannot stage {source} into {archive_path}: {exc}") from exc
    logging.debug("Staged %s file(s) from %s into %s", files, source, archive_path)
    return archive_path


@asynccontextmanager
async def staged_zip(source, run_blocking, folder: bool = False) -> AsyncIterator[Path]:
    """Stages ``source`` as a zip inside a unique temp directory.

    The archive is written through ``run_blocking`` so the event loop is not
    held up. The directory is removed when the block exits, whatever the
    outcome, cancellation included.
    """

    source = Path(source)
    writer = write_folder_zip if folder else write_file_zip
    staging_dir = make_staging_directory()
    write = asyncio.ensure_future(run_blocking(writer, source, staging_dir / _archive_name(source)))
    try:
        yield await asyncio.shield(write)
    finally:
        try:
            # A worker thread cannot be interrupted; let it finish before removing its directory.
            if not write.done():
                await asyncio.wait([write])
            if not write.cancelled():
                write.exception()
        finally:
            cleanup_directory(staging_dir)
            logging.debug("Removed staging directory %s", staging_dir)
