"""Extracts zip, tar and gzip-tar payloads while keeping every entry inside the destination."""

from __future__ import annotations

import gzip
import io
import logging
import posixpath
import re
import stat
import tarfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Callable, Iterator, List, Optional, Tuple

from ..errors import DecodeError, FilesystemError, PathSafetyError
from ..models import ArchiveFormat, ExtractionResult
from ..utils.file_utils import ensure_directory, write_file_bytes

DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")

# (normalized relative path, is_directory, reader for file content)
PlannedEntry = Tuple[PurePosixPath, bool, Optional[Callable[[], bytes]]]


def normalize_entry_path(name: str) -> PurePosixPath:
    """Returns the normalized relative path of an archive entry.

    Raises ``PathSafetyError`` when the entry is empty, absolute, or climbs
    above the extraction root.
    """

    candidate = (name or "").replace("\\", "/")
    if DRIVE_PREFIX.match(candidate):
        raise PathSafetyError(name, "drive-qualified path")
    if candidate.startswith("/"):
        raise PathSafetyError(name, "absolute path")
    normalized = posixpath.normpath(candidate) if candidate else ""
    if normalized in ("", "."):
        raise PathSafetyError(name, "empty path")
    if normalized == ".." or normalized.startswith("../"):
        raise PathSafetyError(name, "escapes the destination directory")
    return PurePosixPath(normalized)


def _is_root_entry(name: str) -> bool:
    """True for ``.`` and ``./`` entries, which name the destination itself."""

    candidate = (name or "").replace("\\", "/")
    return bool(candidate) and not candidate.startswith("/") and posixpath.normpath(candidate) == "."


def _zip_entries(archive: zipfile.ZipFile) -> Iterator[PlannedEntry]:
    for info in archive.infolist():
        if info.is_dir() and _is_root_entry(info.filename):
            continue
        path = normalize_entry_path(info.filename)
        mode = (info.external_attr >> 16) & 0xFFFF
        if stat.S_ISLNK(mode):
            raise PathSafetyError(info.filename, "symbolic links are not extracted")
        if info.is_dir():
            yield path, True, None
        else:
            yield path, False, lambda info=info: archive.read(info)


def _tar_entries(archive: tarfile.TarFile) -> Iterator[PlannedEntry]:
    for member in archive:
        if member.isdir() and _is_root_entry(member.name):
            continue
        path = normalize_entry_path(member.name)
        if member.issym() or member.islnk():
            raise PathSafetyError(member.name, "links are not extracted")
        if member.isdir():
            yield path, True, None
        elif member.isfile():
            yield path, False, lambda member=member: _read_tar_member(archive, member)
        else:
            raise DecodeError(f"Unsupported tar entry type for {member.name!r}")


def _read_tar_member(archive: tarfile.TarFile, member: tarfile.TarInfo) -> bytes:
    handle = archive.extractfile(member)
    if handle is None:
        raise DecodeError(f"Tar entry {member.name!r} has no content")
    with handle:
        return handle.read()


def _contained_target(destination: Path, relative: PurePosixPath, entry_name: str) -> Path:
    target = (destination / Path(*relative.parts)).resolve()
    if target != destination and destination not in target.parents:
        raise PathSafetyError(entry_name, "resolves outside the destination directory")
    return target


def _write_entries(entries: List[PlannedEntry], destination: Path) -> ExtractionResult:
    result = ExtractionResult(destination=destination)
    targets = [
        (_contained_target(destination, path, path.as_posix()), path, is_dir, reader)
        for path, is_dir, reader in entries
    ]

    for target, relative, is_dir, reader in targets:
        if is_dir:
            ensure_directory(target)
            result.directories.append(relative.as_posix())
            continue
        ensure_directory(target.parent)
        write_file_bytes(target, reader())
        result.files.append(relative.as_posix())
    return result


def _extract_zip(data: bytes, destination: Path) -> ExtractionResult:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        entries = list(_zip_entries(archive))
        return _write_entries(entries, destination)


def _extract_tar(data: bytes, destination: Path) -> ExtractionResult:
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as archive:
        entries = list(_tar_entries(archive))
        return _write_entries(entries, destination)


def extract_archive(data: bytes, archive_format: ArchiveFormat, destination) -> ExtractionResult:
    """Extracts ``data`` below ``destination``.

    Every entry is validated before anything is written, so an archive with
    an unsafe entry leaves the filesystem untouched. Existing files at an
    entry's path are truncated and replaced.
    """

    archive_format = ArchiveFormat(archive_format)
    root = ensure_directory(destination).resolve()
    logging.info("Extracting %s archive (%s bytes) into %s", archive_format.value, len(data), root)
    try:
        if archive_format is ArchiveFormat.ZIP:
            result = _extract_zip(data, root)
        elif archive_format is ArchiveFormat.TAR:
            result = _extract_tar(data, root)
        else:
            result = _extract_tar(gzip.decompress(data), root)
    except (PathSafetyError, DecodeError, FilesystemError):
        raise
    except (zipfile.BadZipFile, zipfile.LargeZipFile, tarfile.TarError, gzip.BadGzipFile, EOFError, zlib.error) as exc:
        logging.error("Malformed %s archive: %s", archive_format.value, exc)
        raise DecodeError(f"Malformed {archive_format.value} archive: {exc}") from exc
    except OSError as exc:
        logging.error("Extraction into %s failed: %s", root, exc)
        raise FilesystemError(f"Extraction into {root} failed: {exc}") from exc

    logging.info(
        "Extracted %s file(s) and %s director(ies) into %s",
        len(result.files),
        len(result.directories),
        root,
    )
    return result


class ArchiveExtractor:
    """Runs ``extract_archive`` on a worker pool so the event loop stays free."""

    def __init__(self, http_client) -> None:
        self._http_client = http_client

    async def extract(self, data: bytes, archive_format: ArchiveFormat, destination) -> ExtractionResult:
        return await self._http_client.run_blocking(extract_archive, data, archive_format, destination)
