"""Filesystem helpers for staging areas and atomic file replacement."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Union

from ..errors import FilesystemError

PathLike = Union[str, "os.PathLike[str]"]


def ensure_directory(path: PathLike) -> Path:
    """Creates a directory (and its parents) if needed."""

    target = Path(path)
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(f"Cannot create directory {target}: {exc}") from exc
    return target


def cleanup_directory(path: PathLike) -> None:
    """Deletes a directory tree if it exists."""

    if os.path.isdir(path):
        shutil.rmtree(path, ignore_errors=True)


def make_staging_directory(prefix: str = "transfer-stage-") -> Path:
    """Creates a uniquely named private temporary directory."""

    try:
        return Path(tempfile.mkdtemp(prefix=prefix))
    except OSError as exc:
        raise FilesystemError(f"Cannot create staging directory: {exc}") from exc


def open_sibling_tempfile(dest_path: PathLike):
    """Opens a uniquely named temp file next to ``dest_path`` for writing.

    Returns ``(file_object, temp_path)``. The caller either renames the
    temp file into place with ``replace_file`` or removes it.
    """

    dest = Path(dest_path)
    parent = ensure_directory(dest.parent)
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".part", dir=parent)
    except OSError as exc:
        raise FilesystemError(f"Cannot create temporary file next to {dest}: {exc}") from exc
    return os.fdopen(fd, "wb"), Path(tmp_name)


def replace_file(tmp_path: PathLike, dest_path: PathLike) -> None:
    try:
        os.replace(tmp_path, dest_path)
    except OSError as exc:
        raise FilesystemError(f"Cannot move {tmp_path} into place at {dest_path}: {exc}") from exc


def discard_file(path: PathLike) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def read_file_bytes(path: PathLike) -> bytes:
    try:
        with open(path, "rb") as handle:
            return handle.read()
    except OSError as exc:
        raise FilesystemError(f"Cannot read {path}: {exc}") from exc


def write_file_bytes(path: PathLike, data: bytes) -> None:
    """Writes ``data`` to ``path``, truncating anything already there."""

    try:
        with open(path, "wb") as handle:
            handle.write(data)
    except OSError as exc:
        raise FilesystemError(f"Cannot write {path}: {exc}") from exc


def open_binary(path: PathLike):
    try:
        return open(path, "rb")
    except OSError as exc:
        raise FilesystemError(f"Cannot read {path}: {exc}") from exc
