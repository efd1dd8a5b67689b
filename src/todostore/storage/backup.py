# src/todostore/storage/backup.py

"""
File-level helpers for export/import.

The store orchestrates the swap (close -> write -> reopen -> migrate ->
restore on failure); this module only moves bytes on disk.
"""

from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path

from .errors import StorageConnectionError, ValidationError

logger = logging.getLogger(__name__)

IMPORT_SUFFIXES: tuple[str, ...] = (".sqlite", ".sqlite3", ".db")
SQLITE_MIME_TYPE = "application/x-sqlite3"

# Files sqlite may leave next to the database; stale ones must not be
# replayed on top of a freshly written image.
_SIDE_FILE_SUFFIXES: tuple[str, ...] = ("-journal", "-wal", "-shm")


def read_import_source(source: bytes | bytearray | str | Path) -> bytes:
    """Return the replacement image from raw bytes or a file path."""
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)

    path = Path(source).expanduser()
    if path.suffix.lower() not in IMPORT_SUFFIXES:
        raise ValidationError(
            f"Unsupported import file {path.name!r}; expected one of {', '.join(IMPORT_SUFFIXES)}"
        )
    try:
        return path.read_bytes()
    except OSError as e:
        raise ValidationError(f"Cannot read import file {path}: {e}") from e


def _remove_side_files(db_path: Path) -> None:
    for suffix in _SIDE_FILE_SUFFIXES:
        side = db_path.with_name(db_path.name + suffix)
        with contextlib.suppress(OSError):
            side.unlink()
            logger.debug("Removed stale side file %s", side)


def read_database_file(db_path: str | Path) -> bytes | None:
    """Current on-disk image, or None when there is no database yet."""
    path = Path(db_path)
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise StorageConnectionError(f"Cannot read database file {path}: {e}") from e
    return data or None


def write_database_file(db_path: str | Path, data: bytes) -> None:
    """Atomically replace the database file with data (tmp file + os.replace)."""
    path = Path(db_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        _remove_side_files(path)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)
    except OSError as e:
        raise StorageConnectionError(f"Cannot write database file {path}: {e}") from e
    logger.debug("Wrote %d bytes to %s", len(data), path)


def write_export(directory: str | Path, filename: str, data: bytes) -> Path:
    """Write an export under its fixed download name; returns the final path."""
    out_dir = Path(directory).expanduser()
    out_dir.mkdir(parents=True, exist_ok=True)
    target = out_dir / filename
    tmp = target.with_name(target.name + ".tmp")
    tmp.write_bytes(data)
    os.replace(tmp, target)
    with contextlib.suppress(Exception):
        # Best-effort: the export holds personal data, keep it private on disk.
        os.chmod(target, 0o600)
    return target
