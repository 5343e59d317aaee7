"""Loaders that turn a local directory or a zip archive into file records.

Paths are returned relative to the source root with ``/`` separators and
are not validated here; BatchTracker validates them when the batch is
created.
"""

from __future__ import annotations

import zipfile
from pathlib import Path

from github_folder_uploader.config import UploadConfig, get_settings
from github_folder_uploader.exceptions import BatchValidationError
from github_folder_uploader.logging import get_logger
from github_folder_uploader.schemas.upload import FileRecord

logger = get_logger(__name__)

# Metadata folders added by archivers, never part of the upload
_ARCHIVE_NOISE = ("__MACOSX/",)


def load_directory(path: str | Path) -> list[FileRecord]:
    """Read every regular file below ``path``, sorted by relative path.

    Symbolic links are skipped.

    Raises:
        BatchValidationError: If ``path`` is not a directory
    """
    root = Path(path)
    if not root.is_dir():
        raise BatchValidationError(f"Not a directory: {root}")

    records: list[FileRecord] = []
    for file_path in sorted(root.rglob("*")):
        if file_path.is_symlink() or not file_path.is_file():
            continue
        relative = file_path.relative_to(root).as_posix()
        records.append(FileRecord(path=relative, content=file_path.read_bytes()))

    logger.debug("Loaded {} file(s) from {}", len(records), root)
    return records


def load_zip(path: str | Path, config: UploadConfig | None = None) -> list[FileRecord]:
    """Read every file entry of a zip archive in archive order.

    Raises:
        BatchValidationError: If the archive is unreadable or its
            uncompressed size exceeds the batch size limit
    """
    config = config or get_settings().upload
    archive_path = Path(path)

    try:
        with zipfile.ZipFile(archive_path) as archive:
            entries = [
                info
                for info in archive.infolist()
                if not info.is_dir() and not info.filename.startswith(_ARCHIVE_NOISE)
            ]
            uncompressed = sum(info.file_size for info in entries)
            if uncompressed > config.max_batch_bytes:
                raise BatchValidationError(
                    f"Archive expands to {uncompressed} bytes "
                    f"(maximum {config.max_batch_bytes})"
                )
            records = [
                FileRecord(path=info.filename, content=archive.read(info)) for info in entries
            ]
    except (zipfile.BadZipFile, OSError) as e:
        raise BatchValidationError(f"Failed to read archive {archive_path}: {e}") from e

    logger.debug("Loaded {} file(s) from {}", len(records), archive_path)
    return records


def load_source(path: str | Path) -> list[FileRecord]:
    """Load a directory or a ``.zip`` archive."""
    source = Path(path)
    if source.is_file() and zipfile.is_zipfile(source):
        return load_zip(source)
    return load_directory(source)
