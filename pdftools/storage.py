"""
Filesystem Storage
==================
Owns the bytes behind registered files.

Directory Layout:
    uploads/    # Files received through POST /api/upload
    outputs/    # Files written by operation routines

Stored names are collision resistant: ``<tag>-<epoch ms>-<8 hex><ext>``.
"""

from __future__ import annotations

import logging
import os
import re
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "image/jpeg",
    "image/png",
    "image/jpg",
    "text/html",
}

MIME_TYPES_BY_EXTENSION = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".html": "text/html",
    ".htm": "text/html",
    ".txt": "text/plain",
}


class StorageError(Exception):
    """Base class for storage failures."""


class UploadRejectedError(StorageError):
    """The upload's type is not accepted."""


class FileTooLargeError(StorageError):
    """The upload exceeds the per-file size limit."""

    def __init__(self, filename: str, limit: int):
        self.filename = filename
        self.limit = limit
        super().__init__(
            f"File {filename!r} exceeds the maximum size of {limit // (1024 * 1024)}MB"
        )


# ─── Naming ───────────────────────────────────────────────────────────────────


def unique_name(tag: str, extension: str) -> str:
    """Output name that cannot collide across concurrent jobs."""
    if extension and not extension.startswith("."):
        extension = "." + extension
    return f"{_sanitize_name(tag)}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{extension}"


def guess_mime_type(filename: str, default: str = "application/octet-stream") -> str:
    return MIME_TYPES_BY_EXTENSION.get(Path(filename).suffix.lower(), default)


def sanitize_download_name(name: str) -> str:
    """Strip characters that would break out of a quoted header value."""
    cleaned = re.sub(r'[\r\n"\\]', "", name or "")
    return cleaned or "download"


def content_disposition(name: str) -> str:
    """
    ``Content-Disposition`` value for an attachment download.

    Names that are not latin-1 encodable get an ASCII fallback plus an
    RFC 5987 ``filename*`` parameter.
    """
    safe = sanitize_download_name(name)
    try:
        safe.encode("latin-1")
    except UnicodeEncodeError:
        fallback = safe.encode("ascii", "ignore").decode("ascii").strip() or "download"
        return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(safe)}"
    return f'attachment; filename="{safe}"'


def _sanitize_name(name: str) -> str:
    """Keep names filesystem friendly."""
    safe = re.sub(r'[<>:"/\\|?*\s]+', "_", name)
    return safe.strip("._") or "file"


# ─── Storage ──────────────────────────────────────────────────────────────────


class FileStorage:
    """Reads, writes and removes stored bytes under two directories."""

    def __init__(self, upload_dir: str, output_dir: str):
        self.upload_dir = Path(upload_dir).absolute()
        self.output_dir = Path(output_dir).absolute()

    def init(self) -> "FileStorage":
        """Ensure both directories exist."""
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Storage initialized: uploads={self.upload_dir} outputs={self.output_dir}")
        return self

    def save_upload(
        self,
        stream: BinaryIO,
        original_name: str,
        max_size: Optional[int] = None,
    ) -> tuple[str, str, int]:
        """
        Stream an upload to disk in chunks.

        Returns:
            (stored_name, absolute_path, size_bytes)

        Raises:
            FileTooLargeError: once more than ``max_size`` bytes were read.
                The partial file is removed.
        """
        suffix = Path(original_name).suffix.lower()
        stored_name = unique_name("upload", suffix)
        dest = self.upload_dir / stored_name

        size = 0
        try:
            with open(dest, "wb") as fh:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if max_size is not None and size > max_size:
                        raise FileTooLargeError(original_name, max_size)
                    fh.write(chunk)
        except BaseException:
            dest.unlink(missing_ok=True)
            raise

        logger.info(f"Upload saved: {original_name} -> {stored_name} ({size} bytes)")
        return stored_name, str(dest), size

    def output_path(self, tag: str, extension: str) -> Path:
        """Fresh path in the output directory for a routine to write to."""
        return self.output_dir / unique_name(tag, extension)

    def remove(self, location: str) -> bool:
        """
        Delete stored bytes.
        Returns False if they were already gone; other OSErrors propagate.
        """
        try:
            os.remove(location)
        except FileNotFoundError:
            return False
        logger.info(f"Deleted stored file: {location}")
        return True

    def exists(self, location: str) -> bool:
        return os.path.isfile(location)


# ─── Routine Outputs ──────────────────────────────────────────────────────────


class OutputSink:
    """
    Collects the files one routine run writes.

    Every path handed out by ``new_path`` is tracked, so ``discard`` can
    remove partial outputs when the routine fails.
    """

    def __init__(self, storage: FileStorage):
        self.storage = storage
        self.outputs: list[tuple[Path, str]] = []
        self.notices: list[str] = []
        self._issued: list[Path] = []

    def new_path(self, tag: str, extension: str = ".pdf") -> Path:
        path = self.storage.output_path(tag, extension)
        self._issued.append(path)
        return path

    def add(self, path: Path, mime_type: Optional[str] = None) -> Path:
        """Declare a written file as an output of the run."""
        self.outputs.append((Path(path), mime_type or guess_mime_type(str(path))))
        return path

    def notice(self, message: str):
        """Record a limitation the caller must be told about."""
        if message not in self.notices:
            self.notices.append(message)

    def discard(self):
        """Remove every file written during the run."""
        for path in self._issued:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove partial output {path}: {e}")
        self.outputs.clear()
        self._issued.clear()
