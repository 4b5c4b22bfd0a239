"""
Upload handling — validates multipart files, writes them to ``UPLOAD_DIR``
and removes them again when the owning transaction does not survive.
"""

from __future__ import annotations

import logging
import mimetypes
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from bulletin.core.config import settings
from bulletin.core.exceptions import InvalidArgumentError, ServerError

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024


@dataclass(frozen=True)
class StoredFile:
    """A file already written to disk, not yet recorded in the database."""

    file_name: str
    saved_name: str
    file_path: str
    content_type: str
    file_extension: str

    def as_attachment_values(self) -> dict:
        return {
            "file_name": self.file_name,
            "saved_name": self.saved_name,
            "file_path": self.file_path,
            "content_type": self.content_type,
            "file_extension": self.file_extension,
        }


def _extension(filename: str, content_type: str) -> str:
    ext = Path(filename).suffix.lstrip(".").lower()
    if ext:
        return ext
    guessed = mimetypes.guess_extension(content_type) or ""
    return guessed.lstrip(".") or "bin"


def _saved_name(ext: str) -> str:
    return f"files-{int(time.time() * 1000)}-{secrets.token_hex(6)}.{ext}"


def check_uploads(files: list[UploadFile]) -> None:
    """Reject the request before anything touches the disk."""
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise InvalidArgumentError("File", f"Too many files (max {settings.MAX_UPLOAD_FILES})")
    for upload in files:
        if upload.content_type not in settings.ALLOWED_UPLOAD_TYPES:
            raise InvalidArgumentError("File", "Unsupported file type")
        if upload.size is not None and upload.size > settings.MAX_UPLOAD_SIZE_BYTES:
            raise InvalidArgumentError("File", _too_large())


def _too_large() -> str:
    return f"File too large (max {settings.MAX_UPLOAD_SIZE_BYTES // (1024 * 1024)}MB)"


async def save_uploads(files: list[UploadFile], upload_dir: str | None = None) -> list[StoredFile]:
    """Validate and persist ``files``; on any failure nothing is left on disk."""
    check_uploads(files)
    target = Path(upload_dir or settings.UPLOAD_DIR)
    await aiofiles.os.makedirs(target, exist_ok=True)

    stored: list[StoredFile] = []
    try:
        for upload in files:
            filename = upload.filename or "untitled"
            content_type = upload.content_type or "application/octet-stream"
            ext = _extension(filename, content_type)
            saved_name = _saved_name(ext)
            path = target / saved_name

            written = 0
            async with aiofiles.open(path, "wb") as fh:
                stored.append(
                    StoredFile(
                        file_name=filename,
                        saved_name=saved_name,
                        file_path=str(path),
                        content_type=content_type,
                        file_extension=ext,
                    )
                )
                while chunk := await upload.read(_CHUNK):
                    written += len(chunk)
                    if written > settings.MAX_UPLOAD_SIZE_BYTES:
                        raise InvalidArgumentError("File", _too_large())
                    await fh.write(chunk)
            logger.debug("Stored upload %s as %s (%d bytes)", filename, saved_name, written)
    except Exception:
        await remove_files(f.file_path for f in stored)
        raise
    return stored


async def remove_files(paths: Iterable[str]) -> None:
    """Delete every path; raise once at the end if any deletion failed."""
    failed: list[str] = []
    for path in paths:
        try:
            await aiofiles.os.remove(path)
        except OSError as exc:
            logger.warning("Failed to delete file %s: %s", path, exc)
            failed.append(path)
    if failed:
        raise ServerError("AppServerError", "Fail to delete uploads")
