"""Tests for upload storage: async writes, size limits and file removal."""

import io

import aiofiles
import aiofiles.os
import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from bulletin.core.config import settings
from bulletin.core.exceptions import InvalidArgumentError, ServerError
from bulletin.storage import uploads
from bulletin.storage.uploads import remove_files, save_uploads

PNG = b"\x89PNG\r\n\x1a\n" + b"\x01" * 32


def _upload(name: str, data: bytes, content_type: str = "image/png") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data), filename=name, headers=Headers({"content-type": content_type})
    )


@pytest.mark.asyncio
async def test_save_uploads_writes_through_aiofiles(tmp_path, monkeypatch):
    opened: list[str] = []
    original_open = aiofiles.open

    def _open(path, *args, **kwargs):
        opened.append(str(path))
        return original_open(path, *args, **kwargs)

    monkeypatch.setattr(aiofiles, "open", _open)
    stored = await save_uploads([_upload("plan.png", PNG)], str(tmp_path))

    assert len(stored) == 1
    saved = stored[0]
    assert opened == [saved.file_path]
    assert saved.file_name == "plan.png"
    assert saved.file_extension == "png"
    assert saved.saved_name.startswith("files-") and saved.saved_name.endswith(".png")
    assert (tmp_path / saved.saved_name).read_bytes() == PNG


@pytest.mark.asyncio
async def test_oversized_stream_leaves_nothing_on_disk(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE_BYTES", 16)
    files = [_upload("small.png", PNG[:8]), _upload("big.png", PNG)]

    with pytest.raises(InvalidArgumentError) as exc:
        await save_uploads(files, str(tmp_path))
    assert exc.value.code == "FileInvalidArgument"
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_remove_files_attempts_every_path(tmp_path, monkeypatch):
    removed: list[str] = []
    original_remove = aiofiles.os.remove

    async def _remove(path):
        removed.append(str(path))
        await original_remove(path)

    monkeypatch.setattr(uploads.aiofiles.os, "remove", _remove)
    first, second = tmp_path / "a.png", tmp_path / "b.png"
    first.write_bytes(PNG)
    second.write_bytes(PNG)
    missing = tmp_path / "gone.png"

    with pytest.raises(ServerError) as exc:
        await remove_files([str(first), str(missing), str(second)])
    assert exc.value.code == "AppServerError"
    assert removed == [str(first), str(missing), str(second)]
    assert not first.exists() and not second.exists()


@pytest.mark.asyncio
async def test_remove_files_with_nothing_to_do():
    await remove_files([])
