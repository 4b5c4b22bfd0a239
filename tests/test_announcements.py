"""Tests for announcement writes, attachment files and their cleanup."""

import os
from pathlib import Path

import pytest
from conftest import login
from httpx import AsyncClient

from bulletin.db.unit_of_work import UnitOfWork
from bulletin.repositories.announcement import AnnouncementRepository
from bulletin.repositories.user import UserRepository

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF = b"%PDF-1.4\n%fake\n"


def _files(*items: tuple[str, bytes, str]) -> list:
    return [("files", item) for item in items]


def _stored(app) -> list[str]:
    upload_dir = Path(app.state.upload_dir)
    return sorted(os.listdir(upload_dir)) if upload_dir.exists() else []


@pytest.fixture
async def employee(async_client: AsyncClient, make_user) -> tuple[int, dict]:
    user_id = await make_user("staff@test.com", role="EMPLOYEE")
    return user_id, await login(async_client, "staff@test.com")


@pytest.fixture
def track_uows(monkeypatch) -> list[UnitOfWork]:
    started: list[UnitOfWork] = []
    original = UnitOfWork.start

    async def _start(self):
        started.append(self)
        await original(self)

    monkeypatch.setattr(UnitOfWork, "start", _start)
    return started


async def _create(client: AsyncClient, headers: dict, title: str = "Notice", files=None):
    return await client.post(
        "/api/v1/announcements",
        data={"title": title, "description": "Office closed on Friday"},
        files=files or [],
        headers=headers,
    )


# ── Create ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_create_with_attachments(async_client: AsyncClient, app, employee, uow_factory):
    user_id, headers = employee
    resp = await _create(
        async_client,
        headers,
        files=_files(("plan.png", PNG, "image/png"), ("rules.pdf", PDF, "application/pdf")),
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["author"] == {"id": user_id, "email": "staff@test.com"}
    assert len(body["attachments"]) == 2

    stored = _stored(app)
    assert len(stored) == 2
    assert all(name.startswith("files-") for name in stored)

    detail = await async_client.get(f"/api/v1/announcements/{body['id']}", headers=headers)
    assert detail.status_code == 200
    names = [a["file_name"] for a in detail.json()["attachments"]]
    assert names == ["plan.png", "rules.pdf"]
    assert sorted(a["saved_name"] for a in detail.json()["attachments"]) == stored

    async with uow_factory() as uow:
        assert await uow.users.find_announcement_ids(user_id) == [body["id"]]


@pytest.mark.asyncio
async def test_new_announcements_pushed_to_front(async_client: AsyncClient, employee, uow_factory):
    user_id, headers = employee
    first = (await _create(async_client, headers, "First")).json()["id"]
    second = (await _create(async_client, headers, "Second")).json()["id"]

    async with uow_factory() as uow:
        assert await uow.users.find_announcement_ids(user_id) == [second, first]

    listing = await async_client.get("/api/v1/announcements", headers=headers)
    assert listing.status_code == 200
    assert {a["id"] for a in listing.json()} == {first, second}


@pytest.mark.asyncio
async def test_create_failure_leaves_nothing_behind(
    async_client: AsyncClient, app, employee, uow_factory, monkeypatch, track_uows
):
    _, headers = employee

    async def _boom(self, *args, **kwargs):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(AnnouncementRepository, "create", _boom)
    resp = await _create(async_client, headers, files=_files(("plan.png", PNG, "image/png")))

    assert resp.status_code == 500
    assert resp.json()["code"] == "AnnouncementCreationFailure"
    assert _stored(app) == []
    assert track_uows and not any(uow.active for uow in track_uows)
    async with uow_factory() as uow:
        assert await uow.attachments.count() == 0


@pytest.mark.asyncio
async def test_create_rejects_bad_uploads(async_client: AsyncClient, app, employee):
    _, headers = employee

    resp = await _create(async_client, headers, files=_files(("run.sh", b"#!/bin/sh", "text/x-sh")))
    assert resp.status_code == 400
    assert resp.json()["code"] == "FileInvalidArgument"

    too_many = _files(*[(f"p{i}.png", PNG, "image/png") for i in range(6)])
    resp = await _create(async_client, headers, files=too_many)
    assert resp.status_code == 400
    assert resp.json()["code"] == "FileInvalidArgument"
    assert _stored(app) == []


@pytest.mark.asyncio
async def test_create_rejects_blank_title(async_client: AsyncClient, employee):
    _, headers = employee
    resp = await _create(async_client, headers, title="   ")
    assert resp.status_code == 400
    assert resp.json()["code"] == "AnnouncementValidationError"
    assert "title" in resp.json()["field_errors"]


@pytest.mark.asyncio
async def test_client_cannot_create(async_client: AsyncClient, make_user):
    await make_user("client@test.com")
    headers = await login(async_client, "client@test.com")

    resp = await _create(async_client, headers)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "You do not have permission to CREATE on resource Announcement."

    assert (await async_client.get("/api/v1/announcements", headers=headers)).status_code == 200


# ── Update ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_update_replaces_attachments(async_client: AsyncClient, app, employee, uow_factory):
    _, headers = employee
    created = await _create(async_client, headers, files=_files(("old.png", PNG, "image/png")))
    announcement_id = created.json()["id"]
    old_files = _stored(app)

    resp = await async_client.put(
        f"/api/v1/announcements/{announcement_id}",
        data={"title": "Updated", "description": "Office open again"},
        files=_files(("new.pdf", PDF, "application/pdf")),
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["title"] == "Updated"

    stored = _stored(app)
    assert len(stored) == 1
    assert stored != old_files

    detail = (await async_client.get(f"/api/v1/announcements/{announcement_id}", headers=headers)).json()
    assert [a["file_name"] for a in detail["attachments"]] == ["new.pdf"]
    async with uow_factory() as uow:
        assert await uow.attachments.count() == 1


@pytest.mark.asyncio
async def test_update_failure_keeps_old_files(
    async_client: AsyncClient, app, employee, uow_factory, monkeypatch, track_uows
):
    _, headers = employee
    created = await _create(async_client, headers, files=_files(("old.png", PNG, "image/png")))
    announcement_id = created.json()["id"]
    old_files = _stored(app)

    async def _boom(self, *args, **kwargs):
        raise RuntimeError("update failed")

    monkeypatch.setattr(AnnouncementRepository, "update_by_id", _boom)
    resp = await async_client.put(
        f"/api/v1/announcements/{announcement_id}",
        data={"title": "Updated", "description": "Office open again"},
        files=_files(("new.pdf", PDF, "application/pdf")),
        headers=headers,
    )
    assert resp.status_code == 500
    assert resp.json()["code"] == "AnnouncementUpdateFailure"
    assert _stored(app) == old_files
    assert not any(uow.active for uow in track_uows)

    detail = (await async_client.get(f"/api/v1/announcements/{announcement_id}", headers=headers)).json()
    assert detail["title"] == "Notice"
    assert [a["file_name"] for a in detail["attachments"]] == ["old.png"]


@pytest.mark.asyncio
async def test_update_missing_announcement(async_client: AsyncClient, app, employee):
    _, headers = employee
    resp = await async_client.put(
        "/api/v1/announcements/9999",
        data={"title": "Updated", "description": "Nothing here"},
        files=_files(("new.png", PNG, "image/png")),
        headers=headers,
    )
    assert resp.status_code == 404
    assert resp.json()["code"] == "AnnouncementNotFound"
    assert _stored(app) == []


# ── Delete ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_delete_removes_rows_and_files(async_client: AsyncClient, app, employee, uow_factory):
    user_id, headers = employee
    keep = (await _create(async_client, headers, "Keep")).json()["id"]
    created = await _create(
        async_client, headers, "Drop", files=_files(("plan.png", PNG, "image/png"))
    )
    announcement_id = created.json()["id"]
    assert len(_stored(app)) == 1

    resp = await async_client.delete(f"/api/v1/announcements/{announcement_id}", headers=headers)
    assert resp.status_code == 204
    assert _stored(app) == []

    resp = await async_client.get(f"/api/v1/announcements/{announcement_id}", headers=headers)
    assert resp.status_code == 404
    async with uow_factory() as uow:
        assert await uow.attachments.count() == 0
        assert await uow.users.find_announcement_ids(user_id) == [keep]


@pytest.mark.asyncio
async def test_delete_missing_announcement(async_client: AsyncClient, employee, track_uows):
    _, headers = employee
    resp = await async_client.delete("/api/v1/announcements/9999", headers=headers)
    assert resp.status_code == 404
    assert not any(uow.active for uow in track_uows)


@pytest.mark.asyncio
async def test_delete_failure_keeps_rows_and_files(
    async_client: AsyncClient, app, employee, uow_factory, monkeypatch, track_uows
):
    user_id, headers = employee
    created = await _create(async_client, headers, files=_files(("plan.png", PNG, "image/png")))
    announcement_id = created.json()["id"]
    stored = _stored(app)

    async def _boom(self, *args, **kwargs):
        raise RuntimeError("back-reference removal failed")

    monkeypatch.setattr(UserRepository, "remove_announcement", _boom)
    with pytest.raises(RuntimeError, match="back-reference removal failed"):
        await app.state.announcement_service.delete_announcement(announcement_id)

    assert not any(uow.active for uow in track_uows)
    assert _stored(app) == stored
    async with uow_factory() as uow:
        assert await uow.attachments.count() == 1
        assert await uow.announcements.find_by_id_populated(announcement_id) is not None
        assert await uow.users.find_announcement_ids(user_id) == [announcement_id]


@pytest.mark.asyncio
async def test_update_of_vanished_announcement_is_404(
    async_client: AsyncClient, app, employee, monkeypatch, track_uows
):
    _, headers = employee
    announcement_id = (await _create(async_client, headers)).json()["id"]

    async def _vanished(self, *args, **kwargs):
        return None

    monkeypatch.setattr(AnnouncementRepository, "update_by_id", _vanished)
    resp = await async_client.put(
        f"/api/v1/announcements/{announcement_id}",
        data={"title": "Updated", "description": "Office open again"},
        files=_files(("new.png", PNG, "image/png")),
        headers=headers,
    )
    assert resp.status_code == 404
    assert resp.json()["code"] == "AnnouncementNotFound"
    assert _stored(app) == []
    assert not any(uow.active for uow in track_uows)
