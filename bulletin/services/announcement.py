"""
Announcement service — multi-table writes coordinated by a ``UnitOfWork``.

Create, update and delete touch the attachment, announcement and user
tables together, plus files under ``UPLOAD_DIR``:

* files written for a request are removed again if its transaction does
  not commit;
* files of replaced or deleted attachments are removed only after the
  transaction that dropped their rows has committed.
"""

from __future__ import annotations

import logging

from bulletin.core.exceptions import AppError, NotFoundError, ServerError
from bulletin.db.unit_of_work import UnitOfWork, UnitOfWorkFactory
from bulletin.schemas.announcement import (AnnouncementDetail,
                                           AnnouncementInsert,
                                           AnnouncementRead)
from bulletin.storage.uploads import StoredFile, remove_files

logger = logging.getLogger(__name__)


async def _store_attachments(uow: UnitOfWork, files: list[StoredFile]) -> list[int]:
    ids: list[int] = []
    for stored in files:
        attachment = await uow.attachments.create(stored.as_attachment_values())
        ids.append(attachment.id)
    return ids


class AnnouncementService:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    # ── Reads ────────────────────────────────────────────────────────
    async def get_all_announcements(self) -> list[AnnouncementDetail]:
        async with self._uow_factory() as uow:
            rows = await uow.announcements.find_all_populated()
            result = [AnnouncementDetail.from_announcement(a) for a in rows]
            await uow.commit()
        return result

    async def get_announcement_by_id(self, announcement_id: int) -> AnnouncementDetail:
        async with self._uow_factory() as uow:
            announcement = await uow.announcements.find_by_id_populated(announcement_id)
            if announcement is None:
                raise NotFoundError(
                    "Announcement", f"Announcement with id {announcement_id} not found"
                )
            result = AnnouncementDetail.from_announcement(announcement)
            await uow.commit()
        return result

    # ── Writes ───────────────────────────────────────────────────────
    async def create_announcement(
        self, dto: AnnouncementInsert, files: list[StoredFile], author_id: int
    ) -> AnnouncementRead:
        new_paths = [f.file_path for f in files]
        uow = self._uow_factory()
        try:
            await uow.start()
            attachment_ids = await _store_attachments(uow, files)
            author = await uow.users.find_by_id(author_id)
            if author is None:
                raise NotFoundError("User", f"User with id {author_id} not found")
            announcement = await uow.announcements.create(
                dto.title, dto.description, author.id, attachment_ids
            )
            await uow.users.add_announcement(author.id, announcement.id)
            result = AnnouncementRead.from_announcement(announcement)
            await uow.commit()
        except Exception as exc:
            logger.error("Announcement creation failed: %s", exc)
            if uow.active:
                await uow.rollback()
            await remove_files(new_paths)
            raise ServerError(
                "AnnouncementCreationFailure", "Fail to create a new announcement"
            ) from exc

        logger.info("Announcement with id %s created successfully.", result.id)
        return result

    async def update_announcement(
        self, announcement_id: int, dto: AnnouncementInsert, files: list[StoredFile]
    ) -> AnnouncementRead:
        new_paths = [f.file_path for f in files]
        old_paths: list[str] = []
        uow = self._uow_factory()
        try:
            await uow.start()
            existing = await uow.announcements.find_by_id_populated(announcement_id)
            if existing is None:
                raise NotFoundError(
                    "Announcement", f"Announcement with id {announcement_id} not found"
                )
            attachment_ids = await _store_attachments(uow, files)
            for attachment in existing.attachments:
                old_paths.append(attachment.file_path)
                await uow.attachments.delete_by_id(attachment.id)
            updated = await uow.announcements.update_by_id(
                announcement_id,
                {"title": dto.title, "description": dto.description},
                attachment_ids=attachment_ids,
            )
            if updated is None:
                raise NotFoundError(
                    "Announcement", f"Announcement with id {announcement_id} not found"
                )
            result = AnnouncementRead.from_announcement(updated)
            await uow.commit()
        except Exception as exc:
            if uow.active:
                await uow.rollback()
            await remove_files(new_paths)
            if isinstance(exc, NotFoundError):
                raise
            logger.error("Announcement id=%s update failed: %s", announcement_id, exc)
            raise ServerError(
                "AnnouncementUpdateFailure", "Failed to update the announcement"
            ) from exc

        await self._remove_committed(old_paths)
        logger.info("Announcement with id %s updated successfully.", announcement_id)
        return result

    async def delete_announcement(self, announcement_id: int) -> None:
        paths: list[str] = []
        uow = self._uow_factory()
        try:
            await uow.start()
            deleted = await uow.announcements.delete_by_id(announcement_id)
            if deleted is None:
                raise NotFoundError(
                    "Announcement", f"Announcement with id {announcement_id} not found"
                )
            for attachment in deleted.attachments:
                paths.append(attachment.file_path)
                await uow.attachments.delete_by_id(attachment.id)
            await uow.users.remove_announcement(deleted.author_id, announcement_id)
            await uow.commit()
        except Exception:
            if uow.active:
                await uow.rollback()
            raise

        await self._remove_committed(paths)
        logger.info("Announcement with id %s deleted successfully.", announcement_id)

    @staticmethod
    async def _remove_committed(paths: list[str]) -> None:
        """Delete files whose rows are already gone; failures are left for ops."""
        try:
            await remove_files(paths)
        except AppError:
            logger.error("Orphaned upload files need manual removal: %s", ", ".join(paths))
            raise
