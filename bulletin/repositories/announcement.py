"""
Announcement repository.

Attachment references live in ``announcement_attachments`` and are
rewritten explicitly; the ORM relationships on ``Announcement`` are only
used for eager reads.
"""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bulletin.core.exceptions import ServerError
from bulletin.models.announcement import (Announcement,
                                          announcement_attachments,
                                          announcement_viewers)


def _populated():
    return select(Announcement).options(
        selectinload(Announcement.author),
        selectinload(Announcement.attachments),
        selectinload(Announcement.viewers),
    )


class AnnouncementRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_all_populated(self) -> list[Announcement]:
        result = await self._session.execute(
            _populated().order_by(Announcement.created_at.desc(), Announcement.id.desc())
        )
        return list(result.scalars().all())

    async def find_by_id_populated(self, announcement_id: int) -> Announcement | None:
        result = await self._session.execute(
            _populated()
            .where(Announcement.id == announcement_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def count_by_author_id(self, author_id: int) -> int:
        count = await self._session.scalar(
            select(func.count())
            .select_from(Announcement)
            .where(Announcement.author_id == author_id)
        )
        return int(count or 0)

    async def _set_attachments(self, announcement_id: int, attachment_ids: Sequence[int]) -> None:
        await self._session.execute(
            delete(announcement_attachments).where(
                announcement_attachments.c.announcement_id == announcement_id
            )
        )
        if attachment_ids:
            await self._session.execute(
                insert(announcement_attachments),
                [
                    {"announcement_id": announcement_id, "attachment_id": att_id, "position": pos}
                    for pos, att_id in enumerate(attachment_ids)
                ],
            )

    async def create(
        self,
        title: str,
        description: str,
        author_id: int,
        attachment_ids: Sequence[int] = (),
    ) -> Announcement:
        announcement_id = await self._session.scalar(
            insert(Announcement)
            .values(title=title, description=description, author_id=author_id)
            .returning(Announcement.id)
        )
        await self._set_attachments(announcement_id, attachment_ids)
        announcement = await self.find_by_id_populated(announcement_id)
        if announcement is None:
            raise ServerError(
                "AppServerError", f"Announcement with id {announcement_id} vanished after insert"
            )
        return announcement

    async def update_by_id(
        self,
        announcement_id: int,
        changes: dict[str, Any],
        attachment_ids: Sequence[int] | None = None,
    ) -> Announcement | None:
        """Set ``changes``; replace the attachment list when one is given."""
        updated = await self._session.scalar(
            update(Announcement)
            .where(Announcement.id == announcement_id)
            .values(**changes)
            .returning(Announcement.id)
            .execution_options(synchronize_session=False)
        )
        if updated is None:
            return None
        if attachment_ids is not None:
            await self._set_attachments(announcement_id, attachment_ids)
        return await self.find_by_id_populated(announcement_id)

    async def delete_by_id(self, announcement_id: int) -> Announcement | None:
        """Delete the row and its reference rows; return the populated snapshot."""
        snapshot = await self.find_by_id_populated(announcement_id)
        if snapshot is None:
            return None
        await self._session.execute(
            delete(announcement_attachments).where(
                announcement_attachments.c.announcement_id == announcement_id
            )
        )
        await self._session.execute(
            delete(announcement_viewers).where(
                announcement_viewers.c.announcement_id == announcement_id
            )
        )
        await self._session.execute(
            delete(Announcement)
            .where(Announcement.id == announcement_id)
            .execution_options(synchronize_session=False)
        )
        return snapshot
