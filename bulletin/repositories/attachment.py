"""Attachment repository."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from bulletin.core.exceptions import ServerError
from bulletin.models.attachment import Attachment


class AttachmentRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_id(self, attachment_id: int) -> Attachment | None:
        result = await self._session.execute(
            select(Attachment).where(Attachment.id == attachment_id)
        )
        return result.scalar_one_or_none()

    async def count(self) -> int:
        return int(await self._session.scalar(select(func.count()).select_from(Attachment)) or 0)

    async def create(self, values: dict[str, Any]) -> Attachment:
        attachment_id = await self._session.scalar(
            insert(Attachment).values(**values).returning(Attachment.id)
        )
        attachment = await self.find_by_id(attachment_id)
        if attachment is None:
            raise ServerError(
                "AppServerError", f"Attachment with id {attachment_id} vanished after insert"
            )
        return attachment

    async def delete_by_id(self, attachment_id: int) -> bool:
        deleted = await self._session.scalar(
            delete(Attachment)
            .where(Attachment.id == attachment_id)
            .returning(Attachment.id)
            .execution_options(synchronize_session=False)
        )
        return deleted is not None
