"""Role repository."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bulletin.core.exceptions import NotFoundError, ServerError
from bulletin.models.role import Role


class RoleRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_all(self) -> list[Role]:
        result = await self._session.execute(select(Role).order_by(Role.id))
        return list(result.scalars().all())

    async def find_by_id(self, role_id: int) -> Role | None:
        result = await self._session.execute(
            select(Role).where(Role.id == role_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_name(self, name: str) -> Role | None:
        result = await self._session.execute(
            select(Role).where(Role.name == name).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def name_exists(self, name: str, exclude_id: int | None = None) -> bool:
        query = select(func.count()).select_from(Role).where(Role.name == name)
        if exclude_id is not None:
            query = query.where(Role.id != exclude_id)
        return bool(await self._session.scalar(query))

    async def create(self, name: str, authorities: list[dict]) -> Role:
        role_id = await self._session.scalar(
            insert(Role).values(name=name, authorities=authorities).returning(Role.id)
        )
        role = await self.find_by_id(role_id)
        if role is None:
            raise ServerError("AppServerError", f"Role with id {role_id} vanished after insert")
        return role

    async def update_by_id(self, role_id: int, changes: dict[str, Any]) -> Role | None:
        updated = await self._session.scalar(
            update(Role)
            .where(Role.id == role_id)
            .values(**changes)
            .returning(Role.id)
            .execution_options(synchronize_session=False)
        )
        if updated is None:
            return None
        return await self.find_by_id(role_id)

    async def upsert(self, name: str, authorities: list[dict]) -> Role:
        """Create ``name`` or overwrite its authorities (used for seeding)."""
        existing = await self.find_by_name(name)
        if existing is None:
            return await self.create(name, authorities)
        role = await self.update_by_id(existing.id, {"authorities": authorities})
        if role is None:
            raise NotFoundError("Role", f"Role with name {name} not found")
        return role

    async def delete_by_id(self, role_id: int) -> bool:
        deleted = await self._session.scalar(
            delete(Role)
            .where(Role.id == role_id)
            .returning(Role.id)
            .execution_options(synchronize_session=False)
        )
        return deleted is not None
