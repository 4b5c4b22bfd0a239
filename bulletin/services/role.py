"""Role service — CRUD over roles and their authorities."""

from __future__ import annotations

import logging
from typing import Any

from bulletin.core.authority import dump_authorities
from bulletin.core.exceptions import (AlreadyExistsError, InvalidArgumentError,
                                      NotFoundError)
from bulletin.db.unit_of_work import UnitOfWork, UnitOfWorkFactory
from bulletin.schemas.role import RoleCreate, RolePatch, RoleRead, RoleUpdate

logger = logging.getLogger(__name__)


class RoleService:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    async def get_all(self) -> list[RoleRead]:
        async with self._uow_factory() as uow:
            roles = [RoleRead.from_role(r) for r in await uow.roles.find_all()]
            await uow.commit()
        return roles

    async def get_by_id(self, role_id: int) -> RoleRead:
        async with self._uow_factory() as uow:
            role = await uow.roles.find_by_id(role_id)
            if role is None:
                raise NotFoundError("Role", f"Role with id {role_id} not found")
            result = RoleRead.from_role(role)
            await uow.commit()
        return result

    async def create(self, dto: RoleCreate) -> RoleRead:
        async with self._uow_factory() as uow:
            if await uow.roles.name_exists(dto.name):
                raise AlreadyExistsError("Role", f"Role with name {dto.name} already exists")
            role = await uow.roles.create(dto.name, dump_authorities(dto.authorities))
            result = RoleRead.from_role(role)
            await uow.commit()
        logger.info("Role created: name=%s, id=%s", result.name, result.id)
        return result

    async def update_by_id(self, role_id: int, dto: RoleUpdate) -> RoleRead:
        changes = {"name": dto.name, "authorities": dump_authorities(dto.authorities)}
        result = await self._apply(role_id, changes)
        logger.info("Role updated: id=%s", role_id)
        return result

    async def partial_update_by_id(self, role_id: int, dto: RolePatch) -> RoleRead:
        changes: dict[str, Any] = {}
        if dto.name is not None:
            changes["name"] = dto.name
        if dto.authorities is not None:
            changes["authorities"] = dump_authorities(dto.authorities)
        result = await self._apply(role_id, changes)
        logger.info("Role partially updated: id=%s", role_id)
        return result

    async def delete_by_id(self, role_id: int) -> None:
        async with self._uow_factory() as uow:
            if await uow.users.count_by_role_id(role_id) > 0:
                raise InvalidArgumentError(
                    "Role", "Cannot delete role. It is assigned to one or more users."
                )
            if not await uow.roles.delete_by_id(role_id):
                raise NotFoundError("Role", f"Role with id {role_id} not found")
            await uow.commit()
        logger.info("Role deleted: id=%s", role_id)

    async def _apply(self, role_id: int, changes: dict[str, Any]) -> RoleRead:
        async with self._uow_factory() as uow:
            await self._check_name_free(uow, role_id, changes.get("name"))
            if changes:
                role = await uow.roles.update_by_id(role_id, changes)
            else:
                role = await uow.roles.find_by_id(role_id)
            if role is None:
                raise NotFoundError("Role", f"Role with id {role_id} not found")
            result = RoleRead.from_role(role)
            await uow.commit()
        return result

    @staticmethod
    async def _check_name_free(uow: UnitOfWork, role_id: int, name: str | None) -> None:
        if name is not None and await uow.roles.name_exists(name, exclude_id=role_id):
            raise AlreadyExistsError("Role", f"Role with name {name} already exists")
