"""
User administration service.
"""

from __future__ import annotations

import logging
import math
from datetime import timedelta
from typing import Any

from bulletin.core.clock import utc_now
from bulletin.core.config import settings
from bulletin.core.exceptions import (AlreadyExistsError, InvalidArgumentError,
                                      NotFoundError)
from bulletin.core.security import generate_verification_token, hash_password, hash_token
from bulletin.db.unit_of_work import UnitOfWork, UnitOfWorkFactory
from bulletin.repositories.user import TokenKind
from bulletin.schemas.user import (Profile, RegisteredUser, UpdateUserRole,
                                   UserFilter, UserInsert, UserPage, UserPatch,
                                   UserRead, UserRegister, UserUpdate)

logger = logging.getLogger(__name__)


async def insert_pending_user(uow: UnitOfWork, dto: UserRegister, role_name: str) -> RegisteredUser:
    """Insert a disabled, unverified user holding a fresh verification token.

    Shared by self-service registration and admin creation; the caller
    commits.
    """
    if not await uow.users.is_email_available(dto.email):
        raise AlreadyExistsError("User", f"User with email {dto.email} already exists")
    if not await uow.users.is_vat_available(dto.vat):
        raise AlreadyExistsError("User", f"User with vat {dto.vat} already exists")

    role = await uow.roles.find_by_name(role_name)
    if role is None:
        raise NotFoundError("Role", f'Role with name "{role_name}" not found')

    now = utc_now()
    raw_token = generate_verification_token()
    profile = dto.profile or Profile()
    user = await uow.users.create(
        {
            "email": dto.email,
            "vat": dto.vat,
            "hashed_password": await hash_password(dto.password),
            "enabled": False,
            "verified": False,
            "login_consecutive_failures": 0,
            "password_changed_at": now,
            "role_id": role.id,
            TokenKind.VERIFICATION.value: hash_token(raw_token),
            TokenKind.VERIFICATION.expires_field: now
            + timedelta(hours=settings.VERIFICATION_TOKEN_EXPIRE_HOURS),
            **profile.to_columns(),
        }
    )
    return RegisteredUser(
        id=user.id,
        email=user.email,
        enabled=user.enabled,
        verified=user.verified,
        verification_token=raw_token,
    )


def _patch_columns(dto: UserPatch) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    if dto.profile is not None:
        columns = dto.profile.to_columns()
        changes.update({k: columns[k] for k in dto.profile.model_fields_set})
    if dto.enabled is not None:
        changes["enabled"] = dto.enabled
    if dto.verified is not None:
        changes["verified"] = dto.verified
    return changes


class UserService:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    async def get_all_filtered_paginated(self, filters: UserFilter) -> UserPage:
        async with self._uow_factory() as uow:
            users, total = await uow.users.find_filtered_paginated(
                email=filters.email,
                vat=filters.vat,
                enabled=filters.enabled,
                verified=filters.verified,
                roles=filters.role,
                page=filters.page,
                page_size=filters.page_size,
            )
            data = [UserRead.from_user(u) for u in users]
            await uow.commit()
        return UserPage(
            data=data,
            total_items=total,
            current_page=filters.page + 1,
            page_size=filters.page_size,
            total_pages=math.ceil(total / filters.page_size) if total else 0,
            number_of_elements=len(data),
        )

    async def get_by_id(self, user_id: int) -> UserRead:
        async with self._uow_factory() as uow:
            user = await uow.users.find_by_id(user_id)
            if user is None:
                raise NotFoundError("User", f"User with id {user_id} not found")
            result = UserRead.from_user(user)
            await uow.commit()
        return result

    async def create_user(self, dto: UserInsert) -> RegisteredUser:
        async with self._uow_factory() as uow:
            registered = await insert_pending_user(uow, dto, dto.role)
            await uow.commit()
        logger.info("User created: id=%s, email=%s", registered.id, registered.email)
        return registered

    async def update_user_by_id(self, user_id: int, dto: UserUpdate) -> UserRead:
        changes = {
            **dto.profile.to_columns(),
            "enabled": dto.enabled,
            "verified": dto.verified,
        }
        result = await self._apply(user_id, changes)
        logger.info("User updated: id=%s", user_id)
        return result

    async def partial_update_user_by_id(self, user_id: int, dto: UserPatch) -> UserRead:
        return await self._apply(user_id, _patch_columns(dto))

    async def update_user_role(self, user_id: int, dto: UpdateUserRole) -> UserRead:
        async with self._uow_factory() as uow:
            role = await uow.roles.find_by_name(dto.role)
            if role is None:
                raise NotFoundError("Role", f"Role with name {dto.role} not found")
            user = await uow.users.update_by_id(user_id, {"role_id": role.id})
            if user is None:
                raise NotFoundError("User", f"User with id {user_id} not found")
            result = UserRead.from_user(user)
            await uow.commit()
        logger.info("User role updated: id=%s role=%s", user_id, dto.role)
        return result

    async def delete_user_by_id(self, user_id: int) -> None:
        async with self._uow_factory() as uow:
            if await uow.announcements.count_by_author_id(user_id) > 0:
                raise InvalidArgumentError(
                    "User", "Cannot delete user. They are the author of one or more announcements."
                )
            if not await uow.users.delete_by_id(user_id):
                raise NotFoundError("User", f"User with id {user_id} not found")
            await uow.commit()
        logger.info("User deleted: id=%s", user_id)

    async def _apply(self, user_id: int, changes: dict[str, Any]) -> UserRead:
        async with self._uow_factory() as uow:
            if changes:
                user = await uow.users.update_by_id(user_id, changes)
            else:
                user = await uow.users.find_by_id(user_id)
            if user is None:
                raise NotFoundError("User", f"User with id {user_id} not found")
            result = UserRead.from_user(user)
            await uow.commit()
        return result
