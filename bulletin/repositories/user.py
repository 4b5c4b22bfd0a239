"""
User repository — every mutation is an explicit ``UPDATE``/``DELETE``.

Instances are bound to the session of a started ``UnitOfWork``; nothing
here commits.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bulletin.core.exceptions import ServerError
from bulletin.models.role import Role
from bulletin.models.user import User, user_announcements


class TokenKind(str, Enum):
    """Single-use token columns; each has a matching ``*_expires`` column."""

    VERIFICATION = "verification_token"
    PASSWORD_RESET = "password_reset_token"
    ENABLE_USER = "enable_user_token"

    @property
    def expires_field(self) -> str:
        return f"{self.value}_expires"

    def cleared(self) -> dict[str, None]:
        return {self.value: None, self.expires_field: None}


class UserRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ── Reads ────────────────────────────────────────────────────────
    async def _one(self, *criteria: Any) -> User | None:
        result = await self._session.execute(
            select(User).where(*criteria).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: int) -> User | None:
        return await self._one(User.id == user_id)

    async def find_by_email(self, email: str) -> User | None:
        return await self._one(User.email == email)

    async def is_email_available(self, email: str) -> bool:
        count = await self._session.scalar(
            select(func.count()).select_from(User).where(User.email == email)
        )
        return count == 0

    async def is_vat_available(self, vat: str) -> bool:
        count = await self._session.scalar(
            select(func.count()).select_from(User).where(User.vat == vat)
        )
        return count == 0

    async def count_by_role_id(self, role_id: int) -> int:
        count = await self._session.scalar(
            select(func.count()).select_from(User).where(User.role_id == role_id)
        )
        return int(count or 0)

    async def find_filtered_paginated(
        self,
        *,
        email: str | None = None,
        vat: str | None = None,
        enabled: bool | None = None,
        verified: bool | None = None,
        roles: Iterable[str] = (),
        page: int = 0,
        page_size: int = 20,
    ) -> tuple[list[User], int]:
        """Prefix filters on email/vat, exact on flags and role names."""
        criteria: list[Any] = []
        if email:
            safe = email.replace("%", r"\%").replace("_", r"\_")
            criteria.append(User.email.ilike(f"{safe}%", escape="\\"))
        if vat:
            safe = vat.replace("%", r"\%").replace("_", r"\_")
            criteria.append(User.vat.like(f"{safe}%", escape="\\"))
        if enabled is not None:
            criteria.append(User.enabled.is_(enabled))
        if verified is not None:
            criteria.append(User.verified.is_(verified))
        role_names = list(roles)
        if role_names:
            criteria.append(
                User.role_id.in_(select(Role.id).where(Role.name.in_(role_names)))
            )

        total = await self._session.scalar(
            select(func.count()).select_from(User).where(*criteria)
        )
        result = await self._session.execute(
            select(User)
            .where(*criteria)
            .order_by(User.id)
            .offset(page * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), int(total or 0)

    async def find_announcement_ids(self, user_id: int) -> list[int]:
        result = await self._session.execute(
            select(user_announcements.c.announcement_id)
            .where(user_announcements.c.user_id == user_id)
            .order_by(user_announcements.c.position)
        )
        return list(result.scalars().all())

    # ── Writes ───────────────────────────────────────────────────────
    async def create(self, values: dict[str, Any]) -> User:
        user_id = await self._session.scalar(insert(User).values(**values).returning(User.id))
        user = await self.find_by_id(user_id)
        if user is None:
            raise ServerError("AppServerError", f"User with id {user_id} vanished after insert")
        return user

    async def _update(self, changes: dict[str, Any], *criteria: Any) -> User | None:
        user_id = await self._session.scalar(
            update(User)
            .where(*criteria)
            .values(**changes)
            .returning(User.id)
            .execution_options(synchronize_session=False)
        )
        if user_id is None:
            return None
        return await self.find_by_id(user_id)

    async def update_by_id(
        self, user_id: int, changes: dict[str, Any], unset: Iterable[str] = ()
    ) -> User | None:
        """Set ``changes`` and NULL every column named in ``unset``."""
        values = {**changes, **{field: None for field in unset}}
        return await self._update(values, User.id == user_id)

    async def update_by_email(
        self, email: str, changes: dict[str, Any], unset: Iterable[str] = ()
    ) -> User | None:
        values = {**changes, **{field: None for field in unset}}
        return await self._update(values, User.email == email)

    async def update_by_email_token_not_expired(
        self,
        email: str,
        kind: TokenKind,
        token_digest: str,
        now: datetime,
        changes: dict[str, Any],
    ) -> User | None:
        """Consume a single-use token in one conditional statement.

        Matches only when the digest is current and unexpired; on match the
        token pair is cleared together with ``changes``.  Concurrent callers
        race on this row and at most one of them gets a user back.
        """
        token_col = getattr(User, kind.value)
        expires_col = getattr(User, kind.expires_field)
        return await self._update(
            {**changes, **kind.cleared()},
            User.email == email,
            token_col == token_digest,
            expires_col > now,
        )

    async def delete_by_id(self, user_id: int) -> bool:
        await self._session.execute(
            delete(user_announcements).where(user_announcements.c.user_id == user_id)
        )
        deleted = await self._session.scalar(
            delete(User)
            .where(User.id == user_id)
            .returning(User.id)
            .execution_options(synchronize_session=False)
        )
        return deleted is not None

    async def delete_by_email(self, email: str) -> bool:
        user = await self.find_by_email(email)
        if user is None:
            return False
        return await self.delete_by_id(user.id)

    async def add_announcement(self, user_id: int, announcement_id: int) -> None:
        """Push ``announcement_id`` to the front of the author's list."""
        front = await self._session.scalar(
            select(func.coalesce(func.min(user_announcements.c.position), 0)).where(
                user_announcements.c.user_id == user_id
            )
        )
        await self._session.execute(
            insert(user_announcements).values(
                user_id=user_id,
                announcement_id=announcement_id,
                position=int(front or 0) - 1,
            )
        )

    async def remove_announcement(self, user_id: int, announcement_id: int) -> None:
        await self._session.execute(
            delete(user_announcements).where(
                user_announcements.c.user_id == user_id,
                user_announcements.c.announcement_id == announcement_id,
            )
        )
