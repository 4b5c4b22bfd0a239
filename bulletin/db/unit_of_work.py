"""
Unit of work — one database transaction shared by several repositories.

A started unit of work owns exactly one ``AsyncSession``.  Repositories are
only reachable through it, so every write made during the scope joins the
same transaction.  Each ``start()`` must be matched by one ``commit()`` or
``rollback()``; used as an async context manager, a scope that is left
without either is rolled back.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bulletin.core.exceptions import ServerError
from bulletin.repositories.announcement import AnnouncementRepository
from bulletin.repositories.attachment import AttachmentRepository
from bulletin.repositories.role import RoleRepository
from bulletin.repositories.user import UserRepository

logger = logging.getLogger(__name__)


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self._users: UserRepository | None = None
        self._roles: RoleRepository | None = None
        self._announcements: AnnouncementRepository | None = None
        self._attachments: AttachmentRepository | None = None

    # ── Lifecycle ────────────────────────────────────────────────────
    @property
    def active(self) -> bool:
        return self._session is not None

    async def start(self) -> None:
        """Open a session and begin a transaction on it."""
        if self._session is not None:
            raise ServerError("DBSessionError", "Transaction already started")
        session = self._session_factory()
        try:
            await session.connection()
        except SQLAlchemyError as exc:
            await session.close()
            raise ServerError("DBSessionError", "Failed to start a database transaction") from exc

        self._session = session
        self._users = UserRepository(session)
        self._roles = RoleRepository(session)
        self._announcements = AnnouncementRepository(session)
        self._attachments = AttachmentRepository(session)

    async def commit(self) -> None:
        """Commit and release the session.

        If the commit itself fails the session stays open so the caller's
        ``rollback()`` still has something to roll back.
        """
        session = self.session
        await session.commit()
        await self._release()

    async def rollback(self) -> None:
        session = self.session
        try:
            await session.rollback()
        finally:
            await self._release()

    async def _release(self) -> None:
        session, self._session = self._session, None
        self._users = self._roles = self._announcements = self._attachments = None
        if session is not None:
            await session.close()

    async def __aenter__(self) -> "UnitOfWork":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session is not None:
            if exc_type is not None:
                logger.debug("Rolling back transaction after %s", exc_type.__name__)
            await self.rollback()

    # ── Scoped access ────────────────────────────────────────────────
    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise ServerError("DBSessionError", "Failed to get session")
        return self._session

    @property
    def users(self) -> UserRepository:
        if self._users is None:
            raise ServerError("DBSessionError", "Failed to get session")
        return self._users

    @property
    def roles(self) -> RoleRepository:
        if self._roles is None:
            raise ServerError("DBSessionError", "Failed to get session")
        return self._roles

    @property
    def announcements(self) -> AnnouncementRepository:
        if self._announcements is None:
            raise ServerError("DBSessionError", "Failed to get session")
        return self._announcements

    @property
    def attachments(self) -> AttachmentRepository:
        if self._attachments is None:
            raise ServerError("DBSessionError", "Failed to get session")
        return self._attachments


UnitOfWorkFactory = Callable[[], UnitOfWork]


def unit_of_work_factory(session_factory: async_sessionmaker[AsyncSession]) -> UnitOfWorkFactory:
    return partial(UnitOfWork, session_factory)
