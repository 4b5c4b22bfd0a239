"""
Schema creation and seed data: the built-in roles and the first admin.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from bulletin.core.authority import ADMIN_ROLE, BUILTIN_ROLES, dump_authorities
from bulletin.core.clock import utc_now
from bulletin.core.config import settings
from bulletin.core.security import hash_password
from bulletin.db.base import Base
from bulletin.db.unit_of_work import UnitOfWorkFactory

# Ensure all models are imported so metadata.create_all can see them
from bulletin.models import announcement, attachment, role, user  # noqa: F401

logger = logging.getLogger(__name__)


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def seed_roles(uow_factory: UnitOfWorkFactory) -> None:
    """Upsert every built-in role so their authorities track the code."""
    async with uow_factory() as uow:
        for name, authorities in BUILTIN_ROLES.items():
            await uow.roles.upsert(name, dump_authorities(authorities))
        await uow.commit()
    logger.info("Built-in roles seeded: %s", ", ".join(BUILTIN_ROLES))


async def seed_admin(uow_factory: UnitOfWorkFactory) -> None:
    async with uow_factory() as uow:
        if await uow.users.find_by_email(settings.FIRST_ADMIN_EMAIL) is not None:
            return
        admin_role = await uow.roles.find_by_name(ADMIN_ROLE)
        if admin_role is None:
            logger.error("Cannot seed admin: role %s is missing", ADMIN_ROLE)
            return
        await uow.users.create(
            {
                "email": settings.FIRST_ADMIN_EMAIL,
                "vat": settings.FIRST_ADMIN_VAT,
                "hashed_password": await hash_password(settings.FIRST_ADMIN_PASSWORD),
                "enabled": True,
                "verified": True,
                "login_consecutive_failures": 0,
                "password_changed_at": utc_now(),
                "role_id": admin_role.id,
                "firstname": "System",
                "lastname": "Administrator",
                "phones": [],
            }
        )
        await uow.commit()
    logger.info(
        "Default admin created: %s (password: <redacted>)", settings.FIRST_ADMIN_EMAIL
    )


async def init_db(engine: AsyncEngine, uow_factory: UnitOfWorkFactory) -> None:
    await create_tables(engine)
    await seed_roles(uow_factory)
    await seed_admin(uow_factory)
