"""
Bulletin — Application entry point.

This is the **only** file that assembles the app.  ``create_app`` is the
composition root: engine → session factory → unit-of-work factory →
services → email transport, all stored on ``app.state``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from bulletin.api.v1.api import api_router
from bulletin.api.v1.endpoints.auth import limiter
from bulletin.core.config import settings
from bulletin.core.exceptions import register_exception_handlers
from bulletin.db.init_db import init_db
from bulletin.db.session import build_engine, build_session_factory
from bulletin.db.unit_of_work import unit_of_work_factory
from bulletin.services.announcement import AnnouncementService
from bulletin.services.auth import AuthService
from bulletin.services.email import EmailService, SmtpEmailService
from bulletin.services.role import RoleService
from bulletin.services.user import UserService

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db(app.state.engine, app.state.uow_factory)
    logger.info("Bulletin v%s started", settings.VERSION)
    yield
    await app.state.engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app(
    engine: AsyncEngine | None = None,
    email_service: EmailService | None = None,
    upload_dir: str | None = None,
) -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Users, roles, authentication and announcements",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    engine = engine or build_engine(settings.DATABASE_URL)
    session_factory = build_session_factory(engine)
    uow_factory = unit_of_work_factory(session_factory)

    application.state.engine = engine
    application.state.session_factory = session_factory
    application.state.uow_factory = uow_factory
    application.state.upload_dir = str(Path(upload_dir or settings.UPLOAD_DIR))
    application.state.auth_service = AuthService(uow_factory)
    application.state.user_service = UserService(uow_factory)
    application.state.role_service = RoleService(uow_factory)
    application.state.announcement_service = AnnouncementService(uow_factory)
    application.state.email_service = email_service or SmtpEmailService()
    application.state.limiter = limiter

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return application


app = create_app()
