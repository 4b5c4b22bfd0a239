"""
Shared test fixtures for the Bulletin test suite.

Each test gets its own in-memory SQLite database (aiosqlite + StaticPool),
a freshly composed app with seeded roles and admin, a temporary upload
directory and a fake email transport.
"""

import itertools
import os
import sys
from typing import AsyncGenerator
from urllib.parse import parse_qs, urlsplit

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["SALT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-with-enough-length-for-hs256-signing"

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from bulletin.core.authority import CLIENT_ROLE
from bulletin.core.clock import utc_now
from bulletin.core.config import settings
from bulletin.core.security import hash_password
from bulletin.db.init_db import init_db
from bulletin.db.unit_of_work import UnitOfWorkFactory
from bulletin.main import create_app
from bulletin.services.email import EmailDeliveryError

DEFAULT_PASSWORD = "Secret123!"
_vat_counter = itertools.count(1_000_000_000)


class FakeEmailService:
    """Records every email; raises ``EmailDeliveryError`` when ``fail`` is set."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def _deliver(self, kind: str, to: str, url: str) -> None:
        if self.fail:
            raise EmailDeliveryError("550 Mailbox unavailable")
        self.sent.append((kind, to, url))

    async def send_verification_email(self, to: str, url: str) -> None:
        await self._deliver("verification", to, url)

    async def send_password_reset_email(self, to: str, url: str) -> None:
        await self._deliver("password_reset", to, url)

    async def send_unlock_account_email(self, to: str, url: str) -> None:
        await self._deliver("unlock", to, url)

    def last_token(self, kind: str) -> str:
        """Raw token from the most recent email of ``kind``."""
        for sent_kind, _to, url in reversed(self.sent):
            if sent_kind == kind:
                return parse_qs(urlsplit(url).query)["token"][0]
        raise AssertionError(f"no {kind} email was sent")


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
async def app(engine, email_service, tmp_path) -> AsyncGenerator[FastAPI, None]:
    """Composed app; ASGITransport skips the lifespan so the DB is seeded here."""
    application = create_app(
        engine=engine,
        email_service=email_service,
        upload_dir=str(tmp_path / "uploads"),
    )
    await init_db(engine, application.state.uow_factory)
    yield application


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def uow_factory(app) -> UnitOfWorkFactory:
    return app.state.uow_factory


@pytest.fixture
async def db_session(app) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with app.state.session_factory() as session:
        yield session


# ── Helpers ─────────────────────────────────────────────────────────
@pytest.fixture
def make_user(uow_factory):
    """Insert a user directly, bypassing registration; returns its id."""

    async def _make(
        email: str,
        password: str = DEFAULT_PASSWORD,
        role: str = CLIENT_ROLE,
        enabled: bool = True,
        verified: bool = True,
        **extra,
    ) -> int:
        async with uow_factory() as uow:
            role_row = await uow.roles.find_by_name(role)
            assert role_row is not None
            user = await uow.users.create(
                {
                    "email": email,
                    "vat": str(next(_vat_counter)),
                    "hashed_password": await hash_password(password),
                    "enabled": enabled,
                    "verified": verified,
                    "login_consecutive_failures": 0,
                    "password_changed_at": utc_now(),
                    "role_id": role_row.id,
                    "phones": [],
                    **extra,
                }
            )
            await uow.commit()
        return user.id

    return _make


async def login(client: AsyncClient, email: str, password: str = DEFAULT_PASSWORD) -> dict:
    """Log in and return bearer headers; the login cookie is dropped."""
    resp = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
async def admin_headers(async_client) -> dict:
    return await login(async_client, settings.FIRST_ADMIN_EMAIL, settings.FIRST_ADMIN_PASSWORD)
