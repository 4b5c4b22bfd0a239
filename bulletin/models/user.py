"""
User model — identity, credentials and account lifecycle state.

Each single-use token column is paired with an ``*_expires`` column; the
two are always written and cleared together.  Token columns hold the
SHA-256 digest of the secret that was emailed, never the secret itself.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (JSON, Boolean, Column, DateTime, ForeignKey, Integer,
                        String, Table)
from sqlalchemy.orm import relationship

from bulletin.core.clock import utc_now
from bulletin.db.base import Base

# Author back-references; lower position = more recent.
user_announcements = Table(
    "user_announcements",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("announcement_id", ForeignKey("announcements.id", ondelete="CASCADE"), primary_key=True),
    Column("position", Integer, nullable=False, default=0),
)


class User(Base):
    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    email: str = Column(String(320), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    vat: str = Column(String(32), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    hashed_password: str = Column(String(128), nullable=False)  # type: ignore[assignment]
    enabled: bool = Column(Boolean, nullable=False, default=False, server_default="false")  # type: ignore[assignment]
    verified: bool = Column(Boolean, nullable=False, default=False, server_default="false")  # type: ignore[assignment]
    login_consecutive_failures: int = Column(  # type: ignore[assignment]
        Integer, nullable=False, default=0, server_default="0"
    )
    password_changed_at: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    role_id: int = Column(Integer, ForeignKey("roles.id"), nullable=False, index=True)  # type: ignore[assignment]

    # ── Profile ──────────────────────────────────────────────────────
    firstname: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    lastname: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    avatar: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    phones: list[dict] = Column(JSON, nullable=False, default=list)  # type: ignore[assignment]
    address: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]

    # ── Single-use tokens ────────────────────────────────────────────
    verification_token: str | None = Column(String(64), nullable=True, index=True)  # type: ignore[assignment]
    verification_token_expires: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    password_reset_token: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    password_reset_token_expires: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    enable_user_token: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    enable_user_token_expires: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]

    created_at: datetime = Column(DateTime(timezone=True), default=utc_now)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
    )

    role = relationship("Role", lazy="joined")
