"""
Role model — a named bundle of authorities.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String

from bulletin.core.authority import Authority
from bulletin.core.clock import utc_now
from bulletin.db.base import Base


class Role(Base):
    __tablename__ = "roles"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(64), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    # [{"resource": "User", "actions": ["READ", ...]}, ...]
    authorities: list[dict] = Column(JSON, nullable=False, default=list)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=utc_now)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
    )

    def authority_list(self) -> list[Authority]:
        return [Authority.model_validate(a) for a in self.authorities or []]
