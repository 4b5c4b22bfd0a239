"""
Announcement model and its reference tables.

Announcements are written only through ``AnnouncementService`` because a
change always touches the attachment and user tables in the same
transaction.  The relationships below are read-only views; the reference
tables are maintained by explicit statements in the repositories.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (Column, DateTime, ForeignKey, Integer, String, Table,
                        Text)
from sqlalchemy.orm import relationship

from bulletin.core.clock import utc_now
from bulletin.db.base import Base

announcement_attachments = Table(
    "announcement_attachments",
    Base.metadata,
    Column("announcement_id", ForeignKey("announcements.id", ondelete="CASCADE"), primary_key=True),
    Column("attachment_id", ForeignKey("attachments.id", ondelete="CASCADE"), primary_key=True),
    Column("position", Integer, nullable=False, default=0),
)

announcement_viewers = Table(
    "announcement_viewers",
    Base.metadata,
    Column("announcement_id", ForeignKey("announcements.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Announcement(Base):
    __tablename__ = "announcements"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    title: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    description: str = Column(Text, nullable=False)  # type: ignore[assignment]
    author_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    created_at: datetime = Column(DateTime(timezone=True), default=utc_now)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
    )

    author = relationship("User", lazy="raise", viewonly=True)
    attachments = relationship(
        "Attachment",
        secondary=announcement_attachments,
        order_by=announcement_attachments.c.position,
        lazy="raise",
        viewonly=True,
    )
    viewers = relationship(
        "User",
        secondary=announcement_viewers,
        lazy="raise",
        viewonly=True,
    )
