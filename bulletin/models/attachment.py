"""
Attachment model — metadata for a file stored under ``UPLOAD_DIR``.

The physical file is owned by whichever announcement references the row
and is only removed once the transaction deleting the row has committed.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from bulletin.core.clock import utc_now
from bulletin.db.base import Base


class Attachment(Base):
    __tablename__ = "attachments"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    file_name: str = Column(String(255), nullable=False)  # type: ignore[assignment]
    saved_name: str = Column(String(255), unique=True, nullable=False)  # type: ignore[assignment]
    file_path: str = Column(String(1024), nullable=False)  # type: ignore[assignment]
    content_type: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    file_extension: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=utc_now)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
    )
