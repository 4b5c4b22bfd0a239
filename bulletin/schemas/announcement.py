"""Pydantic schemas for announcements and their attachments."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from bulletin.models.announcement import Announcement
from bulletin.models.attachment import Attachment


class AnnouncementInsert(BaseModel):
    title: str
    description: str

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        if len(v) > 200:
            raise ValueError("Title must not exceed 200 characters")
        return v

    @field_validator("description")
    @classmethod
    def _description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Description is required")
        return v


class AuthorRead(BaseModel):
    id: int
    email: str


class AttachmentRead(BaseModel):
    id: int
    file_name: str
    saved_name: str
    content_type: str
    file_extension: str

    model_config = {"from_attributes": True}

    @classmethod
    def from_attachment(cls, attachment: Attachment) -> "AttachmentRead":
        return cls.model_validate(attachment)


class AnnouncementRead(BaseModel):
    id: int
    title: str
    description: str
    author: AuthorRead
    attachments: list[int]

    @classmethod
    def from_announcement(cls, announcement: Announcement) -> "AnnouncementRead":
        return cls(
            id=announcement.id,
            title=announcement.title,
            description=announcement.description,
            author=AuthorRead(id=announcement.author.id, email=announcement.author.email),
            attachments=[a.id for a in announcement.attachments],
        )


class AnnouncementDetail(BaseModel):
    id: int
    title: str
    description: str
    author: AuthorRead
    attachments: list[AttachmentRead]
    viewer_ids: list[int]
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_announcement(cls, announcement: Announcement) -> "AnnouncementDetail":
        return cls(
            id=announcement.id,
            title=announcement.title,
            description=announcement.description,
            author=AuthorRead(id=announcement.author.id, email=announcement.author.email),
            attachments=[AttachmentRead.from_attachment(a) for a in announcement.attachments],
            viewer_ids=[v.id for v in announcement.viewers],
            created_at=announcement.created_at,
            updated_at=announcement.updated_at,
        )
