"""
Announcement endpoints — multipart forms with up to ``MAX_UPLOAD_FILES``
attachments.
"""

from __future__ import annotations

from fastapi import (APIRouter, Depends, File, Form, Request, Response,
                     UploadFile, status)
from pydantic import ValidationError

from bulletin.api.v1.deps import get_announcement_service, require_authority
from bulletin.core.authority import Action, Resource
from bulletin.core.exceptions import AppValidationError, field_errors_from
from bulletin.schemas.announcement import (AnnouncementDetail,
                                           AnnouncementInsert,
                                           AnnouncementRead)
from bulletin.schemas.token import TokenPayload
from bulletin.services.announcement import AnnouncementService
from bulletin.storage.uploads import save_uploads

router = APIRouter(prefix="/announcements", tags=["announcements"])


def _insert_dto(title: str, description: str) -> AnnouncementInsert:
    try:
        return AnnouncementInsert(title=title, description=description)
    except ValidationError as exc:
        raise AppValidationError("Announcement", field_errors_from(exc.errors()))


@router.get(
    "",
    response_model=list[AnnouncementDetail],
    dependencies=[Depends(require_authority(Resource.ANNOUNCEMENT, Action.READ))],
)
async def list_announcements(
    service: AnnouncementService = Depends(get_announcement_service),
) -> list[AnnouncementDetail]:
    return await service.get_all_announcements()


@router.post("", response_model=AnnouncementRead, status_code=status.HTTP_201_CREATED)
async def create_announcement(
    request: Request,
    title: str = Form(...),
    description: str = Form(...),
    files: list[UploadFile] = File(default=[]),
    payload: TokenPayload = Depends(require_authority(Resource.ANNOUNCEMENT, Action.CREATE)),
    service: AnnouncementService = Depends(get_announcement_service),
) -> AnnouncementRead:
    """Create an announcement authored by the caller, storing its attachments."""
    dto = _insert_dto(title, description)
    stored = await save_uploads(files, request.app.state.upload_dir)
    return await service.create_announcement(dto, stored, payload.user_id)


@router.get(
    "/{announcement_id}",
    response_model=AnnouncementDetail,
    dependencies=[Depends(require_authority(Resource.ANNOUNCEMENT, Action.READ))],
)
async def get_announcement(
    announcement_id: int,
    service: AnnouncementService = Depends(get_announcement_service),
) -> AnnouncementDetail:
    return await service.get_announcement_by_id(announcement_id)


@router.put(
    "/{announcement_id}",
    response_model=AnnouncementRead,
    dependencies=[Depends(require_authority(Resource.ANNOUNCEMENT, Action.UPDATE))],
)
async def update_announcement(
    request: Request,
    announcement_id: int,
    title: str = Form(...),
    description: str = Form(...),
    files: list[UploadFile] = File(default=[]),
    service: AnnouncementService = Depends(get_announcement_service),
) -> AnnouncementRead:
    """Replace fields and attachments; old files go once the change commits."""
    dto = _insert_dto(title, description)
    stored = await save_uploads(files, request.app.state.upload_dir)
    return await service.update_announcement(announcement_id, dto, stored)


@router.delete(
    "/{announcement_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_authority(Resource.ANNOUNCEMENT, Action.DELETE))],
)
async def delete_announcement(
    announcement_id: int,
    service: AnnouncementService = Depends(get_announcement_service),
) -> Response:
    await service.delete_announcement(announcement_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
