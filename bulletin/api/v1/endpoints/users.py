"""
User administration endpoints.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from bulletin.api.v1.deps import (get_email_service, get_user_service,
                                  require_authority)
from bulletin.core.authority import Action, Resource
from bulletin.core.config import settings
from bulletin.core.exceptions import ServerError
from bulletin.schemas.user import (RegisteredUser, UpdateUserRole, UserFilter,
                                   UserInsert, UserPage, UserPatch, UserRead,
                                   UserUpdate)
from bulletin.services.email import (EmailDeliveryError, EmailService,
                                     token_url)
from bulletin.services.user import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "",
    response_model=UserPage,
    dependencies=[Depends(require_authority(Resource.USER, Action.READ))],
)
async def list_users(
    email: Optional[str] = Query(default=None),
    vat: Optional[str] = Query(default=None),
    enabled: Optional[bool] = Query(default=None),
    verified: Optional[bool] = Query(default=None),
    role: list[str] = Query(default=[]),
    page: int = Query(default=0, ge=0),
    page_size: int = Query(default=20, ge=1, le=200),
    service: UserService = Depends(get_user_service),
) -> UserPage:
    """Filter by email/vat prefix, flags and role names; ``page`` is 0-based."""
    filters = UserFilter(
        email=email,
        vat=vat,
        enabled=enabled,
        verified=verified,
        role=role,
        page=page,
        page_size=page_size,
    )
    return await service.get_all_filtered_paginated(filters)


@router.post(
    "",
    response_model=RegisteredUser,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_authority(Resource.USER, Action.CREATE))],
)
async def create_user(
    body: UserInsert,
    service: UserService = Depends(get_user_service),
    email_service: EmailService = Depends(get_email_service),
) -> RegisteredUser:
    """Create a user with an explicit role; a verification email is sent."""
    created = await service.create_user(body)
    url = token_url(settings.FRONTEND_VERIFICATION_URL, created.email, created.verification_token)
    try:
        await email_service.send_verification_email(created.email, url)
    except EmailDeliveryError as exc:
        await service.delete_user_by_id(created.id)
        raise ServerError("EmailServiceException", exc.diagnostic) from exc
    return created


@router.get(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_authority(Resource.USER, Action.READ))],
)
async def get_user(user_id: int, service: UserService = Depends(get_user_service)) -> UserRead:
    return await service.get_by_id(user_id)


@router.put(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_authority(Resource.USER, Action.UPDATE))],
)
async def update_user(
    user_id: int, body: UserUpdate, service: UserService = Depends(get_user_service)
) -> UserRead:
    return await service.update_user_by_id(user_id, body)


@router.patch(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_authority(Resource.USER, Action.UPDATE))],
)
async def patch_user(
    user_id: int, body: UserPatch, service: UserService = Depends(get_user_service)
) -> UserRead:
    return await service.partial_update_user_by_id(user_id, body)


@router.patch(
    "/{user_id}/change-role",
    response_model=UserRead,
    dependencies=[Depends(require_authority(Resource.USER, Action.UPDATE))],
)
async def change_user_role(
    user_id: int, body: UpdateUserRole, service: UserService = Depends(get_user_service)
) -> UserRead:
    return await service.update_user_role(user_id, body)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_authority(Resource.USER, Action.DELETE))],
)
async def delete_user(user_id: int, service: UserService = Depends(get_user_service)) -> Response:
    await service.delete_user_by_id(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
