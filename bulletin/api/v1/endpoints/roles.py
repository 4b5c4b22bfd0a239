"""Role endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from bulletin.api.v1.deps import get_role_service, require_authority
from bulletin.core.authority import Action, Resource
from bulletin.schemas.role import RoleCreate, RolePatch, RoleRead, RoleUpdate
from bulletin.services.role import RoleService

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get(
    "",
    response_model=list[RoleRead],
    dependencies=[Depends(require_authority(Resource.ROLE, Action.READ))],
)
async def list_roles(service: RoleService = Depends(get_role_service)) -> list[RoleRead]:
    return await service.get_all()


@router.post(
    "",
    response_model=RoleRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_authority(Resource.ROLE, Action.CREATE))],
)
async def create_role(
    body: RoleCreate, service: RoleService = Depends(get_role_service)
) -> RoleRead:
    return await service.create(body)


@router.get(
    "/{role_id}",
    response_model=RoleRead,
    dependencies=[Depends(require_authority(Resource.ROLE, Action.READ))],
)
async def get_role(role_id: int, service: RoleService = Depends(get_role_service)) -> RoleRead:
    return await service.get_by_id(role_id)


@router.put(
    "/{role_id}",
    response_model=RoleRead,
    dependencies=[Depends(require_authority(Resource.ROLE, Action.UPDATE))],
)
async def update_role(
    role_id: int, body: RoleUpdate, service: RoleService = Depends(get_role_service)
) -> RoleRead:
    return await service.update_by_id(role_id, body)


@router.patch(
    "/{role_id}",
    response_model=RoleRead,
    dependencies=[Depends(require_authority(Resource.ROLE, Action.UPDATE))],
)
async def patch_role(
    role_id: int, body: RolePatch, service: RoleService = Depends(get_role_service)
) -> RoleRead:
    return await service.partial_update_by_id(role_id, body)


@router.delete(
    "/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_authority(Resource.ROLE, Action.DELETE))],
)
async def delete_role(role_id: int, service: RoleService = Depends(get_role_service)) -> Response:
    await service.delete_by_id(role_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
