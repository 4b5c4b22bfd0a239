"""Pydantic schemas for Role CRUD."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from bulletin.core.authority import Authority
from bulletin.models.role import Role


def _normalise_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Role name must not be empty")
    return v


class RoleCreate(BaseModel):
    name: str = Field(max_length=64)
    authorities: list[Authority] = []

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _normalise_name(v)


class RoleUpdate(RoleCreate):
    pass


class RolePatch(BaseModel):
    name: str | None = Field(default=None, max_length=64)
    authorities: list[Authority] | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str | None) -> str | None:
        return _normalise_name(v) if v is not None else v


class RoleRead(BaseModel):
    id: int
    name: str
    authorities: list[Authority]

    @classmethod
    def from_role(cls, role: Role) -> "RoleRead":
        return cls(id=role.id, name=role.name, authorities=role.authority_list())
