"""Pydantic schemas for JWT tokens and single-use security tokens."""

from __future__ import annotations

from pydantic import BaseModel

from bulletin.core.authority import Authority
from bulletin.models.role import Role


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RoleSnapshot(BaseModel):
    name: str
    authorities: list[Authority] = []

    @classmethod
    def from_role(cls, role: Role) -> "RoleSnapshot":
        return cls(name=role.name, authorities=role.authority_list())


class TokenPayload(BaseModel):
    """Claims carried inside a signed access token."""

    user_id: int
    email: str
    role: RoleSnapshot
    sub: str | None = None
    iat: int | None = None
    exp: int | None = None

    def to_claims(self) -> dict:
        return self.model_dump(mode="json", include={"user_id", "email", "role"})


class IssuedToken(BaseModel):
    """A freshly generated security token, raw value included for the email URL."""

    user_id: int
    email: str
    token: str
