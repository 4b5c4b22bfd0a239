"""Pydantic schemas for User registration, administration and auth flows."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from bulletin.models.user import User
from bulletin.schemas.token import RoleSnapshot

_VAT_RE = re.compile(r"^\d{10,}$")
_SPECIAL_RE = re.compile(r"[!@#$%^&*]")


def _normalise_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError("Email must be a valid email address")
    return v


def _check_password(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain lowercase")
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain uppercase")
    if not re.search(r"\d", v):
        raise ValueError("Password must contain number")
    if not _SPECIAL_RE.search(v):
        raise ValueError("Password must contain special character")
    return v


# ── Profile ─────────────────────────────────────────────────────────
class Phone(BaseModel):
    type: str = Field(min_length=1)
    phone: str = Field(min_length=10)


class Address(BaseModel):
    street: str = Field(min_length=1)
    number: str = Field(min_length=1)
    city: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)


class Profile(BaseModel):
    firstname: str | None = None
    lastname: str | None = None
    avatar: str | None = None
    phones: list[Phone] = []
    address: Address | None = None

    def to_columns(self) -> dict:
        """Flatten into the ``users`` profile columns."""
        return {
            "firstname": self.firstname,
            "lastname": self.lastname,
            "avatar": self.avatar,
            "phones": [p.model_dump() for p in self.phones],
            "address": self.address.model_dump() if self.address else None,
        }

    @classmethod
    def from_user(cls, user: User) -> "Profile":
        return cls(
            firstname=user.firstname,
            lastname=user.lastname,
            avatar=user.avatar,
            phones=user.phones or [],
            address=user.address,
        )


# ── Registration / creation ─────────────────────────────────────────
class UserRegister(BaseModel):
    email: str
    vat: str
    password: str
    profile: Profile | None = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("vat")
    @classmethod
    def _vat(cls, v: str) -> str:
        v = v.strip()
        if not _VAT_RE.match(v):
            raise ValueError("Vat must be at least 10 digits long")
        return v

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _check_password(v)


class UserInsert(UserRegister):
    """Admin creation: same fields plus an explicit role name."""

    role: str = Field(min_length=1)


class RegisteredUser(BaseModel):
    """Result of registration.

    ``verification_token`` is the raw secret for the outbound email URL;
    it is excluded from serialisation so it never reaches an API response.
    """

    id: int
    email: str
    enabled: bool = False
    verified: bool = False
    verification_token: str = Field(default="", exclude=True)


# ── Auth flows ──────────────────────────────────────────────────────
class UserLogin(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _normalise_email(v)


class _TokenBody(BaseModel):
    email: str
    token: str = Field(min_length=1, max_length=256)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _normalise_email(v)


class VerifyAccount(_TokenBody):
    pass


class UnlockAccount(_TokenBody):
    pass


class ResetPassword(_TokenBody):
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _check_password(v)


# ── Administration ──────────────────────────────────────────────────
class UserRead(BaseModel):
    id: int
    email: str
    vat: str
    enabled: bool
    verified: bool
    profile: Profile
    role: RoleSnapshot
    created_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> "UserRead":
        return cls(
            id=user.id,
            email=user.email,
            vat=user.vat,
            enabled=user.enabled,
            verified=user.verified,
            profile=Profile.from_user(user),
            role=RoleSnapshot.from_role(user.role),
            created_at=user.created_at,
        )


class UserUpdate(BaseModel):
    profile: Profile
    enabled: bool
    verified: bool


class UserPatch(BaseModel):
    profile: Profile | None = None
    enabled: bool | None = None
    verified: bool | None = None


class UpdateUserRole(BaseModel):
    role: str = Field(min_length=1)


class UserFilter(BaseModel):
    email: str | None = None
    vat: str | None = None
    enabled: bool | None = None
    verified: bool | None = None
    role: list[str] = []
    page: int = Field(default=0, ge=0)
    page_size: int = Field(default=20, ge=1, le=200)


class UserPage(BaseModel):
    data: list[UserRead]
    total_items: int
    current_page: int
    page_size: int
    total_pages: int
    number_of_elements: int
