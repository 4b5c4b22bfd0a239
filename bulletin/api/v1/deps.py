"""
FastAPI dependencies — service lookup, bearer-token auth and capability guards.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Cookie, Depends, Request
from fastapi.security import OAuth2PasswordBearer

from bulletin.core.authority import Action, Resource, has_authority
from bulletin.core.exceptions import ForbiddenError, NotAuthorizedError
from bulletin.schemas.token import TokenPayload
from bulletin.services.announcement import AnnouncementService
from bulletin.services.auth import AuthService
from bulletin.services.email import EmailService
from bulletin.services.role import RoleService
from bulletin.services.user import UserService

# auto_error=False so a missing header can fall back to the cookie
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Services (built once in create_app) ────────────────────────────
def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_role_service(request: Request) -> RoleService:
    return request.app.state.role_service


def get_announcement_service(request: Request) -> AnnouncementService:
    return request.app.state.announcement_service


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service


# ── Authentication ──────────────────────────────────────────────────
async def get_token_payload(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenPayload:
    """Verify the bearer token (header first, then cookie) against the live user."""
    final_token = token
    if not final_token and access_token:
        # login stores the cookie as "Bearer <token>"
        if access_token.startswith("Bearer "):
            final_token = access_token.split(" ", 1)[1]
        else:
            final_token = access_token

    if not final_token:
        raise NotAuthorizedError("Token", "Not authorized to access this resource")

    payload = await auth_service.verify_access_token(final_token)
    request.state.token_payload = payload
    return payload


# ── Authorization ───────────────────────────────────────────────────
def require_authority(resource: Resource, action: Action) -> Callable:
    """Dependency factory: allow the request only if the token's role grants
    ``action`` on ``resource``."""

    async def _guard(payload: TokenPayload = Depends(get_token_payload)) -> TokenPayload:
        if payload is None or payload.role is None or not payload.role.authorities:
            raise ForbiddenError("User", "Access denied. No authorities found.")
        if not has_authority(payload.role.authorities, resource, action):
            raise ForbiddenError(
                "User",
                f"You do not have permission to {action.value} on resource {resource.value}.",
            )
        return payload

    return _guard
