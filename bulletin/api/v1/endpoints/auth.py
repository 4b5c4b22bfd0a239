"""
Auth endpoints — login, registration, verification, password recovery and
account unlock.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from bulletin.api.v1.deps import get_auth_service, get_email_service
from bulletin.core.config import settings
from bulletin.core.exceptions import ServerError
from bulletin.schemas.common import MessageResponse
from bulletin.schemas.token import Token
from bulletin.schemas.user import (RegisteredUser, ResetPassword,
                                   UnlockAccount, UserLogin, UserRegister,
                                   VerifyAccount)
from bulletin.services.auth import AuthService
from bulletin.services.email import (EmailDeliveryError, EmailService,
                                     token_url)

# Rate limiter — keyed by client IP
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter(prefix="/auth", tags=["auth"])

RECOVERY_MESSAGE = (
    "If an account with this email exists, a password recovery link has been sent."
)
UNLOCK_MESSAGE = (
    "If an account with this email exists, an activation user recovery link has been sent."
)


def _email_param(email: str) -> str:
    return email.strip().lower()


@router.post("/login", response_model=Token)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    response: Response,
    body: UserLogin,
    auth_service: AuthService = Depends(get_auth_service),
) -> Token:
    """Authenticate with email/password. Returns the JWT and sets an HttpOnly cookie."""
    access_token = await auth_service.login_user(body)

    response.set_cookie(
        key="access_token",
        value=f"Bearer {access_token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return Token(access_token=access_token)


@router.post("/register", response_model=RegisteredUser, status_code=status.HTTP_201_CREATED)
async def register(
    body: UserRegister,
    auth_service: AuthService = Depends(get_auth_service),
    email_service: EmailService = Depends(get_email_service),
) -> RegisteredUser:
    """Self-service registration; the account stays disabled until verified."""
    registered = await auth_service.register_user(body)
    url = token_url(
        settings.FRONTEND_VERIFICATION_URL, registered.email, registered.verification_token
    )
    try:
        await email_service.send_verification_email(registered.email, url)
    except EmailDeliveryError as exc:
        await auth_service.delete_unverified(registered.id)
        raise ServerError("EmailServiceException", exc.diagnostic) from exc
    return registered


@router.post("/verify-account", response_model=MessageResponse)
async def verify_account(
    body: VerifyAccount,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth_service.verify_account(body)
    return MessageResponse(message="User verification token has been verified")


@router.post("/password-recovery/{email}", response_model=MessageResponse)
@limiter.limit(settings.RECOVERY_RATE_LIMIT)
async def recover_password(
    request: Request,
    email: str,
    auth_service: AuthService = Depends(get_auth_service),
    email_service: EmailService = Depends(get_email_service),
) -> MessageResponse:
    """Always answers with the same message, whether the account exists or not."""
    issued = await auth_service.recover_password(_email_param(email))
    if issued is not None:
        url = token_url(settings.FRONTEND_PASSWORD_RECOVERY_URL, issued.email, issued.token)
        try:
            await email_service.send_password_reset_email(issued.email, url)
        except EmailDeliveryError as exc:
            await auth_service.rollback_recover_password(issued.email)
            raise ServerError("EmailServiceException", exc.diagnostic) from exc
    return MessageResponse(message=RECOVERY_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPassword,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth_service.reset_password_after_recovery(body)
    return MessageResponse(
        message="Password recovery has been executed successfully. New password has been set."
    )


@router.post("/request-unlock/{email}", response_model=MessageResponse)
@limiter.limit(settings.RECOVERY_RATE_LIMIT)
async def request_unlock(
    request: Request,
    email: str,
    auth_service: AuthService = Depends(get_auth_service),
    email_service: EmailService = Depends(get_email_service),
) -> MessageResponse:
    """Always answers with the same message, whether the account exists or not."""
    issued = await auth_service.request_unlock(_email_param(email))
    if issued is not None:
        url = token_url(settings.FRONTEND_UNLOCK_ACCOUNT_URL, issued.email, issued.token)
        try:
            await email_service.send_unlock_account_email(issued.email, url)
        except EmailDeliveryError as exc:
            await auth_service.rollback_enable_user_token(issued.email)
            raise ServerError("EmailServiceException", exc.diagnostic) from exc
    return MessageResponse(message=UNLOCK_MESSAGE)


@router.post("/unlock", response_model=MessageResponse)
async def unlock_account(
    body: UnlockAccount,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth_service.unlock_account(body)
    return MessageResponse(message="Account has been unlocked.")
