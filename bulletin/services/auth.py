"""
Authentication & account lifecycle.

Account states: unverified → verified+enabled ⇄ disabled.  Single-use
tokens (verification / password reset / unlock) are consumed by one
conditional UPDATE so at most one concurrent caller can win; a caller that
matches nothing is told *why* by re-reading the user.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timedelta

from jose import ExpiredSignatureError, JWTError
from pydantic import ValidationError

from bulletin.core.clock import ensure_utc, utc_now
from bulletin.core.config import settings
from bulletin.core.exceptions import NotAuthorizedError, NotFoundError
from bulletin.core.security import (compare_password, create_access_token,
                                    decode_access_token,
                                    generate_enable_user_token,
                                    generate_reset_password_token,
                                    hash_password, hash_token)
from bulletin.db.unit_of_work import UnitOfWork, UnitOfWorkFactory
from bulletin.models.user import User
from bulletin.repositories.user import TokenKind
from bulletin.schemas.token import IssuedToken, RoleSnapshot, TokenPayload
from bulletin.schemas.user import (RegisteredUser, ResetPassword,
                                   UnlockAccount, UserLogin, UserRegister,
                                   VerifyAccount)
from bulletin.services.user import insert_pending_user

logger = logging.getLogger(__name__)

_TOKEN_MISMATCH = "token"
_TOKEN_EXPIRED = "expired"
_NO_USER = "user"


def _rejection_reason(user: User | None, kind: TokenKind, digest: str, now: datetime) -> str:
    """Explain why a conditional token update matched nothing."""
    if user is None:
        return _NO_USER
    stored = getattr(user, kind.value)
    if stored is None or not hmac.compare_digest(stored, digest):
        return _TOKEN_MISMATCH
    expires = ensure_utc(getattr(user, kind.expires_field))
    if expires is not None and expires <= now:
        return _TOKEN_EXPIRED
    return _NO_USER


class AuthService:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    # ── Login ────────────────────────────────────────────────────────
    async def login_user(self, dto: UserLogin) -> str:
        async with self._uow_factory() as uow:
            user = await uow.users.find_by_email(dto.email)
            if user is None:
                raise NotAuthorizedError("User", "Bad credentials")
            if not user.verified:
                raise NotAuthorizedError("User", "User must be verified")
            if not user.enabled:
                raise NotAuthorizedError("User", "User is disabled")

            # Checked before the password, so the attempt after the last
            # allowed failure is the one that disables the account.
            if user.login_consecutive_failures >= settings.MAX_LOGIN_FAILURES:
                await uow.users.update_by_id(
                    user.id, {"enabled": False, "login_consecutive_failures": 0}
                )
                await uow.commit()
                logger.warning("User id=%s disabled after consecutive login failures", user.id)
                raise NotAuthorizedError(
                    "User", "User is disabled after three consecutive failures"
                )

            if not await compare_password(dto.password, user.hashed_password):
                await uow.users.update_by_id(
                    user.id,
                    {"login_consecutive_failures": user.login_consecutive_failures + 1},
                )
                await uow.commit()
                raise NotAuthorizedError("User", "Bad credentials")

            if user.login_consecutive_failures != 0:
                await uow.users.update_by_id(user.id, {"login_consecutive_failures": 0})
            payload = TokenPayload(
                user_id=user.id,
                email=user.email,
                role=RoleSnapshot.from_role(user.role),
            )
            await uow.commit()

        logger.info("User id=%s logged in", payload.user_id)
        return create_access_token(payload.to_claims(), subject=payload.user_id)

    # ── Registration & verification ─────────────────────────────────
    async def register_user(self, dto: UserRegister) -> RegisteredUser:
        async with self._uow_factory() as uow:
            registered = await insert_pending_user(uow, dto, settings.DEFAULT_ROLE_NAME)
            await uow.commit()
        logger.info("User id=%s email=%s registered", registered.id, registered.email)
        return registered

    async def delete_unverified(self, user_id: int) -> None:
        """Undo a registration whose verification email never left."""
        async with self._uow_factory() as uow:
            await uow.users.delete_by_id(user_id)
            await uow.commit()
        logger.info("Registration of user id=%s rolled back", user_id)

    async def verify_account(self, dto: VerifyAccount) -> None:
        now = utc_now()
        digest = hash_token(dto.token)
        async with self._uow_factory() as uow:
            user = await uow.users.update_by_email_token_not_expired(
                dto.email,
                TokenKind.VERIFICATION,
                digest,
                now,
                {"enabled": True, "verified": True},
            )
            if user is not None:
                await uow.commit()
                logger.info("User id=%s verified", user.id)
                return

            existing = await uow.users.find_by_email(dto.email)
            reason = _rejection_reason(existing, TokenKind.VERIFICATION, digest, now)
            if reason == _TOKEN_EXPIRED:
                await uow.users.delete_by_email(dto.email)
                await uow.commit()
                logger.info("Unverified user %s deleted after token expiry", dto.email)
                raise NotAuthorizedError(
                    "Token", "Verification token expired. Please register again."
                )
        self._raise_rejection(reason, dto.email)

    # ── Password recovery ───────────────────────────────────────────
    async def recover_password(self, email: str) -> IssuedToken | None:
        raw = generate_reset_password_token()
        expires = utc_now() + timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
        async with self._uow_factory() as uow:
            user = await uow.users.update_by_email(
                email,
                {
                    TokenKind.PASSWORD_RESET.value: hash_token(raw),
                    TokenKind.PASSWORD_RESET.expires_field: expires,
                },
            )
            await uow.commit()
        if user is None:
            logger.warning("Password recovery attempted for unknown email")
            return None
        logger.info("Password recovery token issued for user id=%s", user.id)
        return IssuedToken(user_id=user.id, email=user.email, token=raw)

    async def reset_password_after_recovery(self, dto: ResetPassword) -> None:
        now = utc_now()
        digest = hash_token(dto.token)
        hashed = await hash_password(dto.new_password)
        async with self._uow_factory() as uow:
            user = await uow.users.update_by_email_token_not_expired(
                dto.email,
                TokenKind.PASSWORD_RESET,
                digest,
                now,
                {"hashed_password": hashed, "password_changed_at": now},
            )
            if user is not None:
                await uow.commit()
                logger.info("Password reset for user id=%s", user.id)
                return

            reason = await self._clear_if_expired(uow, dto.email, TokenKind.PASSWORD_RESET, digest, now)
            if reason == _TOKEN_EXPIRED:
                raise NotAuthorizedError(
                    "Token",
                    "Password reset token expired. Please start the recovery process again.",
                )
        self._raise_rejection(reason, dto.email)

    async def rollback_recover_password(self, email: str) -> None:
        await self._clear_token(email, TokenKind.PASSWORD_RESET)
        logger.info("Password recovery token rolled back for %s", email)

    # ── Unlock ───────────────────────────────────────────────────────
    async def request_unlock(self, email: str) -> IssuedToken | None:
        async with self._uow_factory() as uow:
            user = await uow.users.find_by_email(email)
            if user is None:
                logger.warning("Unlock requested for unknown email")
                return None
            if user.enabled:
                logger.info("Unlock requested for already enabled user id=%s", user.id)
                return None

            raw = generate_enable_user_token()
            expires = utc_now() + timedelta(minutes=settings.UNLOCK_TOKEN_EXPIRE_MINUTES)
            await uow.users.update_by_id(
                user.id,
                {
                    TokenKind.ENABLE_USER.value: hash_token(raw),
                    TokenKind.ENABLE_USER.expires_field: expires,
                },
            )
            await uow.commit()
        logger.info("Unlock token issued for user id=%s", user.id)
        return IssuedToken(user_id=user.id, email=user.email, token=raw)

    async def unlock_account(self, dto: UnlockAccount) -> None:
        now = utc_now()
        digest = hash_token(dto.token)
        async with self._uow_factory() as uow:
            user = await uow.users.update_by_email_token_not_expired(
                dto.email, TokenKind.ENABLE_USER, digest, now, {"enabled": True}
            )
            if user is not None:
                await uow.commit()
                logger.info("User id=%s unlocked", user.id)
                return

            reason = await self._clear_if_expired(uow, dto.email, TokenKind.ENABLE_USER, digest, now)
            if reason == _TOKEN_EXPIRED:
                raise NotAuthorizedError(
                    "Token",
                    "Enable user token expired. Please start the unlock process again.",
                )
        self._raise_rejection(reason, dto.email)

    async def rollback_enable_user_token(self, email: str) -> None:
        await self._clear_token(email, TokenKind.ENABLE_USER)
        logger.info("Enable user token rolled back for %s", email)

    # ── Access tokens ────────────────────────────────────────────────
    async def verify_access_token(self, token: str) -> TokenPayload:
        try:
            claims = decode_access_token(token)
        except ExpiredSignatureError:
            raise NotAuthorizedError("Token", "JWT token has expired")
        except JWTError as exc:
            raise NotAuthorizedError("Token", str(exc) or "Invalid token")

        try:
            payload = TokenPayload.model_validate(claims)
        except ValidationError:
            raise NotAuthorizedError("Token", "Malformed token payload")

        async with self._uow_factory() as uow:
            user = await uow.users.find_by_email(payload.email)
            await uow.commit()

        if user is None:
            raise NotAuthorizedError("User", "Bad credentials")
        if not user.verified:
            raise NotAuthorizedError("User", "User not verified")
        if not user.enabled:
            raise NotAuthorizedError("User", "User is disabled")
        changed_at = ensure_utc(user.password_changed_at)
        if payload.iat is not None and changed_at is not None:
            if int(changed_at.timestamp()) > payload.iat:
                raise NotAuthorizedError("User", "The password has changed. Please login again.")
        return payload

    # ── Helpers ──────────────────────────────────────────────────────
    async def _clear_token(self, email: str, kind: TokenKind) -> None:
        async with self._uow_factory() as uow:
            await uow.users.update_by_email(email, {}, unset=kind.cleared())
            await uow.commit()

    @staticmethod
    async def _clear_if_expired(
        uow: UnitOfWork, email: str, kind: TokenKind, digest: str, now: datetime
    ) -> str:
        existing = await uow.users.find_by_email(email)
        reason = _rejection_reason(existing, kind, digest, now)
        if reason == _TOKEN_EXPIRED:
            await uow.users.update_by_email(email, {}, unset=kind.cleared())
            await uow.commit()
        return reason

    @staticmethod
    def _raise_rejection(reason: str, email: str) -> None:
        if reason == _TOKEN_MISMATCH:
            raise NotFoundError("Token", "Token not found")
        raise NotFoundError("User", f"User with email {email} not found")
