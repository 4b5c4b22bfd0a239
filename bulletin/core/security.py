"""
JWT token creation / verification, password hashing (bcrypt) and
single-use security tokens.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from bulletin.core.config import settings
from bulletin.core.exceptions import ServerError

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.SALT_ROUNDS,
)

_ALGORITHM = settings.ALGORITHM
_SECRET = settings.SECRET_KEY

_TOKEN_BYTES = 64


# ── Passwords ───────────────────────────────────────────────────────
def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


# ── Single-use security tokens ──────────────────────────────────────
def _generate_token() -> str:
    return secrets.token_hex(_TOKEN_BYTES)


def hash_token(raw: str) -> str:
    """SHA-256 digest persisted in place of the raw token."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def generate_verification_token() -> str:
    return _generate_token()


def generate_reset_password_token() -> str:
    return _generate_token()


def generate_enable_user_token() -> str:
    return _generate_token()


# ── JWT tokens ──────────────────────────────────────────────────────
def create_access_token(
    claims: dict[str, Any],
    subject: str | Any,
    expires_delta: timedelta | None = None,
    issued_at: datetime | None = None,
) -> str:
    issued = issued_at or datetime.now(timezone.utc)
    expire = issued + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return jwt.encode(
        {**claims, "sub": str(subject), "iat": issued, "exp": expire, "type": "access"},
        _SECRET,
        algorithm=_ALGORITHM,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Return the verified claims.

    Raises ``jose.ExpiredSignatureError`` or ``jose.JWTError``; callers
    translate those into domain errors.
    """
    payload = jwt.decode(token, _SECRET, algorithms=[_ALGORITHM])
    if payload.get("type") != "access":
        raise JWTError("Invalid token type")
    return payload


# ── Async wrappers (bcrypt is CPU bound) ────────────────────────────
async def hash_password(plain: str) -> str:
    try:
        return await run_in_threadpool(get_password_hash, plain)
    except (ValueError, TypeError) as exc:
        raise ServerError("AppServerError", "Password hashing failed") from exc


async def compare_password(plain: str, hashed: str) -> bool:
    try:
        return await run_in_threadpool(verify_password, plain, hashed)
    except (ValueError, TypeError) as exc:
        raise ServerError("AppServerError", "Password comparison failed") from exc
