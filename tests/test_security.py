"""Tests for password hashing, single-use tokens, JWTs and the authority check."""

from datetime import datetime, timedelta, timezone

import pytest
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError

from bulletin.core.authority import (ADMIN_ROLE, BUILTIN_ROLES, CLIENT_ROLE,
                                     Action, Authority, Resource,
                                     has_authority)
from bulletin.core.config import settings
from bulletin.core.security import (compare_password, create_access_token,
                                    decode_access_token,
                                    generate_verification_token,
                                    hash_password, hash_token)


@pytest.mark.asyncio
async def test_password_hash_roundtrip():
    hashed = await hash_password("Secret123!")
    assert hashed != "Secret123!"
    assert await compare_password("Secret123!", hashed) is True
    assert await compare_password("Secret123?", hashed) is False


@pytest.mark.asyncio
async def test_password_hash_is_salted():
    assert await hash_password("Secret123!") != await hash_password("Secret123!")


def test_security_tokens_are_random_and_hashed():
    a, b = generate_verification_token(), generate_verification_token()
    assert a != b
    assert len(a) == 128  # 64 bytes, hex encoded
    digest = hash_token(a)
    assert len(digest) == 64
    assert digest == hash_token(a)
    assert digest != a


def test_access_token_roundtrip():
    token = create_access_token({"user_id": 7, "email": "a@b.com"}, subject=7)
    claims = decode_access_token(token)
    assert claims["sub"] == "7"
    assert claims["user_id"] == 7
    assert claims["type"] == "access"
    assert claims["exp"] > claims["iat"]


def test_access_token_expired():
    token = create_access_token({}, subject=1, expires_delta=timedelta(seconds=-5))
    with pytest.raises(ExpiredSignatureError):
        decode_access_token(token)


def test_access_token_tampered():
    token = create_access_token({}, subject=1)
    with pytest.raises(JWTError):
        decode_access_token(token[:-4] + "abcd")


def test_access_token_wrong_type_rejected():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": "1", "iat": now, "exp": now + timedelta(minutes=5), "type": "refresh"},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    with pytest.raises(JWTError):
        decode_access_token(token)


def test_issued_at_is_honoured():
    issued = datetime.now(timezone.utc) - timedelta(minutes=5)
    claims = decode_access_token(create_access_token({}, subject=1, issued_at=issued))
    assert claims["iat"] == int(issued.timestamp())


# ── Authority model ─────────────────────────────────────────────────
def test_has_authority_exact_match_only():
    authorities = [Authority(resource=Resource.USER, actions=[Action.READ, Action.CREATE])]
    assert has_authority(authorities, Resource.USER, Action.READ)
    assert has_authority(authorities, Resource.USER, Action.CREATE)
    assert not has_authority(authorities, Resource.USER, Action.DELETE)
    assert not has_authority(authorities, Resource.ROLE, Action.READ)
    assert not has_authority([], Resource.USER, Action.READ)


def test_authority_rejects_unknown_values():
    with pytest.raises(ValidationError):
        Authority.model_validate({"resource": "Invoice", "actions": ["READ"]})
    with pytest.raises(ValidationError):
        Authority.model_validate({"resource": "User", "actions": ["PURGE"]})


def test_authority_actions_deduplicated():
    authority = Authority.model_validate({"resource": "User", "actions": ["READ", "READ"]})
    assert authority.actions == [Action.READ]


def test_builtin_roles():
    admin = BUILTIN_ROLES[ADMIN_ROLE]
    for resource in Resource:
        for action in Action:
            assert has_authority(admin, resource, action)

    client = BUILTIN_ROLES[CLIENT_ROLE]
    assert has_authority(client, Resource.ANNOUNCEMENT, Action.READ)
    assert not has_authority(client, Resource.ANNOUNCEMENT, Action.CREATE)
    assert not has_authority(client, Resource.ROLE, Action.READ)
