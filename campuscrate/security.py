# Password hashing and JWT primitives shared by the auth routes and account services.
from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext

from .errors import ForbiddenError, Unauthenticated

JWT_SECRET: str = os.getenv("CAMPUSCRATE_JWT_SECRET", "dev-secret-change-me")
JWT_ALG: str = "HS256"
JWT_TTL_SECONDS: int = int(os.getenv("JWT_TTL_SECONDS", str(60 * 60 * 24 * 7)))  # 7 days
# Use bcrypt_sha256 to avoid bcrypt's 72-byte password limit and handle unicode safely.
pwd_context = CryptContext(schemes=["bcrypt_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(*, user_id: int, email: str, role: str) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + JWT_TTL_SECONDS,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except jwt.ExpiredSignatureError as exc:
        raise Unauthenticated("Token expired", code="TOKEN_EXPIRED") from exc
    except jwt.InvalidTokenError as exc:
        raise Unauthenticated("Invalid token", code="INVALID_TOKEN") from exc


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; stored values are UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def ban_in_effect(user, now: Optional[datetime] = None) -> bool:
    if not user.is_banned:
        return False
    until = as_utc(user.banned_until)
    if until is None:
        return True
    return until > (now or datetime.now(timezone.utc))


def check_account_standing(user) -> None:
    """Deny deactivated or banned accounts, with a distinct code per cause."""
    if not user.is_active:
        raise ForbiddenError("Account deactivated", code="ACCOUNT_DEACTIVATED")
    if ban_in_effect(user):
        until = as_utc(user.banned_until)
        raise ForbiddenError(
            "Account banned",
            code="ACCOUNT_BANNED",
            extra={"until": until.isoformat() if until else None, "reason": user.ban_reason},
        )
