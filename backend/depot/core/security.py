from __future__ import annotations

import hashlib
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from backend.depot.core.config import settings
from backend.depot.services.cache import build_backend

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

ALGORITHM = "HS256"

# Logout deny-list keyed by token hash, outside the response cache namespace.
# Entries expire with the token.
_DENYLIST_PREFIX = "depot-denylist:"
_denylist = build_backend(settings.TOKEN_DENYLIST_BACKEND)


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta
        else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": subject, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify *token*. Raises ``jose.JWTError`` on failure."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def validate_password_strength(password: str) -> str | None:
    """Validate password complexity.

    Returns error message if invalid, None if valid.
    """
    if len(password) < 12:
        return "Password must be at least 12 characters"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"\d", password):
        return "Password must contain at least one digit"
    if not re.search(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]", password):
        return "Password must contain at least one special character"
    return None


def ensure_aware(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _denylist_key(token: str) -> str:
    return _DENYLIST_PREFIX + hashlib.sha256(token.encode()).hexdigest()


def revoke_token(token: str) -> None:
    """Deny *token* until its ``exp`` claim (logout).

    Tokens that are malformed or already expired are rejected on decode
    anyway and are not stored.
    """
    try:
        claims = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[ALGORITHM], options={"verify_exp": False}
        )
        ttl = int(claims["exp"]) - int(time.time()) + 1
    except (JWTError, KeyError, TypeError, ValueError):
        return
    if ttl > 0:
        _denylist.set(_denylist_key(token), "1", ttl)


def is_token_revoked(token: str) -> bool:
    return _denylist.get(_denylist_key(token)) is not None
