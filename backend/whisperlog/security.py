"""
WhisperLog Backend — Password Hashing and Access Tokens
=========================================================

What:  bcrypt password/OTP hashing and JWT access tokens.
How:   bcrypt directly (no passlib wrapper); python-jose for HS256 tokens.

bcrypt only considers the first 72 bytes of its input. Longer inputs are
truncated explicitly so hashing and verification agree on the bytes used.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from whisperlog.config import settings

BCRYPT_MAX_BYTES = 72


def _encode(secret: str) -> bytes:
    return secret.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(_encode(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """False for a missing or malformed hash instead of raising."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user: Any, expires_delta: Optional[timedelta] = None) -> str:
    """Signed access token carrying the user's id, username and email."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )
    to_encode = {
        "sub": str(user.id),
        "username": user.username,
        "email": user.email,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify signature, expiry and token type.

    Returns the claims, or None when the token is unusable.
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("type") != "access" or not payload.get("sub"):
        return None
    return payload
