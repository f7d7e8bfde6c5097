"""
Security utilities.

Password hashing, JWT access tokens, one-time token generation and the Redis
key helpers for password reset.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt as _bcrypt
from jose import JWTError, jwt

from teamspace.core.config import settings


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt (cost=12)."""
    password_bytes = password.encode("utf-8")[:72]
    salt = _bcrypt.gensalt(rounds=12)
    return _bcrypt.hashpw(password_bytes, salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a bcrypt hash."""
    password_bytes = plain_password.encode("utf-8")[:72]
    return _bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))


# ---------------------------------------------------------------------------
# JWT tokens
# ---------------------------------------------------------------------------

def create_access_token(user_id: str, email: str) -> str:
    """
    Create a signed JWT access token.

    Args:
        user_id: The user's UUID as string.
        email: Current email, carried for client convenience only.

    Returns:
        Signed JWT string.
    """
    now = datetime.now(UTC)
    expire = now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    payload: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "jti": str(uuid.uuid4()),
        "type": "access",
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and validate a JWT access token.

    Raises:
        JWTError: If the token is invalid, expired, tampered or of the wrong type.
    """
    payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type") != "access":
        raise JWTError("Not an access token")
    return payload


# ---------------------------------------------------------------------------
# One-time tokens
# ---------------------------------------------------------------------------

def create_email_verification_token() -> str:
    """64 hex chars, stored in the email_verifications table."""
    return secrets.token_hex(32)


def create_password_reset_token() -> str:
    """Generate a secure random password reset token."""
    return secrets.token_hex(32)


# ---------------------------------------------------------------------------
# Redis key helpers
# ---------------------------------------------------------------------------

def password_reset_redis_key(token: str) -> str:
    """Redis key for a password reset token. Format: pwd_reset:{token}"""
    return f"pwd_reset:{token}"


def password_reset_user_key(user_id: str) -> str:
    """Redis key pointing at a user's outstanding reset token. Format: pwd_reset_user:{user_id}"""
    return f"pwd_reset_user:{user_id}"


def password_reset_counter_key(email: str) -> str:
    """Redis key counting reset requests in the current hour. Format: pwd_reset_count:{email}"""
    return f"pwd_reset_count:{email}"
