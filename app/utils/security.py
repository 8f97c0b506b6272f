"""
Security utilities for the Expense Ledger authentication layer.

Provides JWT token creation/verification (python-jose), bcrypt password
hashing and Fernet encryption for secrets kept in the database.  Keys and
lifetimes come from the settings singleton so nothing sensitive is
hard-coded here.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt

from app.config import get_settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Password helpers (bcrypt used directly, passlib lags behind bcrypt 4.x)
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def user_claims(user: Any) -> dict[str, Any]:
    """Build the token claims for a user row: ``sub`` is the primary key."""
    return {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
    }


def create_access_token(data: dict[str, Any]) -> str:
    """Create a signed JWT access token.

    The payload is a copy of *data* plus ``exp`` and ``iat`` claims; the
    expiry window is ``JWT_EXPIRATION_MINUTES``.

    Args:
        data: Claims to embed, normally ``user_claims(user)``.

    Returns:
        A compact JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = data.copy()
    payload["exp"] = now + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
    payload["iat"] = now

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT access token.

    Raises:
        ValueError: If the token is invalid, expired, or cannot be decoded.
                    FastAPI dependencies map this to HTTP 401.
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as exc:
        logger.debug("JWT verification failed: %s", exc)
        raise ValueError("Invalid or expired token") from exc


# ---------------------------------------------------------------------------
# Stored secrets (Fernet, keyed from ENCRYPTION_KEY or the JWT secret)
# ---------------------------------------------------------------------------


def _fernet() -> Fernet:
    settings = get_settings()
    secret = settings.ENCRYPTION_KEY or settings.JWT_SECRET
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_secret(plain: str) -> str:
    return _fernet().encrypt(plain.encode("utf-8")).decode("ascii")


def decrypt_secret(token: str) -> str:
    """Reverse ``encrypt_secret``.

    Raises:
        ValueError: If *token* was not produced with the current key.
    """
    try:
        return _fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken as exc:
        raise ValueError("Stored secret cannot be decrypted with the current key") from exc
