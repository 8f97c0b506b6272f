"""
Authentication business logic for the Expense Ledger API.

Provides:
- ``authenticate_user`` — credential verification against the DB.
- ``get_current_user`` — FastAPI dependency that extracts and validates
  the Bearer JWT from the ``Authorization`` header.
- ``require_role`` — dependency factory that enforces role-based access
  control on top of ``get_current_user``.
- ``ensure_default_manager`` — startup hook guaranteeing one manager account.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.models.user import User
from app.utils.constants import Role
from app.utils.security import hash_password, verify_password, verify_token

logger = logging.getLogger(__name__)

# ``tokenUrl`` must match the login endpoint path (relative to root).
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ---------------------------------------------------------------------------
# Core authentication function
# ---------------------------------------------------------------------------


def authenticate_user(db: Session, email: str, password: str) -> User | None:
    """Verify email/password credentials against the database.

    Returns ``None`` (instead of raising) so that callers can control the
    HTTP error response.

    Args:
        db: An active SQLAlchemy session (injected via ``get_db``).
        email: Login email, matched case-insensitively.
        password: The plain-text password submitted by the client.

    Returns:
        The ``User`` ORM instance on success, or ``None`` on failure
        (unknown or deleted user, or wrong password).
    """
    user: User | None = (
        db.query(User)
        .filter(func.lower(User.email) == email.strip().lower(), User.is_deleted.is_(False))
        .first()
    )

    if user is None:
        logger.debug("authenticate_user: unknown or deleted user '%s'", email)
        return None

    if not verify_password(password, user.password_hash):
        logger.debug("authenticate_user: wrong password for '%s'", email)
        return None

    return user


# ---------------------------------------------------------------------------
# FastAPI dependency: current authenticated user
# ---------------------------------------------------------------------------


def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """Resolve the caller's identity from the Bearer JWT.

    Raises:
        HTTPException 401: If the token is missing, invalid, or expired,
                           or if the referenced user no longer exists.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = verify_token(token)
    except ValueError:
        raise credentials_exception

    # ``sub`` carries the user's primary key as a string.
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise credentials_exception

    user: User | None = (
        db.query(User)
        .filter(User.id == user_id, User.is_deleted.is_(False))
        .first()
    )
    if user is None:
        raise credentials_exception

    return user


# ---------------------------------------------------------------------------
# Role enforcement dependency factory
# ---------------------------------------------------------------------------


def require_role(*roles: str):
    """Return a FastAPI dependency that restricts access to the given roles.

    .. code-block:: python

        @router.put("/{id}/status")
        def decide(current_user: User = Depends(require_role("MANAGER"))):
            ...

    Raises:
        HTTPException 403: If the authenticated user's role is not in *roles*.
    """
    allowed = frozenset(roles)

    def _check_role(
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        if current_user.role not in allowed:
            logger.warning(
                "Access denied: user=%s role=%s required=%s",
                current_user.id, current_user.role, sorted(allowed),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Requires one of the roles: {sorted(allowed)}",
            )
        return current_user

    return _check_role


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def ensure_default_manager(db: Session) -> User:
    """Create the configured default manager account if it does not exist."""
    settings = get_settings()
    user = (
        db.query(User)
        .filter(func.lower(User.email) == settings.DEFAULT_ADMIN_EMAIL.lower())
        .first()
    )
    if user is not None:
        return user

    user = User(
        name=settings.DEFAULT_ADMIN_NAME,
        email=settings.DEFAULT_ADMIN_EMAIL,
        password_hash=hash_password(settings.DEFAULT_ADMIN_PASSWORD),
        role=Role.MANAGER.value,
        is_deleted=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Default manager account created: %s", user.email)
    return user
