"""
Authentication router for the Expense Ledger API.

Mounts under ``/api/auth`` (prefix set in ``main.py``).

Endpoints:
    POST /login   — Authenticate with email + password, receive JWT.
    POST /refresh — Exchange a valid token for a new one (extend session).
    GET  /me      — Return the currently authenticated user's profile.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.auth import TokenResponse, UserResponse
from app.services.auth_service import authenticate_user, get_current_user
from app.utils.security import create_access_token, user_claims

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


# ---------------------------------------------------------------------------
# POST /login
# ---------------------------------------------------------------------------


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Log in",
    description=(
        "Authenticates with the OAuth2 password form (``username`` is the "
        "email) and returns an access JWT valid for ``JWT_EXPIRATION_MINUTES``."
    ),
    responses={
        200: {"description": "Authenticated; the JWT is included."},
        401: {"description": "Wrong credentials or deleted account."},
    },
)
def login(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: Annotated[Session, Depends(get_db)],
) -> TokenResponse:
    """Authenticate a user and issue a JWT access token.

    Raises:
        HTTPException 401: If credentials are invalid.
    """
    user = authenticate_user(db, form_data.username, form_data.password)

    if user is None:
        logger.warning("Failed login attempt for email='%s'", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = create_access_token(data=user_claims(user))
    logger.info("Successful login for email='%s' role='%s'", user.email, user.role)
    return TokenResponse(access_token=token)


# ---------------------------------------------------------------------------
# POST /refresh
# ---------------------------------------------------------------------------


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh token",
    responses={
        200: {"description": "New token issued."},
        401: {"description": "Invalid or expired token."},
    },
)
def refresh_token(
    current_user: Annotated[User, Depends(get_current_user)],
) -> TokenResponse:
    new_token = create_access_token(data=user_claims(current_user))
    logger.info("Token refreshed for email='%s'", current_user.email)
    return TokenResponse(access_token=new_token)


# ---------------------------------------------------------------------------
# GET /me
# ---------------------------------------------------------------------------


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Authenticated user's profile",
    responses={
        200: {"description": "Profile of the authenticated user."},
        401: {"description": "Missing, invalid or expired token."},
    },
)
def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserResponse:
    return UserResponse.model_validate(current_user)
