"""
Directory router: users, groups and vendors.

Mounts under ``/api`` (prefix set in ``main.py``).

Reads require any authenticated user; writes require the ``MANAGER`` role,
except vendor registration which every user can do from the expense form.

Endpoints
---------
GET    /users          — List active users.
POST   /users          — Create a user (MANAGER).
PUT    /users/{id}     — Update a user (MANAGER).
DELETE /users/{id}     — Soft-delete a user (MANAGER).
GET    /groups         — List groups.
POST   /groups         — Create a group (MANAGER).
PUT    /groups/{id}    — Rename a group or replace its members (MANAGER).
GET    /vendors        — List vendors.
POST   /vendors        — Register a vendor (idempotent, case-insensitive).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.auth import UserResponse
from app.schemas.common import MessageResponse
from app.schemas.user import (
    GroupCreate,
    GroupResponse,
    GroupUpdate,
    UserCreate,
    UserUpdate,
    VendorCreate,
    VendorResponse,
)
from app.services import user_service
from app.services.auth_service import get_current_user, require_role

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse], summary="List users")
def list_users(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> list[UserResponse]:
    return [UserResponse.model_validate(u) for u in user_service.list_users(db)]


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
    responses={422: {"description": "Invalid body or email already registered."}},
)
def create_user(
    body: UserCreate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> UserResponse:
    logger.info("POST /users email=%s by user=%s", body.email, current_user.id)
    return UserResponse.model_validate(user_service.create_user(db, body))


@router.put("/users/{user_id}", response_model=UserResponse, summary="Update a user")
def update_user(
    body: UserUpdate,
    user_id: Annotated[int, Path(ge=1)],
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> UserResponse:
    logger.info("PUT /users/%d by user=%s", user_id, current_user.id)
    return UserResponse.model_validate(user_service.update_user(db, user_id, body))


@router.delete("/users/{user_id}", response_model=MessageResponse, summary="Delete a user")
def delete_user(
    user_id: Annotated[int, Path(ge=1)],
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> MessageResponse:
    logger.info("DELETE /users/%d by user=%s", user_id, current_user.id)
    user_service.delete_user(db, user_id)
    return MessageResponse(message="User deleted")


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


@router.get("/groups", response_model=list[GroupResponse], summary="List groups")
def list_groups(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> list[GroupResponse]:
    return [GroupResponse.model_validate(g) for g in user_service.list_groups(db)]


@router.post(
    "/groups",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a group",
)
def create_group(
    body: GroupCreate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> GroupResponse:
    logger.info("POST /groups name=%s by user=%s", body.name, current_user.id)
    return GroupResponse.model_validate(user_service.create_group(db, body))


@router.put("/groups/{group_id}", response_model=GroupResponse, summary="Update a group")
def update_group(
    body: GroupUpdate,
    group_id: Annotated[int, Path(ge=1)],
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> GroupResponse:
    logger.info("PUT /groups/%d by user=%s", group_id, current_user.id)
    return GroupResponse.model_validate(user_service.update_group(db, group_id, body))


# ---------------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------------


@router.get("/vendors", response_model=list[VendorResponse], summary="List vendors")
def list_vendors(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> list[VendorResponse]:
    return [VendorResponse.model_validate(v) for v in user_service.list_vendors(db)]


@router.post("/vendors", response_model=VendorResponse, summary="Register a vendor")
def create_vendor(
    body: VendorCreate,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> VendorResponse:
    return VendorResponse.model_validate(user_service.create_vendor(db, body))
