"""
Pydantic v2 schemas for users, groups and vendors.
"""

from __future__ import annotations

from typing import Literal

from pydantic import EmailStr, Field

from app.schemas.common import CamelModel

RoleName = Literal["MANAGER", "USER"]


class UserCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: RoleName = "USER"


class UserUpdate(CamelModel):
    """Partial update; omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6, max_length=128)
    role: RoleName | None = None


class GroupCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    member_ids: list[int] = Field(default_factory=list)


class GroupUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    member_ids: list[int] | None = None


class GroupResponse(CamelModel):
    id: int
    name: str
    member_ids: list[int]


class VendorCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=300)


class VendorResponse(CamelModel):
    id: int
    name: str
