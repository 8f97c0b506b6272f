"""
Directory management: users, groups and vendors.

Plain module-level functions taking a ``Session``, like the rest of the
service layer.  Errors are raised as ``LedgerError`` subclasses so the API
renders them the same way as budget engine failures.

Nothing here is ever hard-deleted; users carry a soft-delete flag.
"""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.group import Group
from app.models.user import User
from app.models.vendor import Vendor
from app.schemas.user import GroupCreate, GroupUpdate, UserCreate, UserUpdate, VendorCreate
from app.services.exceptions import LedgerValidationError, NotFoundError
from app.utils.security import hash_password

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def _email_taken(db: Session, email: str, exclude_id: int | None = None) -> bool:
    q = db.query(User.id).filter(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


def _get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id, User.is_deleted.is_(False)).first()
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def list_users(db: Session) -> list[User]:
    return (
        db.query(User)
        .filter(User.is_deleted.is_(False))
        .order_by(User.name.asc())
        .all()
    )


def create_user(db: Session, data: UserCreate) -> User:
    email = str(data.email).lower()
    if _email_taken(db, email):
        raise LedgerValidationError(f"Email {email} is already registered", field="email")

    user = User(
        name=data.name.strip(),
        email=email,
        password_hash=hash_password(data.password),
        role=data.role,
        is_deleted=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User %s created (%s, %s)", user.id, user.email, user.role)
    return user


def update_user(db: Session, user_id: int, data: UserUpdate) -> User:
    user = _get_user(db, user_id)
    changes = data.model_dump(exclude_unset=True)

    if "email" in changes and changes["email"] is not None:
        email = str(changes["email"]).lower()
        if _email_taken(db, email, exclude_id=user_id):
            raise LedgerValidationError(f"Email {email} is already registered", field="email")
        user.email = email
    if changes.get("name"):
        user.name = changes["name"].strip()
    if changes.get("role"):
        user.role = changes["role"]
    if changes.get("password"):
        user.password_hash = hash_password(changes["password"])

    db.commit()
    db.refresh(user)
    logger.info("User %s updated", user.id)
    return user


def delete_user(db: Session, user_id: int) -> None:
    user = _get_user(db, user_id)
    user.is_deleted = True
    db.commit()
    logger.info("User %s soft-deleted", user_id)


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


def _check_members(db: Session, member_ids: list[int]) -> list[int]:
    unique_ids = list(dict.fromkeys(member_ids))
    if not unique_ids:
        return []
    found = {
        uid
        for (uid,) in db.query(User.id)
        .filter(User.id.in_(unique_ids), User.is_deleted.is_(False))
        .all()
    }
    missing = [uid for uid in unique_ids if uid not in found]
    if missing:
        raise LedgerValidationError(f"Unknown users: {missing}", field="memberIds")
    return unique_ids


def list_groups(db: Session) -> list[Group]:
    return (
        db.query(Group)
        .filter(Group.is_deleted.is_(False))
        .order_by(Group.name.asc())
        .all()
    )


def create_group(db: Session, data: GroupCreate) -> Group:
    group = Group(
        name=data.name.strip(),
        member_ids=_check_members(db, data.member_ids),
        is_deleted=False,
    )
    db.add(group)
    db.commit()
    db.refresh(group)
    logger.info("Group %s '%s' created with %d members", group.id, group.name, len(group.member_ids))
    return group


def update_group(db: Session, group_id: int, data: GroupUpdate) -> Group:
    group = db.query(Group).filter(Group.id == group_id, Group.is_deleted.is_(False)).first()
    if group is None:
        raise NotFoundError("Group", group_id)

    if data.name is not None:
        group.name = data.name.strip()
    if data.member_ids is not None:
        # Reassign so the JSON column is flagged dirty.
        group.member_ids = _check_members(db, data.member_ids)

    db.commit()
    db.refresh(group)
    logger.info("Group %s updated", group_id)
    return group


# ---------------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------------


def list_vendors(db: Session) -> list[Vendor]:
    return (
        db.query(Vendor)
        .filter(Vendor.is_deleted.is_(False))
        .order_by(Vendor.name.asc())
        .all()
    )


def _find_vendor(db: Session, name: str) -> Vendor | None:
    return db.query(Vendor).filter(func.lower(Vendor.name) == name.lower()).first()


def ensure_vendor(db: Session, name: str) -> Vendor:
    """Return the vendor named *name* (case-insensitive), creating it if unknown."""
    clean = name.strip()
    if not clean:
        raise LedgerValidationError("Vendor name is required", field="name")

    vendor = _find_vendor(db, clean)
    if vendor is not None:
        if vendor.is_deleted:
            vendor.is_deleted = False
            db.commit()
        return vendor

    vendor = Vendor(name=clean, is_deleted=False)
    db.add(vendor)
    try:
        db.commit()
    except IntegrityError:
        # Another request registered the same name since the lookup.
        db.rollback()
        logger.info("Vendor '%s' registered concurrently; reusing it", clean)
        existing = _find_vendor(db, clean)
        if existing is None:
            raise
        return existing
    db.refresh(vendor)
    logger.info("Vendor %s '%s' registered", vendor.id, vendor.name)
    return vendor


def create_vendor(db: Session, data: VendorCreate) -> Vendor:
    return ensure_vendor(db, data.name)
