"""User model — application user with role-based access control."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from app.database import Base


class User(Base):
    """System user whose role gates approval and budget actions.

    Roles:
        - MANAGER: Approves/rejects expenses, manages envelopes, reallocates
          budget and may submit expenses above an envelope's remaining balance.
        - USER: Submits expenses, hard-capped at the remaining balance.

    Attributes:
        id: Primary key.
        name: Display name, also used as the actor in envelope history lines.
        email: Unique login and notification address.
        password_hash: Bcrypt-hashed password (never store plain text).
        role: ``MANAGER`` or ``USER``.
        is_deleted: Soft-delete flag; deleted users cannot log in.
        created_at: Record creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200), unique=True, nullable=False)
    password_hash = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default="USER")  # "MANAGER", "USER"
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
