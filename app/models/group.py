"""Group model — named set of users an envelope can be assigned to."""

from sqlalchemy import JSON, Boolean, Column, Integer, String

from app.database import Base


class Group(Base):
    """Group of users used to resolve a group assignee to recipients.

    Attributes:
        id: Primary key.
        name: Display name, e.g. "Marketing Team".
        member_ids: JSON array of ``users.id`` values.
        is_deleted: Soft-delete flag.
    """

    __tablename__ = "user_groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    member_ids = Column(JSON, default=list, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
