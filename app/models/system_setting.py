"""SystemSetting model — key/value JSON store for editable configuration."""

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.sql import func

from app.database import Base


class SystemSetting(Base):
    """Runtime-editable setting, e.g. ``key="templates"`` holds the
    notification template overrides keyed by trigger and language.
    """

    __tablename__ = "system_setting"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
