"""Vendor model — supplier names offered by the expense form."""

from sqlalchemy import Boolean, Column, Integer, String

from app.database import Base


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(300), unique=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
