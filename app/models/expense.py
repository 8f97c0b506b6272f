"""Expense model — a submitted invoice drawn against one envelope."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Expense(Base):
    """Invoice submitted by a user against a financial responsibility.

    Every non-rejected, non-deleted expense counts towards its envelope's
    consumption.  ``submitted_by`` and ``responsibility_id`` never change
    after insert; ``status`` moves once from PENDING to APPROVED or REJECTED.

    Attributes:
        id: Primary key.
        vendor: Supplier name as printed on the invoice.
        invoice_number: Supplier's invoice reference.
        date: Business date of the invoice.
        created_at: Submission timestamp assigned by the server.
        line_items: JSON array of ``{"description", "quantity", "amount"}``.
        tax: Tax amount (>= 0).
        total: Invoice total used for budget consumption (>= 0).
        notes: Free-form notes.
        category: Expense category tag.
        status: "PENDING", "APPROVED" or "REJECTED".
        submitted_by: FK to ``users``.
        responsibility_id: FK to ``financial_responsibilities``.
        attachments: JSON array of ``{"fileName", "fileType", "data"}``
            where ``data`` is the base64 document payload.
        is_deleted: Soft-delete flag; deleted expenses are not consumption.
    """

    __tablename__ = "expenses"
    __table_args__ = (
        Index("ix_expenses_responsibility_status", "responsibility_id", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor = Column(String(300), nullable=False)
    invoice_number = Column(String(100), nullable=True)
    date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    line_items = Column(JSON, default=list, nullable=False)
    tax = Column(Numeric(15, 2), default=0, nullable=False)
    total = Column(Numeric(15, 2), default=0, nullable=False)
    notes = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="PENDING")
    submitted_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    responsibility_id = Column(
        Integer, ForeignKey("financial_responsibilities.id"), nullable=False
    )
    attachments = Column(JSON, default=list, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)

    # Relationships
    responsibility = relationship(
        "FinancialResponsibility", back_populates="expenses", lazy="select"
    )
    submitter = relationship("User", lazy="select")
