"""FinancialResponsibility model — a budget envelope and its audit trail."""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class FinancialResponsibility(Base):
    """Named budget envelope owned by exactly one user or one group.

    ``budget`` and ``history`` change only through the budget engine (manual
    edit or reallocation).  ``history`` is an append-only JSON array of
    human-readable lines; it is never rewritten in place.

    Attributes:
        id: Primary key.
        name: Envelope name, e.g. "Marketing Q3 Budget".
        budget: Current budget (non-negative, 2 decimals).
        model: "SHARED" or "DISTRIBUTED".
        assignee_type: "user" or "group".
        assignee_id: ``users.id`` or ``user_groups.id`` depending on type.
        distributed_allocations: JSON array of ``{"userId", "amount"}``;
            only populated for DISTRIBUTED envelopes assigned to a group.
        history: JSON array of audit strings.
        is_deleted: Soft-delete flag (set by the outer layer, never purged).
        created_at: Record creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "financial_responsibilities"
    __table_args__ = (
        CheckConstraint("budget >= 0", name="ck_financial_responsibilities_budget_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(300), nullable=False)
    budget = Column(Numeric(15, 2), default=0, nullable=False)
    model = Column(String(20), nullable=False, default="SHARED")  # "SHARED", "DISTRIBUTED"
    assignee_type = Column(String(10), nullable=False)  # "user", "group"
    assignee_id = Column(Integer, nullable=False)
    distributed_allocations = Column(JSON, default=list, nullable=False)
    history = Column(JSON, default=list, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    expenses = relationship(
        "Expense", back_populates="responsibility", lazy="select"
    )
