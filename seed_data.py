"""Seed data script for the Expense Ledger database.

Populates the database with the demo directory (four users, two groups,
three vendors), three budget envelopes and two expenses.  Envelopes and
expenses go through ``BudgetEngine`` so their history lines and statuses
are exactly what the API would have produced.

The script is idempotent: it does nothing if any user already exists.

Usage (from the repository root):
    python seed_data.py

All demo accounts use the password ``password123``.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import Base, SessionLocal, engine
from app.logging_config import configure_logging
from app.models import Group, User, Vendor
from app.services.budget_engine import BudgetEngine, ExpenseDraft, ResponsibilityDraft
from app.services.ledger_store import Allocation, Assignee, LineItem
from app.services.notification_service import (
    DEFAULT_TEMPLATES,
    LoggingTransport,
    NotificationDispatcher,
    Notifier,
)
from app.services.sql_ledger_store import SqlAlchemyLedgerStore
from app.utils.constants import AssigneeType, BudgetModel, ExpenseStatus, Role
from app.utils.security import hash_password

logger = logging.getLogger("seed_data")

DEMO_PASSWORD = "password123"


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


def seed_users(db: Session) -> dict[str, User]:
    rows = [
        ("Alice", "alice@example.com", Role.MANAGER),
        ("Bob", "bob@example.com", Role.USER),
        ("Charlie", "charlie@example.com", Role.USER),
        ("Diana", "diana@example.com", Role.USER),
    ]
    password_hash = hash_password(DEMO_PASSWORD)
    users = {
        name: User(name=name, email=email, password_hash=password_hash, role=role.value)
        for name, email, role in rows
    }
    db.add_all(users.values())
    db.commit()
    logger.info("  %d users inserted.", len(users))
    return users


def seed_groups(db: Session, users: dict[str, User]) -> dict[str, Group]:
    groups = {
        "Marketing Team": Group(
            name="Marketing Team",
            member_ids=[users["Bob"].id, users["Charlie"].id],
        ),
        "Engineering Team": Group(name="Engineering Team", member_ids=[users["Diana"].id]),
    }
    db.add_all(groups.values())
    db.commit()
    logger.info("  %d groups inserted.", len(groups))
    return groups


def seed_vendors(db: Session) -> None:
    names = ["AdCreative Inc.", "Cloud Services LLC", "Office Supplies Co."]
    db.add_all(Vendor(name=name) for name in names)
    db.commit()
    logger.info("  %d vendors inserted.", len(names))


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


def seed_ledger(
    budget_engine: BudgetEngine,
    users: dict[str, User],
    groups: dict[str, Group],
) -> None:
    manager = users["Alice"]

    marketing = budget_engine.create_responsibility(
        ResponsibilityDraft(
            name="Marketing Q3 Budget",
            budget=Decimal("5000"),
            model=BudgetModel.SHARED,
            assignee=Assignee(AssigneeType.GROUP, groups["Marketing Team"].id),
        ),
        manager.name,
    )
    software = budget_engine.create_responsibility(
        ResponsibilityDraft(
            name="Diana's Software Subscription",
            budget=Decimal("500"),
            model=BudgetModel.SHARED,
            assignee=Assignee(AssigneeType.USER, users["Diana"].id),
        ),
        manager.name,
    )
    budget_engine.create_responsibility(
        ResponsibilityDraft(
            name="Engineering Projects Q3",
            budget=Decimal("10000"),
            model=BudgetModel.DISTRIBUTED,
            assignee=Assignee(AssigneeType.GROUP, groups["Engineering Team"].id),
            distributed_allocations=[Allocation(users["Diana"].id, Decimal("10000"))],
        ),
        manager.name,
    )
    logger.info("  3 financial responsibilities created.")

    campaign = budget_engine.submit_expense(
        ExpenseDraft(
            responsibility_id=marketing.id,
            vendor="AdCreative Inc.",
            invoice_number="INV-001",
            date=date(2024, 7, 15),
            line_items=[LineItem("Social Media Campaign", Decimal("1"), Decimal("1200"))],
            tax=Decimal("120"),
            total=Decimal("1320"),
            category="Marketing",
            notes="July campaign launch",
        ),
        users["Bob"].id,
    )
    budget_engine.update_expense_status(campaign.id, ExpenseStatus.APPROVED)

    budget_engine.submit_expense(
        ExpenseDraft(
            responsibility_id=software.id,
            vendor="Cloud Services LLC",
            invoice_number="INV-002",
            date=date(2024, 7, 20),
            line_items=[LineItem("Server Hosting", Decimal("1"), Decimal("350"))],
            total=Decimal("350"),
            category="Software",
        ),
        users["Diana"].id,
    )
    logger.info("  2 expenses submitted (1 approved, 1 pending).")


def seed(db: Session, notifier: Notifier | None = None) -> bool:
    """Populate an empty database.  Returns ``False`` if users already exist."""
    if db.query(User).count() > 0:
        logger.info("  [SKIP] users table already has data.")
        return False

    if notifier is None:
        notifier = NotificationDispatcher(lambda: DEFAULT_TEMPLATES, LoggingTransport())

    users = seed_users(db)
    groups = seed_groups(db, users)
    seed_vendors(db)
    seed_ledger(BudgetEngine(SqlAlchemyLedgerStore(db), notifier), users, groups)
    return True


def main() -> None:
    configure_logging(get_settings().LOG_LEVEL)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if seed(db):
            logger.info("Seed completed.")
    except Exception:
        db.rollback()
        logger.exception("Seed failed, rolled back.")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
