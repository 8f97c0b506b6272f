"""
FastAPI dependencies wiring the budget engine into request handlers.

One ``BudgetEngine`` is built per request, on top of the request-scoped
session from ``get_db``.  Tests override ``get_notifier`` (or
``get_budget_engine`` as a whole) through ``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.models.user import User
from app.services.budget_engine import BudgetEngine
from app.services.ledger_store import LedgerStore, UserRecord
from app.services.notification_service import BackgroundNotifier, Notifier, get_dispatcher
from app.services.sql_ledger_store import SqlAlchemyLedgerStore
from app.utils.constants import Role


def get_ledger_store(db: Annotated[Session, Depends(get_db)]) -> LedgerStore:
    return SqlAlchemyLedgerStore(db)


def get_notifier(background_tasks: BackgroundTasks) -> Notifier:
    return BackgroundNotifier(background_tasks, get_dispatcher)


def get_budget_engine(
    store: Annotated[LedgerStore, Depends(get_ledger_store)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> BudgetEngine:
    settings = get_settings()
    return BudgetEngine(
        store,
        notifier,
        tolerance=settings.ALLOCATION_TOLERANCE,
        warning_threshold=settings.BUDGET_WARNING_THRESHOLD,
    )


def actor_from(user: User) -> UserRecord:
    """Engine-side view of the authenticated user."""
    return UserRecord(id=user.id, name=user.name, email=user.email, role=Role(user.role))
