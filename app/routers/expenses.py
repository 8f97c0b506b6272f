"""
Expenses router.

Mounts under ``/api/expenses`` (prefix set in ``main.py``).

Endpoints
---------
GET  /              — List expenses, newest submission first.
POST /              — Submit an expense against an envelope.
GET  /{id}          — One expense.
PUT  /{id}/status   — Approve or reject a PENDING expense (MANAGER).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import actor_from, get_budget_engine
from app.models.user import User
from app.schemas.common import ErrorResponse
from app.schemas.expense import ExpenseCreate, ExpenseResponse, ExpenseStatusUpdate
from app.services import user_service
from app.services.auth_service import get_current_user, require_role
from app.services.budget_engine import BudgetEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Expenses"])


@router.get("", response_model=list[ExpenseResponse], summary="List expenses")
def list_expenses(
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> list[ExpenseResponse]:
    logger.debug("GET /expenses")
    return [ExpenseResponse.from_record(e) for e in engine.list_expenses()]


@router.post(
    "",
    response_model=ExpenseResponse,
    summary="Submit an expense",
    description=(
        "Creates a PENDING expense.  Regular users cannot push an envelope's "
        "consumption past its budget; managers can."
    ),
    responses={
        403: {"model": ErrorResponse, "description": "Budget exceeded (carries attempted, currentSpent, budget)."},
        404: {"model": ErrorResponse, "description": "Responsibility not found."},
    },
)
def submit_expense(
    body: ExpenseCreate,
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> ExpenseResponse:
    logger.info(
        "POST /expenses responsibility=%d total=%s by user=%s",
        body.responsibility_id, body.total, current_user.id,
    )
    expense = engine.submit_expense(body.to_draft(), current_user.id)
    try:
        user_service.ensure_vendor(db, expense.vendor)
    except SQLAlchemyError:
        # The expense is already committed; a registry miss must not fail it.
        db.rollback()
        logger.exception("Could not register vendor '%s'", expense.vendor)
    return ExpenseResponse.from_record(expense)


@router.get(
    "/{expense_id}",
    response_model=ExpenseResponse,
    summary="Get an expense",
    responses={404: {"model": ErrorResponse}},
)
def get_expense(
    expense_id: Annotated[int, Path(ge=1)],
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> ExpenseResponse:
    return ExpenseResponse.from_record(engine.get_expense(expense_id))


@router.put(
    "/{expense_id}/status",
    response_model=ExpenseResponse,
    summary="Approve or reject an expense",
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Expense already approved or rejected."},
    },
)
def update_expense_status(
    body: ExpenseStatusUpdate,
    expense_id: Annotated[int, Path(ge=1)],
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> ExpenseResponse:
    logger.info("PUT /expenses/%d/status %s by user=%s", expense_id, body.status, current_user.id)
    expense = engine.update_expense_status(
        expense_id, body.status, actor=actor_from(current_user)
    )
    return ExpenseResponse.from_record(expense)
