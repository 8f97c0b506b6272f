"""
SQLAlchemy implementation of the Ledger Store.

Wraps the request-scoped ``Session`` handed out by ``get_db``.  All budget
engine operations run inside ``unit_of_work()``, which commits once at the
end or rolls back on any exception.

Design notes
------------
- ``for_update=True`` issues ``SELECT ... FOR UPDATE`` on the envelope row.
  Submissions lock the envelope before aggregating its consumption, so two
  concurrent submissions against the same envelope serialize and the second
  one sees the first one's committed expense.  SQLite ignores the clause;
  it already serializes writers at the database level.
- JSON columns are reassigned (never mutated in place) so SQLAlchemy's
  change tracking always picks up history appends.
- ``func.coalesce(..., 0)`` guards the consumption aggregate against NULL on
  envelopes with no expenses.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.expense import Expense
from app.models.financial_responsibility import FinancialResponsibility
from app.models.group import Group
from app.models.user import User
from app.services.exceptions import LedgerError, LedgerValidationError, NotFoundError, StoreFailure
from app.services.ledger_store import (
    Allocation,
    Assignee,
    Attachment,
    ExpenseRecord,
    LedgerStore,
    LineItem,
    ResponsibilityRecord,
    UserRecord,
    check_transfer,
)
from app.utils.constants import AssigneeType, BudgetModel, ExpenseStatus, Role
from app.utils.money import to_money

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Row <-> record mapping
# ---------------------------------------------------------------------------


def _allocations_to_json(allocations: list[Allocation]) -> list[dict[str, Any]]:
    return [{"userId": a.user_id, "amount": float(a.amount)} for a in allocations]


def _allocations_from_json(raw: list[dict[str, Any]] | None) -> list[Allocation]:
    return [
        Allocation(user_id=int(item["userId"]), amount=to_money(item["amount"]))
        for item in (raw or [])
    ]


def _line_items_to_json(items: list[LineItem]) -> list[dict[str, Any]]:
    return [
        {
            "description": item.description,
            "quantity": float(item.quantity),
            "amount": float(item.amount),
        }
        for item in items
    ]


def _line_items_from_json(raw: list[dict[str, Any]] | None) -> list[LineItem]:
    return [
        LineItem(
            description=item.get("description", ""),
            quantity=Decimal(str(item.get("quantity", 1))),
            amount=to_money(item.get("amount", 0)),
        )
        for item in (raw or [])
    ]


def _attachments_to_json(attachments: list[Attachment]) -> list[dict[str, str]]:
    return [
        {"fileName": a.file_name, "fileType": a.file_type, "data": a.data}
        for a in attachments
    ]


def _attachments_from_json(raw: list[dict[str, str]] | None) -> list[Attachment]:
    return [
        Attachment(
            file_name=item.get("fileName", ""),
            file_type=item.get("fileType", ""),
            data=item.get("data", ""),
        )
        for item in (raw or [])
    ]


def _to_responsibility_record(row: FinancialResponsibility) -> ResponsibilityRecord:
    return ResponsibilityRecord(
        id=row.id,
        name=row.name,
        budget=to_money(row.budget),
        model=BudgetModel(row.model),
        assignee=Assignee(type=AssigneeType(row.assignee_type), id=row.assignee_id),
        distributed_allocations=_allocations_from_json(row.distributed_allocations),
        history=list(row.history or []),
        is_deleted=bool(row.is_deleted),
    )


def _to_expense_record(row: Expense) -> ExpenseRecord:
    return ExpenseRecord(
        id=row.id,
        vendor=row.vendor,
        invoice_number=row.invoice_number or "",
        date=row.date,
        line_items=_line_items_from_json(row.line_items),
        tax=to_money(row.tax),
        total=to_money(row.total),
        category=row.category or "",
        notes=row.notes or "",
        status=ExpenseStatus(row.status),
        submitted_by=row.submitted_by,
        responsibility_id=row.responsibility_id,
        attachments=_attachments_from_json(row.attachments),
        created_at=row.created_at,
        is_deleted=bool(row.is_deleted),
    )


def _to_user_record(row: User) -> UserRecord:
    return UserRecord(id=row.id, name=row.name, email=row.email, role=Role(row.role))


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SqlAlchemyLedgerStore(LedgerStore):
    """Ledger Store backed by a SQLAlchemy ``Session``."""

    def __init__(self, db: Session) -> None:
        self._db = db
        self._depth = 0

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        # Nested units of work join the outermost transaction.
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield
            self._db.commit()
        except LedgerError:
            self._db.rollback()
            raise
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception("SqlAlchemyLedgerStore: transaction aborted")
            raise StoreFailure() from exc
        except Exception:
            self._db.rollback()
            raise
        finally:
            self._depth = 0

    # -- internal lookups ---------------------------------------------------

    def _responsibility_row(
        self, responsibility_id: int, *, for_update: bool = False
    ) -> FinancialResponsibility | None:
        q = self._db.query(FinancialResponsibility).filter(
            FinancialResponsibility.id == responsibility_id,
            FinancialResponsibility.is_deleted.is_(False),
        )
        if for_update:
            q = q.with_for_update()
        return q.first()

    def _expense_row(self, expense_id: int, *, for_update: bool = False) -> Expense | None:
        q = self._db.query(Expense).filter(
            Expense.id == expense_id,
            Expense.is_deleted.is_(False),
        )
        if for_update:
            q = q.with_for_update()
        return q.first()

    # -- responsibilities ---------------------------------------------------

    def get_responsibility(
        self, responsibility_id: int, *, for_update: bool = False
    ) -> ResponsibilityRecord | None:
        row = self._responsibility_row(responsibility_id, for_update=for_update)
        return _to_responsibility_record(row) if row is not None else None

    def list_responsibilities(self) -> list[ResponsibilityRecord]:
        rows = (
            self._db.query(FinancialResponsibility)
            .filter(FinancialResponsibility.is_deleted.is_(False))
            .order_by(FinancialResponsibility.name.asc())
            .all()
        )
        logger.debug("list_responsibilities: %d rows", len(rows))
        return [_to_responsibility_record(r) for r in rows]

    def insert_responsibility(self, record: ResponsibilityRecord) -> ResponsibilityRecord:
        row = FinancialResponsibility(
            name=record.name,
            budget=record.budget,
            model=record.model.value,
            assignee_type=record.assignee.type.value,
            assignee_id=record.assignee.id,
            distributed_allocations=_allocations_to_json(record.distributed_allocations),
            history=list(record.history),
            is_deleted=False,
        )
        self._db.add(row)
        self._db.flush()
        return _to_responsibility_record(row)

    def save_responsibility(
        self, record: ResponsibilityRecord, append_history: str
    ) -> ResponsibilityRecord:
        row = self._responsibility_row(record.id, for_update=True)
        if row is None:
            raise NotFoundError("Responsibility", record.id)
        if record.budget < 0:
            raise LedgerValidationError("Budget cannot be negative", field="budget")

        row.name = record.name
        row.budget = record.budget
        row.model = record.model.value
        row.assignee_type = record.assignee.type.value
        row.assignee_id = record.assignee.id
        row.distributed_allocations = _allocations_to_json(record.distributed_allocations)
        row.history = [*(row.history or []), append_history]
        self._db.flush()
        return _to_responsibility_record(row)

    def update_responsibility_budget(
        self, responsibility_id: int, new_budget: Decimal, append_history: str
    ) -> ResponsibilityRecord:
        row = self._responsibility_row(responsibility_id, for_update=True)
        if row is None:
            raise NotFoundError("Responsibility", responsibility_id)
        if new_budget < 0:
            raise LedgerValidationError("Budget cannot be negative", field="budget")

        row.budget = new_budget
        row.history = [*(row.history or []), append_history]
        self._db.flush()
        return _to_responsibility_record(row)

    def transfer_budget(
        self,
        from_id: int,
        to_id: int,
        amount: Decimal,
        from_history_line: str,
        to_history_line: str,
        *,
        from_allocations: list[Allocation] | None = None,
        to_allocations: list[Allocation] | None = None,
    ) -> tuple[ResponsibilityRecord, ResponsibilityRecord]:
        # Lock in ascending id order so opposite-direction transfers between
        # the same pair cannot deadlock.
        rows = {
            rid: self._responsibility_row(rid, for_update=True)
            for rid in sorted((from_id, to_id))
        }
        source, target = rows[from_id], rows[to_id]
        check_transfer(
            _to_responsibility_record(source) if source is not None else None,
            _to_responsibility_record(target) if target is not None else None,
            from_id,
            to_id,
            amount,
        )

        source.budget = to_money(source.budget) - amount
        source.history = [*(source.history or []), from_history_line]
        target.budget = to_money(target.budget) + amount
        target.history = [*(target.history or []), to_history_line]
        if from_allocations is not None:
            source.distributed_allocations = _allocations_to_json(from_allocations)
        if to_allocations is not None:
            target.distributed_allocations = _allocations_to_json(to_allocations)
        self._db.flush()
        return _to_responsibility_record(source), _to_responsibility_record(target)

    def soft_delete_responsibility(self, responsibility_id: int) -> bool:
        row = self._responsibility_row(responsibility_id, for_update=True)
        if row is None:
            return False
        row.is_deleted = True
        self._db.flush()
        return True

    # -- expenses -----------------------------------------------------------

    def sum_non_rejected_expenses(self, responsibility_id: int) -> Decimal:
        spent = (
            self._db.query(func.coalesce(func.sum(Expense.total), 0))
            .filter(
                Expense.responsibility_id == responsibility_id,
                Expense.status != ExpenseStatus.REJECTED.value,
                Expense.is_deleted.is_(False),
            )
            .scalar()
        )
        return to_money(spent or 0)

    def insert_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        row = Expense(
            vendor=record.vendor,
            invoice_number=record.invoice_number,
            date=record.date,
            created_at=record.created_at,
            line_items=_line_items_to_json(record.line_items),
            tax=record.tax,
            total=record.total,
            notes=record.notes,
            category=record.category,
            status=record.status.value,
            submitted_by=record.submitted_by,
            responsibility_id=record.responsibility_id,
            attachments=_attachments_to_json(record.attachments),
            is_deleted=False,
        )
        self._db.add(row)
        self._db.flush()
        return _to_expense_record(row)

    def get_expense(self, expense_id: int, *, for_update: bool = False) -> ExpenseRecord | None:
        row = self._expense_row(expense_id, for_update=for_update)
        return _to_expense_record(row) if row is not None else None

    def list_expenses(self) -> list[ExpenseRecord]:
        rows = (
            self._db.query(Expense)
            .filter(Expense.is_deleted.is_(False))
            .order_by(Expense.created_at.desc(), Expense.date.desc(), Expense.id.desc())
            .all()
        )
        logger.debug("list_expenses: %d rows", len(rows))
        return [_to_expense_record(r) for r in rows]

    def update_expense_status(
        self, expense_id: int, status: ExpenseStatus
    ) -> ExpenseRecord | None:
        row = self._expense_row(expense_id, for_update=True)
        if row is None:
            return None
        row.status = status.value
        self._db.flush()
        return _to_expense_record(row)

    # -- directory ----------------------------------------------------------

    def get_user(self, user_id: int) -> UserRecord | None:
        row = (
            self._db.query(User)
            .filter(User.id == user_id, User.is_deleted.is_(False))
            .first()
        )
        return _to_user_record(row) if row is not None else None

    def list_users_by_role(self, role: Role) -> list[UserRecord]:
        rows = (
            self._db.query(User)
            .filter(User.role == role.value, User.is_deleted.is_(False))
            .order_by(User.name.asc())
            .all()
        )
        return [_to_user_record(r) for r in rows]

    def get_users(self, user_ids: list[int]) -> list[UserRecord]:
        if not user_ids:
            return []
        rows = (
            self._db.query(User)
            .filter(User.id.in_(user_ids), User.is_deleted.is_(False))
            .order_by(User.name.asc())
            .all()
        )
        return [_to_user_record(r) for r in rows]

    def get_group_member_ids(self, group_id: int) -> list[int] | None:
        group = (
            self._db.query(Group)
            .filter(Group.id == group_id, Group.is_deleted.is_(False))
            .first()
        )
        if group is None:
            return None
        return [int(uid) for uid in (group.member_ids or [])]
