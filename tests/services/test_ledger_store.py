"""Tests for the LedgerStore implementations."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from conftest import BOB
from app.models.user import User
from app.services.exceptions import LedgerValidationError, NotFoundError, StoreFailure
from app.services.ledger_store import (
    Assignee,
    Attachment,
    ExpenseRecord,
    ResponsibilityRecord,
)
from app.utils.constants import AssigneeType, BudgetModel, ExpenseStatus


def _responsibility(name, budget):
    return ResponsibilityRecord(
        id=None,
        name=name,
        budget=Decimal(budget),
        model=BudgetModel.SHARED,
        assignee=Assignee(AssigneeType.USER, BOB.id),
        history=[f"Created {name}"],
    )


def _add(store, record):
    with store.unit_of_work():
        return store.insert_responsibility(record)


def _expense(responsibility_id, total, created_at, status=ExpenseStatus.PENDING):
    return ExpenseRecord(
        id=None,
        vendor="Cloud Services LLC",
        invoice_number="INV-1",
        date=date(2024, 7, 1),
        line_items=[],
        tax=Decimal("0"),
        total=Decimal(total),
        category="Software",
        notes="",
        status=status,
        submitted_by=BOB.id,
        responsibility_id=responsibility_id,
        created_at=created_at,
    )


def test_transfer_is_all_or_nothing(store) -> None:
    source = _add(store, _responsibility("A", "100"))
    target = _add(store, _responsibility("B", "0"))

    with pytest.raises(LedgerValidationError):
        with store.unit_of_work():
            store.transfer_budget(source.id, target.id, Decimal("150"), "out", "in")

    assert store.get_responsibility(source.id).history == ["Created A"]
    assert store.get_responsibility(target.id).history == ["Created B"]


def test_transfer_to_missing_envelope_raises_not_found(store) -> None:
    source = _add(store, _responsibility("A", "100"))

    with pytest.raises(NotFoundError):
        with store.unit_of_work():
            store.transfer_budget(source.id, 404, Decimal("10"), "out", "in")

    assert store.get_responsibility(source.id).budget == Decimal("100")


def test_failed_unit_of_work_rolls_back_every_write(store) -> None:
    first = _add(store, _responsibility("A", "100"))

    with pytest.raises(RuntimeError):
        with store.unit_of_work():
            store.update_responsibility_budget(first.id, Decimal("50"), "edited")
            _add(store, _responsibility("B", "10"))
            raise RuntimeError("boom")

    assert [r.name for r in store.list_responsibilities()] == ["A"]
    assert store.get_responsibility(first.id).budget == Decimal("100")
    assert store.get_responsibility(first.id).history == ["Created A"]


def test_negative_budget_is_refused(store) -> None:
    record = _add(store, _responsibility("A", "100"))

    with pytest.raises(LedgerValidationError):
        store.update_responsibility_budget(record.id, Decimal("-1"), "edited")


def test_consumption_excludes_rejected_expenses(store) -> None:
    envelope = _add(store, _responsibility("A", "1000"))
    now = datetime(2024, 7, 1, 9, 0, 0)
    store.insert_expense(_expense(envelope.id, "100", now))
    store.insert_expense(_expense(envelope.id, "200", now, status=ExpenseStatus.APPROVED))
    rejected = store.insert_expense(_expense(envelope.id, "400", now))
    store.update_expense_status(rejected.id, ExpenseStatus.REJECTED)

    assert store.sum_non_rejected_expenses(envelope.id) == Decimal("300")
    assert store.sum_non_rejected_expenses(999) == Decimal("0")


def test_expenses_listed_newest_first(store) -> None:
    envelope = _add(store, _responsibility("A", "1000"))
    older = store.insert_expense(_expense(envelope.id, "1", datetime(2024, 7, 1, 9, 0, 0)))
    newer = store.insert_expense(_expense(envelope.id, "2", datetime(2024, 7, 2, 9, 0, 0)))

    assert [e.id for e in store.list_expenses()] == [newer.id, older.id]


def test_soft_deleted_envelope_is_invisible(store) -> None:
    record = _add(store, _responsibility("A", "1000"))

    assert store.soft_delete_responsibility(record.id) is True
    assert store.get_responsibility(record.id) is None
    assert store.soft_delete_responsibility(record.id) is False


def test_group_members_resolve(store) -> None:
    assert store.get_group_member_ids(1) == [2, 3]
    assert store.get_group_member_ids(42) is None


def test_database_error_becomes_store_failure(sql_store, db_session) -> None:
    """Integrity errors are rolled back and surfaced as a retryable failure."""
    envelope = _add(sql_store, _responsibility("A", "100"))

    with pytest.raises(StoreFailure):
        with sql_store.unit_of_work():
            sql_store.update_responsibility_budget(envelope.id, Decimal("10"), "edited")
            db_session.add(User(name="Dup", email=BOB.email, password_hash="x", role="USER"))
            db_session.flush()

    assert sql_store.get_responsibility(envelope.id).budget == Decimal("100")


def test_attachments_are_read_back_as_a_list(store) -> None:
    envelope = _add(store, _responsibility("A", "100"))
    receipts = [
        Attachment(file_name="receipt.pdf", file_type="application/pdf", data="JVBERi0x"),
        Attachment(file_name="photo.png", file_type="image/png", data="iVBORw0K"),
    ]
    expense = _expense(envelope.id, "10", datetime(2024, 7, 1, 9, 0))
    expense.attachments = receipts

    with store.unit_of_work():
        stored = store.insert_expense(expense)

    assert store.get_expense(stored.id).attachments == receipts
