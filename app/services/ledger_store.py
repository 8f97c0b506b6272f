"""
Ledger Store contract and the in-memory implementation.

The budget engine talks to storage only through ``LedgerStore``, so the same
engine runs against ``InMemoryLedgerStore`` (tests, demos) and
``SqlAlchemyLedgerStore`` (``app/services/sql_ledger_store.py``).

Records crossing this boundary are plain dataclasses with ``Decimal`` money;
stores hand out copies, never their internal state.

Design notes
------------
- Every engine operation runs inside ``unit_of_work()``.  A unit of work
  either commits all of its writes or none of them; any exception raised
  inside it rolls back and propagates.
- ``get_responsibility(..., for_update=True)`` takes the row lock the
  engine relies on to serialize submissions and reallocations that touch
  the same envelope.  The in-memory store gets the same guarantee from one
  re-entrant lock held for the whole unit of work.
- ``transfer_budget`` validates both sides before touching either.
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal

from app.services.exceptions import LedgerValidationError, NotFoundError
from app.utils.constants import AssigneeType, BudgetModel, ExpenseStatus, Role

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Assignee:
    """Owner of an envelope: exactly one user or one group."""

    type: AssigneeType
    id: int


@dataclass(frozen=True)
class Allocation:
    user_id: int
    amount: Decimal


@dataclass
class ResponsibilityRecord:
    id: int | None
    name: str
    budget: Decimal
    model: BudgetModel
    assignee: Assignee
    distributed_allocations: list[Allocation] = field(default_factory=list)
    history: list[str] = field(default_factory=list)
    is_deleted: bool = False


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: Decimal
    amount: Decimal


@dataclass(frozen=True)
class Attachment:
    file_name: str
    file_type: str
    data: str


@dataclass
class ExpenseRecord:
    id: int | None
    vendor: str
    invoice_number: str
    date: date
    line_items: list[LineItem]
    tax: Decimal
    total: Decimal
    category: str
    notes: str
    status: ExpenseStatus
    submitted_by: int
    responsibility_id: int
    attachments: list[Attachment] = field(default_factory=list)
    created_at: datetime | None = None
    is_deleted: bool = False


@dataclass(frozen=True)
class UserRecord:
    id: int
    name: str
    email: str
    role: Role

    @property
    def is_manager(self) -> bool:
        return self.role is Role.MANAGER


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class LedgerStore(ABC):
    """Storage operations the budget engine depends on."""

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager[None]:
        """Context manager making everything inside it atomic."""

    # -- responsibilities ---------------------------------------------------

    @abstractmethod
    def get_responsibility(
        self, responsibility_id: int, *, for_update: bool = False
    ) -> ResponsibilityRecord | None: ...

    @abstractmethod
    def list_responsibilities(self) -> list[ResponsibilityRecord]:
        """Non-deleted envelopes ordered by name."""

    @abstractmethod
    def insert_responsibility(self, record: ResponsibilityRecord) -> ResponsibilityRecord:
        """Persist a new envelope and return it with its assigned id."""

    @abstractmethod
    def save_responsibility(
        self, record: ResponsibilityRecord, append_history: str
    ) -> ResponsibilityRecord:
        """Overwrite name/budget/model/assignee/allocations and append one history line."""

    @abstractmethod
    def update_responsibility_budget(
        self, responsibility_id: int, new_budget: Decimal, append_history: str
    ) -> ResponsibilityRecord: ...

    @abstractmethod
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
        """Move *amount* between two envelopes, all-or-nothing.

        When given, ``from_allocations``/``to_allocations`` replace the
        per-member split of that side in the same write.
        """

    @abstractmethod
    def soft_delete_responsibility(self, responsibility_id: int) -> bool: ...

    # -- expenses -----------------------------------------------------------

    @abstractmethod
    def sum_non_rejected_expenses(self, responsibility_id: int) -> Decimal:
        """Consumption: sum of ``total`` over PENDING + APPROVED, non-deleted expenses."""

    @abstractmethod
    def insert_expense(self, record: ExpenseRecord) -> ExpenseRecord: ...

    @abstractmethod
    def get_expense(self, expense_id: int, *, for_update: bool = False) -> ExpenseRecord | None: ...

    @abstractmethod
    def list_expenses(self) -> list[ExpenseRecord]:
        """Non-deleted expenses, newest submission first."""

    @abstractmethod
    def update_expense_status(
        self, expense_id: int, status: ExpenseStatus
    ) -> ExpenseRecord | None: ...

    # -- directory (read-only for the engine) --------------------------------

    @abstractmethod
    def get_user(self, user_id: int) -> UserRecord | None: ...

    @abstractmethod
    def list_users_by_role(self, role: Role) -> list[UserRecord]: ...

    @abstractmethod
    def get_users(self, user_ids: list[int]) -> list[UserRecord]: ...

    @abstractmethod
    def get_group_member_ids(self, group_id: int) -> list[int] | None:
        """Member ids of a group, or ``None`` if the group does not exist."""


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def check_transfer(
    source: ResponsibilityRecord | None,
    target: ResponsibilityRecord | None,
    from_id: int,
    to_id: int,
    amount: Decimal,
) -> None:
    """Validate both sides of a transfer before any write happens."""
    if source is None:
        raise NotFoundError("Responsibility", from_id)
    if target is None:
        raise NotFoundError("Responsibility", to_id)
    if amount <= 0:
        raise LedgerValidationError("Transfer amount must be positive", field="amount")
    if source.budget < amount:
        raise LedgerValidationError(
            f"Responsibility {from_id} has {source.budget} available, cannot move {amount}",
            field="amount",
        )


def expense_sort_key(record: ExpenseRecord) -> tuple[datetime, date]:
    """Newest first: ``created_at`` when present, then the business date."""
    created = record.created_at or datetime.combine(record.date, datetime.min.time())
    return created, record.date


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryLedgerStore(LedgerStore):
    """Process-local store guarded by one re-entrant lock.

    A unit of work holds the lock for its whole duration, which gives
    serializable isolation.  On error the state captured when the outermost
    unit of work began is restored.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self._responsibilities: dict[int, ResponsibilityRecord] = {}
        self._expenses: dict[int, ExpenseRecord] = {}
        self._users: dict[int, UserRecord] = {}
        self._groups: dict[int, list[int]] = {}
        self._next_responsibility_id = 1
        self._next_expense_id = 1

    # -- directory seeding --------------------------------------------------

    def add_user(self, user: UserRecord) -> UserRecord:
        with self._lock:
            self._users[user.id] = user
        return user

    def add_group(self, group_id: int, member_ids: list[int]) -> None:
        with self._lock:
            self._groups[group_id] = list(member_ids)

    # -- unit of work -------------------------------------------------------

    def _snapshot(self) -> tuple:
        return (
            copy.deepcopy(self._responsibilities),
            copy.deepcopy(self._expenses),
            self._next_responsibility_id,
            self._next_expense_id,
        )

    def _restore(self, snapshot: tuple) -> None:
        (
            self._responsibilities,
            self._expenses,
            self._next_responsibility_id,
            self._next_expense_id,
        ) = snapshot

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            snapshot = self._snapshot() if outermost else None
            self._depth += 1
            try:
                yield
            except Exception:
                if outermost:
                    self._restore(snapshot)
                    logger.debug("InMemoryLedgerStore: unit of work rolled back")
                raise
            finally:
                self._depth -= 1

    # -- responsibilities ---------------------------------------------------

    def get_responsibility(
        self, responsibility_id: int, *, for_update: bool = False
    ) -> ResponsibilityRecord | None:
        with self._lock:
            record = self._responsibilities.get(responsibility_id)
            if record is None or record.is_deleted:
                return None
            return copy.deepcopy(record)

    def list_responsibilities(self) -> list[ResponsibilityRecord]:
        with self._lock:
            records = [r for r in self._responsibilities.values() if not r.is_deleted]
            return copy.deepcopy(sorted(records, key=lambda r: r.name.lower()))

    def insert_responsibility(self, record: ResponsibilityRecord) -> ResponsibilityRecord:
        with self._lock:
            stored = replace(
                copy.deepcopy(record),
                id=self._next_responsibility_id,
                history=list(record.history),
            )
            self._next_responsibility_id += 1
            self._responsibilities[stored.id] = stored
            return copy.deepcopy(stored)

    def save_responsibility(
        self, record: ResponsibilityRecord, append_history: str
    ) -> ResponsibilityRecord:
        with self._lock:
            current = self._responsibilities.get(record.id)
            if current is None or current.is_deleted:
                raise NotFoundError("Responsibility", record.id)
            if record.budget < 0:
                raise LedgerValidationError("Budget cannot be negative", field="budget")
            current.name = record.name
            current.budget = record.budget
            current.model = record.model
            current.assignee = record.assignee
            current.distributed_allocations = list(record.distributed_allocations)
            current.history = [*current.history, append_history]
            return copy.deepcopy(current)

    def update_responsibility_budget(
        self, responsibility_id: int, new_budget: Decimal, append_history: str
    ) -> ResponsibilityRecord:
        with self._lock:
            current = self._responsibilities.get(responsibility_id)
            if current is None or current.is_deleted:
                raise NotFoundError("Responsibility", responsibility_id)
            if new_budget < 0:
                raise LedgerValidationError("Budget cannot be negative", field="budget")
            current.budget = new_budget
            current.history = [*current.history, append_history]
            return copy.deepcopy(current)

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
        with self._lock:
            source = self._responsibilities.get(from_id)
            target = self._responsibilities.get(to_id)
            if source is not None and source.is_deleted:
                source = None
            if target is not None and target.is_deleted:
                target = None
            check_transfer(source, target, from_id, to_id, amount)

            source.budget -= amount
            source.history = [*source.history, from_history_line]
            target.budget += amount
            target.history = [*target.history, to_history_line]
            if from_allocations is not None:
                source.distributed_allocations = list(from_allocations)
            if to_allocations is not None:
                target.distributed_allocations = list(to_allocations)
            return copy.deepcopy(source), copy.deepcopy(target)

    def soft_delete_responsibility(self, responsibility_id: int) -> bool:
        with self._lock:
            current = self._responsibilities.get(responsibility_id)
            if current is None or current.is_deleted:
                return False
            current.is_deleted = True
            return True

    # -- expenses -----------------------------------------------------------

    def sum_non_rejected_expenses(self, responsibility_id: int) -> Decimal:
        with self._lock:
            return sum(
                (
                    e.total
                    for e in self._expenses.values()
                    if e.responsibility_id == responsibility_id
                    and e.status is not ExpenseStatus.REJECTED
                    and not e.is_deleted
                ),
                Decimal("0.00"),
            )

    def insert_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        with self._lock:
            stored = replace(copy.deepcopy(record), id=self._next_expense_id)
            self._next_expense_id += 1
            self._expenses[stored.id] = stored
            return copy.deepcopy(stored)

    def get_expense(self, expense_id: int, *, for_update: bool = False) -> ExpenseRecord | None:
        with self._lock:
            record = self._expenses.get(expense_id)
            if record is None or record.is_deleted:
                return None
            return copy.deepcopy(record)

    def list_expenses(self) -> list[ExpenseRecord]:
        with self._lock:
            records = [e for e in self._expenses.values() if not e.is_deleted]
            return copy.deepcopy(sorted(records, key=expense_sort_key, reverse=True))

    def update_expense_status(
        self, expense_id: int, status: ExpenseStatus
    ) -> ExpenseRecord | None:
        with self._lock:
            record = self._expenses.get(expense_id)
            if record is None or record.is_deleted:
                return None
            record.status = status
            return copy.deepcopy(record)

    # -- directory ----------------------------------------------------------

    def get_user(self, user_id: int) -> UserRecord | None:
        with self._lock:
            return self._users.get(user_id)

    def list_users_by_role(self, role: Role) -> list[UserRecord]:
        with self._lock:
            return sorted(
                (u for u in self._users.values() if u.role is role),
                key=lambda u: u.name.lower(),
            )

    def get_users(self, user_ids: list[int]) -> list[UserRecord]:
        with self._lock:
            return [self._users[uid] for uid in user_ids if uid in self._users]

    def get_group_member_ids(self, group_id: int) -> list[int] | None:
        with self._lock:
            members = self._groups.get(group_id)
            return list(members) if members is not None else None
