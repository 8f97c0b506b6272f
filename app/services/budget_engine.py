"""
Budget engine: the rules for spending, editing and moving envelope budgets.

Every operation runs inside one ``LedgerStore.unit_of_work()``, so a
submission's consumption check and its insert (or a reallocation's two
writes) either commit together or not at all.  Notifications go out only
after the unit of work has committed, through a ``Notifier`` that never
raises into the caller.

Design notes
------------
- Consumption = sum of ``total`` over PENDING + APPROVED expenses of an
  envelope.  Rejecting an expense therefore frees its amount without any
  compensating write.
- Submissions lock the envelope row before aggregating consumption, so two
  submissions racing near the cap serialize instead of jointly overshooting.
- Reallocation reads both envelopes in ascending id order, the same order
  ``transfer_budget`` locks them in.
- A reallocation touching a DISTRIBUTED group envelope rescales its
  per-member split in the same write, so the split keeps adding up to the
  budget.  Edits only re-check the split when budget, model, assignee or
  allocations are part of the change.
- Business failures of a reallocation come back as a ``ReallocationResult``;
  everything else is raised as a ``LedgerError`` subclass.
- Role checks: when an ``actor`` is passed, status changes, reallocations
  and deletes are refused for non-managers.  The HTTP layer checks the role
  as well.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from app.services.audit_history import HistoryEntry
from app.services.exceptions import (
    BudgetExceededError,
    InvalidTransitionError,
    LedgerValidationError,
    NotFoundError,
    PermissionDeniedError,
)
from app.services.ledger_store import (
    Allocation,
    Assignee,
    Attachment,
    ExpenseRecord,
    LedgerStore,
    LineItem,
    ResponsibilityRecord,
    UserRecord,
)
from app.services.notification_service import Notifier
from app.utils.constants import (
    ALLOCATION_TOLERANCE,
    BUDGET_WARNING_THRESHOLD,
    DECISION_STATUSES,
    AssigneeType,
    BudgetModel,
    ExpenseStatus,
    NotificationTrigger,
    Role,
)
from app.utils.money import format_money, safe_pct, to_money

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Inputs and results
# ---------------------------------------------------------------------------


@dataclass
class ExpenseDraft:
    """Expense as submitted; ``status`` and ``created_at`` are assigned here."""

    responsibility_id: int
    vendor: str
    total: Decimal
    date: date
    invoice_number: str = ""
    line_items: list[LineItem] = field(default_factory=list)
    tax: Decimal = Decimal("0.00")
    category: str = ""
    notes: str = ""
    attachments: list[Attachment] = field(default_factory=list)


@dataclass
class ResponsibilityDraft:
    name: str
    budget: Decimal
    model: BudgetModel
    assignee: Assignee
    distributed_allocations: list[Allocation] = field(default_factory=list)


@dataclass
class ResponsibilityChanges:
    """Partial update; ``None`` leaves the field as it is."""

    name: str | None = None
    budget: Decimal | None = None
    model: BudgetModel | None = None
    assignee: Assignee | None = None
    distributed_allocations: list[Allocation] | None = None


class ReallocationFailure(str, Enum):
    SAME_ENVELOPE = "SAME_ENVELOPE"
    NON_POSITIVE_AMOUNT = "NON_POSITIVE_AMOUNT"
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"


@dataclass(frozen=True)
class ReallocationResult:
    success: bool
    updated: tuple[ResponsibilityRecord, ...] = ()
    reason: ReallocationFailure | None = None
    message: str = ""

    @classmethod
    def failed(cls, reason: ReallocationFailure, message: str) -> ReallocationResult:
        return cls(success=False, reason=reason, message=message)


@dataclass(frozen=True)
class EnvelopeSummary:
    responsibility_id: int
    name: str
    budget: Decimal
    spent: Decimal
    remaining: Decimal
    usage_percentage: float


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class BudgetEngine:
    """Budget ledger operations over an injected store and notifier.

    Args:
        store: Any ``LedgerStore`` implementation.
        notifier: Receives notifications after each committed operation.
        tolerance: Allowed gap between the allocation sum and the budget of
            a DISTRIBUTED group envelope.
        warning_threshold: Usage percentage that triggers
            ``BUDGET_THRESHOLD`` when a submission crosses it.
        clock: Source of timestamps for ``created_at`` and history lines.
    """

    def __init__(
        self,
        store: LedgerStore,
        notifier: Notifier,
        *,
        tolerance: Decimal = ALLOCATION_TOLERANCE,
        warning_threshold: Decimal = BUDGET_WARNING_THRESHOLD,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._tolerance = Decimal(tolerance)
        self._warning_threshold = Decimal(warning_threshold)
        self._clock = clock

    # -----------------------------------------------------------------------
    # Expenses
    # -----------------------------------------------------------------------

    def submit_expense(self, draft: ExpenseDraft, submitter_id: int) -> ExpenseRecord:
        """Record a new PENDING expense against its envelope.

        Non-managers are capped at the envelope's remaining balance; a
        submission landing exactly on the budget is accepted.  Managers may
        go over.

        Raises:
            NotFoundError: Unknown submitter or envelope.
            BudgetExceededError: A non-manager would push consumption past
                the budget.  Nothing is written.
            LedgerValidationError: Negative total or tax.
        """
        total = to_money(draft.total)
        tax = to_money(draft.tax)
        if total < 0:
            raise LedgerValidationError("Total cannot be negative", field="total")
        if tax < 0:
            raise LedgerValidationError("Tax cannot be negative", field="tax")
        if not draft.vendor.strip():
            raise LedgerValidationError("Vendor is required", field="vendor")

        with self._store.unit_of_work():
            submitter = self._store.get_user(submitter_id)
            if submitter is None:
                raise NotFoundError("User", submitter_id)

            envelope = self._store.get_responsibility(draft.responsibility_id, for_update=True)
            if envelope is None:
                raise NotFoundError("Responsibility", draft.responsibility_id)

            current_spent = self._store.sum_non_rejected_expenses(envelope.id)
            projected = current_spent + total

            if projected > envelope.budget and not submitter.is_manager:
                logger.warning(
                    "Budget exceeded: user=%s responsibility=%s attempted=%s spent=%s budget=%s",
                    submitter.id, envelope.id, total, current_spent, envelope.budget,
                )
                raise BudgetExceededError(total, current_spent, envelope.budget)

            expense = self._store.insert_expense(
                ExpenseRecord(
                    id=None,
                    vendor=draft.vendor.strip(),
                    invoice_number=draft.invoice_number,
                    date=draft.date,
                    line_items=list(draft.line_items),
                    tax=tax,
                    total=total,
                    category=draft.category,
                    notes=draft.notes,
                    status=ExpenseStatus.PENDING,
                    submitted_by=submitter.id,
                    responsibility_id=envelope.id,
                    attachments=list(draft.attachments),
                    created_at=self._clock(),
                )
            )

        logger.info(
            "Expense %s submitted: user=%s responsibility=%s total=%s",
            expense.id, submitter.id, envelope.id, total,
        )

        managers = [m.email for m in self._store.list_users_by_role(Role.MANAGER)]
        self._notify(
            NotificationTrigger.NEW_INVOICE,
            {
                "vendor": expense.vendor,
                "total": format_money(total),
                "userName": submitter.name,
                "submitterName": submitter.name,
            },
            managers,
        )
        if self._crosses_threshold(envelope.budget, current_spent, projected):
            self._notify(
                NotificationTrigger.BUDGET_THRESHOLD,
                {
                    "responsibilityName": envelope.name,
                    "usagePercentage": safe_pct(projected, envelope.budget),
                },
                managers,
            )
        return expense

    def update_expense_status(
        self,
        expense_id: int,
        status: ExpenseStatus | str,
        *,
        actor: UserRecord | None = None,
    ) -> ExpenseRecord:
        """Move a PENDING expense to APPROVED or REJECTED.

        Raises:
            LedgerValidationError: *status* is not a decision status.
            PermissionDeniedError: *actor* is given and is not a manager.
            NotFoundError: Unknown expense.
            InvalidTransitionError: The expense was already decided.
        """
        try:
            status = ExpenseStatus(status)
        except ValueError as exc:
            raise LedgerValidationError(f"Unknown status {status!r}", field="status") from exc
        if status not in DECISION_STATUSES:
            raise LedgerValidationError(
                "Status must be APPROVED or REJECTED", field="status"
            )
        if actor is not None and not actor.is_manager:
            raise PermissionDeniedError("change expense status", actor.role.value)

        with self._store.unit_of_work():
            expense = self._store.get_expense(expense_id, for_update=True)
            if expense is None:
                raise NotFoundError("Expense", expense_id)
            if expense.status is not ExpenseStatus.PENDING:
                raise InvalidTransitionError(expense.status.value, status.value)
            updated = self._store.update_expense_status(expense_id, status)

        logger.info(
            "Expense %s %s by %s", expense_id, status.value,
            actor.name if actor is not None else "<unknown>",
        )

        submitter = self._store.get_user(updated.submitted_by)
        trigger = (
            NotificationTrigger.EXPENSE_APPROVED
            if status is ExpenseStatus.APPROVED
            else NotificationTrigger.EXPENSE_REJECTED
        )
        self._notify(
            trigger,
            {"vendor": updated.vendor, "total": format_money(updated.total)},
            [submitter.email] if submitter is not None else [],
        )
        return updated

    def get_expense(self, expense_id: int) -> ExpenseRecord:
        expense = self._store.get_expense(expense_id)
        if expense is None:
            raise NotFoundError("Expense", expense_id)
        return expense

    def list_expenses(self) -> list[ExpenseRecord]:
        return self._store.list_expenses()

    # -----------------------------------------------------------------------
    # Responsibilities
    # -----------------------------------------------------------------------

    def create_responsibility(
        self, draft: ResponsibilityDraft, creator_name: str
    ) -> ResponsibilityRecord:
        """Create an envelope with a single "Created by" history line.

        Raises:
            LedgerValidationError: Empty name, negative budget, or
                allocations that do not add up to the budget.
            NotFoundError: The assignee user or group does not exist.
        """
        name = draft.name.strip()
        if not name:
            raise LedgerValidationError("Name is required", field="name")
        budget = to_money(draft.budget)
        if budget < 0:
            raise LedgerValidationError("Budget cannot be negative", field="budget")
        allocations = self._validated_allocations(
            draft.model, draft.assignee, budget, draft.distributed_allocations
        )

        with self._store.unit_of_work():
            self._check_assignee(draft.assignee)
            entry = HistoryEntry.created(creator_name, self._clock(), budget)
            record = self._store.insert_responsibility(
                ResponsibilityRecord(
                    id=None,
                    name=name,
                    budget=budget,
                    model=draft.model,
                    assignee=draft.assignee,
                    distributed_allocations=allocations,
                    history=[entry.render()],
                )
            )

        logger.info(
            "Responsibility %s '%s' created by %s budget=%s",
            record.id, record.name, creator_name, budget,
        )
        self._notify_assigned(record)
        return record

    def update_responsibility(
        self,
        responsibility_id: int,
        changes: ResponsibilityChanges,
        editor_name: str,
    ) -> ResponsibilityRecord:
        """Apply *changes* and append exactly one history line.

        A budget change is logged with its old and new values; any other
        edit is logged as "Details updated".  Allocations are re-validated
        against the merged envelope.
        """
        with self._store.unit_of_work():
            current = self._store.get_responsibility(responsibility_id, for_update=True)
            if current is None:
                raise NotFoundError("Responsibility", responsibility_id)

            new_budget = current.budget if changes.budget is None else to_money(changes.budget)
            if new_budget < 0:
                raise LedgerValidationError("Budget cannot be negative", field="budget")
            name = current.name if changes.name is None else changes.name.strip()
            if not name:
                raise LedgerValidationError("Name is required", field="name")

            merged = replace(
                current,
                name=name,
                budget=new_budget,
                model=changes.model or current.model,
                assignee=changes.assignee or current.assignee,
            )
            split_touched = any(
                value is not None
                for value in (
                    changes.budget,
                    changes.model,
                    changes.assignee,
                    changes.distributed_allocations,
                )
            )
            if split_touched:
                merged.distributed_allocations = self._validated_allocations(
                    merged.model,
                    merged.assignee,
                    new_budget,
                    current.distributed_allocations
                    if changes.distributed_allocations is None
                    else changes.distributed_allocations,
                )
            reassigned = merged.assignee != current.assignee
            if reassigned:
                self._check_assignee(merged.assignee)

            now = self._clock()
            budget_changed = new_budget != current.budget
            only_budget = budget_changed and (
                merged.name == current.name
                and merged.model == current.model
                and not reassigned
                and merged.distributed_allocations == current.distributed_allocations
            )

            if only_budget:
                line = HistoryEntry.budget_updated(editor_name, now, current.budget, new_budget)
                updated = self._store.update_responsibility_budget(
                    responsibility_id, new_budget, line.render()
                )
            else:
                line = (
                    HistoryEntry.budget_updated(editor_name, now, current.budget, new_budget)
                    if budget_changed
                    else HistoryEntry.details_updated(editor_name, now)
                )
                updated = self._store.save_responsibility(merged, line.render())

        logger.info("Responsibility %s updated by %s", responsibility_id, editor_name)
        if reassigned:
            self._notify_assigned(updated)
        return updated

    def reallocate_budget(
        self,
        from_id: int,
        to_id: int,
        amount: Decimal,
        actor_name: str,
        *,
        actor: UserRecord | None = None,
    ) -> ReallocationResult:
        """Move *amount* of budget from one envelope to another.

        Preconditions are checked in order and the first failure is
        returned: different envelopes, positive amount, both envelopes
        exist, enough budget at the source.  Moving the whole budget is
        allowed.

        Raises:
            PermissionDeniedError: *actor* is given and is not a manager.
        """
        if from_id == to_id:
            return ReallocationResult.failed(
                ReallocationFailure.SAME_ENVELOPE,
                "Source and destination must be different responsibilities",
            )
        amount = to_money(amount)
        if amount <= 0:
            return ReallocationResult.failed(
                ReallocationFailure.NON_POSITIVE_AMOUNT,
                "Amount must be greater than zero",
            )
        if actor is not None and not actor.is_manager:
            raise PermissionDeniedError("reallocate budget", actor.role.value)

        with self._store.unit_of_work():
            found = {
                rid: self._store.get_responsibility(rid, for_update=True)
                for rid in sorted((from_id, to_id))
            }
            source, target = found[from_id], found[to_id]
            if source is None or target is None:
                missing = from_id if source is None else to_id
                return ReallocationResult.failed(
                    ReallocationFailure.NOT_FOUND,
                    f"Responsibility {missing} not found",
                )
            if source.budget < amount:
                logger.warning(
                    "Reallocation refused: responsibility=%s has %s, requested %s",
                    from_id, source.budget, amount,
                )
                return ReallocationResult.failed(
                    ReallocationFailure.INSUFFICIENT_FUNDS,
                    f"Insufficient funds in '{source.name}'",
                )

            out_entry, in_entry = HistoryEntry.reallocation_pair(
                actor_name, self._clock(), amount, source.name, target.name
            )
            updated = self._store.transfer_budget(
                from_id,
                to_id,
                amount,
                out_entry.render(),
                in_entry.render(),
                from_allocations=self._rescaled_allocations(source, source.budget - amount),
                to_allocations=self._rescaled_allocations(target, target.budget + amount),
            )

        logger.info(
            "Reallocated %s from responsibility %s to %s by %s",
            amount, from_id, to_id, actor_name,
        )
        return ReallocationResult(success=True, updated=updated)

    def delete_responsibility(
        self, responsibility_id: int, *, actor: UserRecord | None = None
    ) -> None:
        """Soft-delete an envelope; its row and history are kept."""
        if actor is not None and not actor.is_manager:
            raise PermissionDeniedError("delete responsibility", actor.role.value)
        with self._store.unit_of_work():
            if not self._store.soft_delete_responsibility(responsibility_id):
                raise NotFoundError("Responsibility", responsibility_id)
        logger.info("Responsibility %s deleted", responsibility_id)

    def get_responsibility(self, responsibility_id: int) -> ResponsibilityRecord:
        record = self._store.get_responsibility(responsibility_id)
        if record is None:
            raise NotFoundError("Responsibility", responsibility_id)
        return record

    def list_responsibilities(self) -> list[ResponsibilityRecord]:
        return self._store.list_responsibilities()

    def envelope_summary(self, responsibility_id: int) -> EnvelopeSummary:
        record = self.get_responsibility(responsibility_id)
        spent = self._store.sum_non_rejected_expenses(responsibility_id)
        return EnvelopeSummary(
            responsibility_id=record.id,
            name=record.name,
            budget=record.budget,
            spent=spent,
            remaining=record.budget - spent,
            usage_percentage=safe_pct(spent, record.budget),
        )

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _validated_allocations(
        self,
        model: BudgetModel,
        assignee: Assignee,
        budget: Decimal,
        allocations: list[Allocation],
    ) -> list[Allocation]:
        if model is BudgetModel.SHARED:
            return []
        if model is not BudgetModel.DISTRIBUTED:
            raise ValueError(f"Unhandled budget model: {model}")
        if assignee.type is AssigneeType.USER:
            return []

        normalized = [Allocation(a.user_id, to_money(a.amount)) for a in allocations]
        if any(a.amount < 0 for a in normalized):
            raise LedgerValidationError(
                "Allocations cannot be negative", field="distributedAllocations"
            )
        allocated = sum((a.amount for a in normalized), Decimal("0.00"))
        if abs(allocated - budget) > self._tolerance:
            raise LedgerValidationError(
                f"Allocations total {format_money(allocated)} but the budget is "
                f"{format_money(budget)}",
                field="distributedAllocations",
            )
        return normalized

    def _rescaled_allocations(
        self, record: ResponsibilityRecord, new_budget: Decimal
    ) -> list[Allocation] | None:
        """Per-member split of a DISTRIBUTED group envelope scaled to *new_budget*.

        Shares keep their proportions; the rounding remainder goes to the
        largest share so the split adds up to the budget exactly.  An empty
        (or all-zero) split is spread evenly over the group's members.
        Returns ``None`` for envelopes without a per-member split.
        """
        if (
            record.model is not BudgetModel.DISTRIBUTED
            or record.assignee.type is not AssigneeType.GROUP
        ):
            return None

        allocations = list(record.distributed_allocations)
        if not allocations:
            member_ids = self._store.get_group_member_ids(record.assignee.id) or []
            if not member_ids:
                raise LedgerValidationError(
                    f"'{record.name}' has no group members to allocate its budget to",
                    field="distributedAllocations",
                )
            allocations = [Allocation(uid, Decimal("0.00")) for uid in member_ids]

        current_total = sum((a.amount for a in allocations), Decimal("0.00"))
        if current_total > 0:
            shares = [to_money(new_budget * a.amount / current_total) for a in allocations]
        else:
            shares = [to_money(new_budget / len(allocations)) for _ in allocations]

        largest = max(range(len(shares)), key=lambda i: shares[i])
        shares[largest] += new_budget - sum(shares, Decimal("0.00"))
        return [Allocation(a.user_id, share) for a, share in zip(allocations, shares)]

    def _check_assignee(self, assignee: Assignee) -> None:
        if assignee.type is AssigneeType.USER:
            if self._store.get_user(assignee.id) is None:
                raise NotFoundError("User", assignee.id)
        elif assignee.type is AssigneeType.GROUP:
            if self._store.get_group_member_ids(assignee.id) is None:
                raise NotFoundError("Group", assignee.id)
        else:
            raise ValueError(f"Unhandled assignee type: {assignee.type}")

    def _recipient_emails(self, assignee: Assignee) -> list[str]:
        if assignee.type is AssigneeType.USER:
            user = self._store.get_user(assignee.id)
            return [user.email] if user is not None else []
        if assignee.type is AssigneeType.GROUP:
            member_ids = self._store.get_group_member_ids(assignee.id) or []
            return [u.email for u in self._store.get_users(member_ids)]
        raise ValueError(f"Unhandled assignee type: {assignee.type}")

    def _crosses_threshold(
        self, budget: Decimal, spent_before: Decimal, spent_after: Decimal
    ) -> bool:
        if budget <= 0:
            return False
        limit = budget * self._warning_threshold / 100
        return spent_before < limit <= spent_after

    def _notify_assigned(self, record: ResponsibilityRecord) -> None:
        self._notify(
            NotificationTrigger.RESPONSIBILITY_ASSIGNED,
            {"responsibilityName": record.name, "budget": format_money(record.budget)},
            self._recipient_emails(record.assignee),
        )

    def _notify(
        self,
        trigger: NotificationTrigger,
        variables: dict[str, Any],
        recipients: list[str],
    ) -> None:
        # The operation has already committed; a notification problem must
        # not turn it into a failure.
        try:
            self._notifier.send(trigger, variables, recipients)
        except Exception:
            logger.exception("Could not queue %s notification", trigger.value)
