"""Tests for BudgetEngine, run against the in-memory and SQLAlchemy stores."""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import (
    ALICE,
    BOB,
    DIANA,
    ENGINEERING_GROUP,
    MARKETING_GROUP,
    FixedClock,
    RecordingNotifier,
    build_memory_store,
)
from app.services.budget_engine import (
    BudgetEngine,
    ExpenseDraft,
    ReallocationFailure,
    ResponsibilityChanges,
    ResponsibilityDraft,
)
from app.services.exceptions import (
    BudgetExceededError,
    InvalidTransitionError,
    LedgerValidationError,
    NotFoundError,
    PermissionDeniedError,
)
from app.services.ledger_store import Allocation, Assignee
from app.utils.constants import AssigneeType, BudgetModel, ExpenseStatus, NotificationTrigger


def _envelope(budget_engine, name="Marketing Q3 Budget", budget="500", assignee=None, **kwargs):
    draft = ResponsibilityDraft(
        name=name,
        budget=Decimal(budget),
        model=kwargs.pop("model", BudgetModel.SHARED),
        assignee=assignee or Assignee(AssigneeType.USER, BOB.id),
        **kwargs,
    )
    return budget_engine.create_responsibility(draft, ALICE.name)


def _draft(responsibility_id, total, vendor="Office Supplies Co."):
    return ExpenseDraft(
        responsibility_id=responsibility_id,
        vendor=vendor,
        total=Decimal(total),
        date=date(2024, 7, 15),
    )


# ---------------------------------------------------------------------------
# SubmitExpense
# ---------------------------------------------------------------------------


def test_user_over_budget_is_rejected_without_writing(budget_engine, store) -> None:
    """A regular user cannot push consumption past the budget."""
    envelope = _envelope(budget_engine)
    budget_engine.submit_expense(_draft(envelope.id, "450"), BOB.id)

    with pytest.raises(BudgetExceededError) as excinfo:
        budget_engine.submit_expense(_draft(envelope.id, "60"), BOB.id)

    assert excinfo.value.attempted == Decimal("60")
    assert excinfo.value.current_spent == Decimal("450")
    assert excinfo.value.budget == Decimal("500")
    assert excinfo.value.status_code == 403
    assert len(store.list_expenses()) == 1
    assert store.sum_non_rejected_expenses(envelope.id) == Decimal("450")
    assert store.get_responsibility(envelope.id).budget == Decimal("500")


def test_budget_exceeded_payload_carries_figures(budget_engine) -> None:
    envelope = _envelope(budget_engine)
    budget_engine.submit_expense(_draft(envelope.id, "450"), BOB.id)

    with pytest.raises(BudgetExceededError) as excinfo:
        budget_engine.submit_expense(_draft(envelope.id, "60"), BOB.id)

    body = excinfo.value.to_dict()
    assert body["code"] == "BUDGET_EXCEEDED"
    assert body["attempted"] == 60.0
    assert body["currentSpent"] == 450.0
    assert body["budget"] == 500.0
    assert "Current spent: 450.00, Budget: 500.00" in body["detail"]


def test_manager_may_exceed_budget(budget_engine, store) -> None:
    """Managers override the cap; consumption grows, the budget does not."""
    envelope = _envelope(budget_engine)
    budget_engine.submit_expense(_draft(envelope.id, "450"), BOB.id)

    expense = budget_engine.submit_expense(_draft(envelope.id, "60"), ALICE.id)

    assert expense.status is ExpenseStatus.PENDING
    assert expense.submitted_by == ALICE.id
    assert store.get_responsibility(envelope.id).budget == Decimal("500")
    assert store.sum_non_rejected_expenses(envelope.id) == Decimal("510")


@pytest.mark.parametrize("submitter", [BOB, ALICE])
def test_submission_landing_exactly_on_budget_succeeds(budget_engine, store, submitter) -> None:
    envelope = _envelope(budget_engine)
    budget_engine.submit_expense(_draft(envelope.id, "450"), BOB.id)

    budget_engine.submit_expense(_draft(envelope.id, "50"), submitter.id)

    assert store.sum_non_rejected_expenses(envelope.id) == Decimal("500")


def test_submission_assigns_pending_status_and_clock_timestamp(budget_engine, clock) -> None:
    envelope = _envelope(budget_engine)

    expense = budget_engine.submit_expense(_draft(envelope.id, "12.345"), BOB.id)

    assert expense.id is not None
    assert expense.status is ExpenseStatus.PENDING
    assert expense.created_at == clock.now
    assert expense.total == Decimal("12.35")


def test_submission_to_unknown_envelope_is_not_found(budget_engine) -> None:
    with pytest.raises(NotFoundError) as excinfo:
        budget_engine.submit_expense(_draft(999, "10"), BOB.id)
    assert excinfo.value.entity == "Responsibility"


def test_submission_by_unknown_user_is_not_found(budget_engine) -> None:
    envelope = _envelope(budget_engine)
    with pytest.raises(NotFoundError) as excinfo:
        budget_engine.submit_expense(_draft(envelope.id, "10"), 999)
    assert excinfo.value.entity == "User"


def test_new_invoice_notifies_managers(budget_engine, notifier) -> None:
    envelope = _envelope(budget_engine)

    budget_engine.submit_expense(_draft(envelope.id, "120", vendor="AdCreative Inc."), BOB.id)

    [(variables, recipients)] = notifier.of(NotificationTrigger.NEW_INVOICE)
    assert recipients == [ALICE.email]
    assert variables["vendor"] == "AdCreative Inc."
    assert variables["total"] == "120.00"
    assert variables["submitterName"] == "Bob"


def test_threshold_warning_fires_once_when_crossed(budget_engine, notifier) -> None:
    envelope = _envelope(budget_engine, budget="1000")

    budget_engine.submit_expense(_draft(envelope.id, "700"), BOB.id)
    assert notifier.of(NotificationTrigger.BUDGET_THRESHOLD) == []

    budget_engine.submit_expense(_draft(envelope.id, "150"), BOB.id)
    budget_engine.submit_expense(_draft(envelope.id, "10"), BOB.id)

    [(variables, recipients)] = notifier.of(NotificationTrigger.BUDGET_THRESHOLD)
    assert recipients == [ALICE.email]
    assert variables == {"responsibilityName": envelope.name, "usagePercentage": 85.0}


def test_notifier_failure_does_not_fail_submission(store, clock) -> None:
    class _Broken:
        def send(self, trigger, variables, recipient_emails):
            raise RuntimeError("smtp down")

    budget_engine = BudgetEngine(store, _Broken(), clock=clock)
    envelope = _envelope(budget_engine)

    expense = budget_engine.submit_expense(_draft(envelope.id, "10"), BOB.id)

    assert store.get_expense(expense.id) is not None


# ---------------------------------------------------------------------------
# UpdateExpenseStatus
# ---------------------------------------------------------------------------


def test_rejected_expense_leaves_consumption(budget_engine, store) -> None:
    envelope = _envelope(budget_engine)
    budget_engine.submit_expense(_draft(envelope.id, "100"), BOB.id)
    pending = budget_engine.submit_expense(_draft(envelope.id, "250"), BOB.id)
    assert store.sum_non_rejected_expenses(envelope.id) == Decimal("350")

    updated = budget_engine.update_expense_status(pending.id, ExpenseStatus.REJECTED)

    assert updated.status is ExpenseStatus.REJECTED
    assert store.sum_non_rejected_expenses(envelope.id) == Decimal("100")


def test_approved_expense_still_counts(budget_engine, store) -> None:
    envelope = _envelope(budget_engine)
    expense = budget_engine.submit_expense(_draft(envelope.id, "100"), BOB.id)

    budget_engine.update_expense_status(expense.id, "APPROVED", actor=ALICE)

    assert store.sum_non_rejected_expenses(envelope.id) == Decimal("100")


def test_decision_notifies_submitter(budget_engine, notifier) -> None:
    envelope = _envelope(budget_engine)
    expense = budget_engine.submit_expense(_draft(envelope.id, "42", vendor="Cloud Services LLC"), BOB.id)

    budget_engine.update_expense_status(expense.id, ExpenseStatus.APPROVED)

    [(variables, recipients)] = notifier.of(NotificationTrigger.EXPENSE_APPROVED)
    assert recipients == [BOB.email]
    assert variables == {"vendor": "Cloud Services LLC", "total": "42.00"}


def test_decided_expense_cannot_change_again(budget_engine) -> None:
    envelope = _envelope(budget_engine)
    expense = budget_engine.submit_expense(_draft(envelope.id, "10"), BOB.id)
    budget_engine.update_expense_status(expense.id, ExpenseStatus.REJECTED)

    with pytest.raises(InvalidTransitionError) as excinfo:
        budget_engine.update_expense_status(expense.id, ExpenseStatus.APPROVED)

    assert excinfo.value.current == "REJECTED"
    assert budget_engine.get_expense(expense.id).status is ExpenseStatus.REJECTED


def test_pending_is_not_a_decision(budget_engine) -> None:
    envelope = _envelope(budget_engine)
    expense = budget_engine.submit_expense(_draft(envelope.id, "10"), BOB.id)

    with pytest.raises(LedgerValidationError):
        budget_engine.update_expense_status(expense.id, ExpenseStatus.PENDING)


def test_status_change_of_unknown_expense_is_not_found(budget_engine) -> None:
    with pytest.raises(NotFoundError):
        budget_engine.update_expense_status(404, ExpenseStatus.APPROVED)


def test_non_manager_actor_cannot_decide(budget_engine) -> None:
    envelope = _envelope(budget_engine)
    expense = budget_engine.submit_expense(_draft(envelope.id, "10"), BOB.id)

    with pytest.raises(PermissionDeniedError):
        budget_engine.update_expense_status(expense.id, ExpenseStatus.APPROVED, actor=BOB)

    assert budget_engine.get_expense(expense.id).status is ExpenseStatus.PENDING


# ---------------------------------------------------------------------------
# CreateResponsibility / UpdateResponsibility
# ---------------------------------------------------------------------------


def test_creation_seeds_one_history_line(budget_engine) -> None:
    envelope = _envelope(budget_engine, budget="5000")

    assert envelope.history == [
        "Created by Alice on 04-07-2024 16:20:05 with a budget of $5000.00"
    ]


def test_creation_notifies_group_members(budget_engine, notifier) -> None:
    _envelope(
        budget_engine,
        name="Marketing Q3 Budget",
        budget="5000",
        assignee=Assignee(AssigneeType.GROUP, MARKETING_GROUP),
    )

    [(variables, recipients)] = notifier.of(NotificationTrigger.RESPONSIBILITY_ASSIGNED)
    assert sorted(recipients) == ["bob@example.com", "charlie@example.com"]
    assert variables == {"responsibilityName": "Marketing Q3 Budget", "budget": "5000.00"}


def test_distributed_allocations_must_match_budget(budget_engine, store) -> None:
    with pytest.raises(LedgerValidationError) as excinfo:
        _envelope(
            budget_engine,
            budget="10000",
            model=BudgetModel.DISTRIBUTED,
            assignee=Assignee(AssigneeType.GROUP, MARKETING_GROUP),
            distributed_allocations=[Allocation(2, Decimal("6000")), Allocation(3, Decimal("3000"))],
        )

    assert excinfo.value.field == "distributedAllocations"
    assert store.list_responsibilities() == []


def test_distributed_allocations_summing_to_budget_are_kept(budget_engine) -> None:
    envelope = _envelope(
        budget_engine,
        budget="10000",
        model=BudgetModel.DISTRIBUTED,
        assignee=Assignee(AssigneeType.GROUP, MARKETING_GROUP),
        distributed_allocations=[Allocation(2, Decimal("6000")), Allocation(3, Decimal("4000"))],
    )

    total = sum(a.amount for a in envelope.distributed_allocations)
    assert abs(total - envelope.budget) <= Decimal("0.001")
    assert len(envelope.distributed_allocations) == 2


def test_allocations_are_dropped_for_single_user_envelopes(budget_engine) -> None:
    envelope = _envelope(
        budget_engine,
        model=BudgetModel.DISTRIBUTED,
        assignee=Assignee(AssigneeType.USER, DIANA.id),
        distributed_allocations=[Allocation(4, Decimal("1"))],
    )

    assert envelope.distributed_allocations == []


def test_creation_for_unknown_group_is_not_found(budget_engine) -> None:
    with pytest.raises(NotFoundError) as excinfo:
        _envelope(budget_engine, assignee=Assignee(AssigneeType.GROUP, 99))
    assert excinfo.value.entity == "Group"


def test_budget_edit_records_old_and_new_values(budget_engine, clock) -> None:
    envelope = _envelope(budget_engine)
    clock.advance(days=1)

    updated = budget_engine.update_responsibility(
        envelope.id, ResponsibilityChanges(budget=Decimal("750")), ALICE.name
    )

    assert updated.budget == Decimal("750")
    assert updated.history[-1] == (
        "Budget updated manually from $500.00 to $750.00 by Alice on 05-07-2024 16:20:05"
    )


def test_other_edits_record_details_updated(budget_engine) -> None:
    envelope = _envelope(budget_engine)

    updated = budget_engine.update_responsibility(
        envelope.id, ResponsibilityChanges(name="Renamed"), ALICE.name
    )

    assert updated.name == "Renamed"
    assert updated.history[-1] == "Details updated by Alice on 04-07-2024 16:20:05"


def test_reassignment_notifies_new_assignee(budget_engine, notifier) -> None:
    envelope = _envelope(budget_engine)
    notifier.sent.clear()

    budget_engine.update_responsibility(
        envelope.id,
        ResponsibilityChanges(assignee=Assignee(AssigneeType.GROUP, ENGINEERING_GROUP)),
        ALICE.name,
    )

    [(_variables, recipients)] = notifier.of(NotificationTrigger.RESPONSIBILITY_ASSIGNED)
    assert recipients == [DIANA.email]


def test_budget_edit_breaking_allocations_is_rolled_back(budget_engine, store) -> None:
    envelope = _envelope(
        budget_engine,
        budget="1000",
        model=BudgetModel.DISTRIBUTED,
        assignee=Assignee(AssigneeType.GROUP, MARKETING_GROUP),
        distributed_allocations=[Allocation(2, Decimal("500")), Allocation(3, Decimal("500"))],
    )

    with pytest.raises(LedgerValidationError):
        budget_engine.update_responsibility(
            envelope.id, ResponsibilityChanges(budget=Decimal("1200")), ALICE.name
        )

    stored = store.get_responsibility(envelope.id)
    assert stored.budget == Decimal("1000")
    assert len(stored.history) == 1


def test_update_of_unknown_envelope_is_not_found(budget_engine) -> None:
    with pytest.raises(NotFoundError):
        budget_engine.update_responsibility(7, ResponsibilityChanges(name="x"), ALICE.name)


# ---------------------------------------------------------------------------
# ReallocateBudget
# ---------------------------------------------------------------------------


def test_reallocation_moves_budget_and_logs_both_sides(budget_engine) -> None:
    source = _envelope(budget_engine, name="Engineering", budget="500")
    target = _envelope(budget_engine, name="Marketing", budget="300")

    result = budget_engine.reallocate_budget(source.id, target.id, Decimal("200"), "Alice")

    assert result.success is True
    updated_source, updated_target = result.updated
    assert updated_source.budget == Decimal("300")
    assert updated_target.budget == Decimal("500")
    assert updated_source.history[-1] == (
        "Reallocated -$200.00 to 'Marketing' by Alice on 04-07-2024 16:20:05"
    )
    assert updated_target.history[-1] == (
        "Reallocated +$200.00 from 'Engineering' by Alice on 04-07-2024 16:20:05"
    )


def test_reallocation_beyond_source_budget_changes_nothing(budget_engine, store) -> None:
    source = _envelope(budget_engine, name="A", budget="500")
    target = _envelope(budget_engine, name="B", budget="300")

    result = budget_engine.reallocate_budget(source.id, target.id, Decimal("600"), "Alice")

    assert result.success is False
    assert result.reason is ReallocationFailure.INSUFFICIENT_FUNDS
    assert store.get_responsibility(source.id) == source
    assert store.get_responsibility(target.id) == target


def test_reallocating_the_whole_budget_leaves_zero(budget_engine) -> None:
    source = _envelope(budget_engine, name="A", budget="500")
    target = _envelope(budget_engine, name="B", budget="0")

    result = budget_engine.reallocate_budget(source.id, target.id, Decimal("500"), "Alice")

    assert result.success is True
    assert result.updated[0].budget == Decimal("0")
    assert result.updated[1].budget == Decimal("500")


@pytest.mark.parametrize(
    ("same", "amount", "reason"),
    [
        (True, "10", ReallocationFailure.SAME_ENVELOPE),
        (True, "-5", ReallocationFailure.SAME_ENVELOPE),
        (False, "0", ReallocationFailure.NON_POSITIVE_AMOUNT),
        (False, "-5", ReallocationFailure.NON_POSITIVE_AMOUNT),
        (False, "0.001", ReallocationFailure.NON_POSITIVE_AMOUNT),
    ],
)
def test_reallocation_preconditions_in_order(budget_engine, same, amount, reason) -> None:
    source = _envelope(budget_engine, name="A", budget="500")
    target = source if same else _envelope(budget_engine, name="B", budget="300")

    result = budget_engine.reallocate_budget(source.id, target.id, Decimal(amount), "Alice")

    assert result.success is False
    assert result.reason is reason


def test_reallocation_to_unknown_envelope_is_not_found(budget_engine, store) -> None:
    source = _envelope(budget_engine, name="A", budget="500")

    result = budget_engine.reallocate_budget(source.id, 999, Decimal("10"), "Alice")

    assert result.reason is ReallocationFailure.NOT_FOUND
    assert store.get_responsibility(source.id).budget == Decimal("500")


def test_reallocation_by_non_manager_actor_is_refused(budget_engine) -> None:
    source = _envelope(budget_engine, name="A", budget="500")
    target = _envelope(budget_engine, name="B", budget="300")

    with pytest.raises(PermissionDeniedError):
        budget_engine.reallocate_budget(source.id, target.id, Decimal("10"), "Bob", actor=BOB)


def test_reallocations_conserve_total_budget(budget_engine, store) -> None:
    ids = [
        _envelope(budget_engine, name=name, budget=budget).id
        for name, budget in [("A", "500"), ("B", "300"), ("C", "1200.50")]
    ]
    moves = [(0, 1, "200"), (1, 2, "450"), (2, 0, "1000"), (0, 2, "5000"), (1, 0, "50.25")]

    for src, dst, amount in moves:
        budget_engine.reallocate_budget(ids[src], ids[dst], Decimal(amount), "Alice")

    total = sum(r.budget for r in store.list_responsibilities())
    assert total == Decimal("2000.50")
    assert all(r.budget >= 0 for r in store.list_responsibilities())


def test_history_grows_by_one_per_successful_mutation(budget_engine, store) -> None:
    a = _envelope(budget_engine, name="A", budget="500")
    b = _envelope(budget_engine, name="B", budget="300")

    def lengths():
        return len(store.get_responsibility(a.id).history), len(store.get_responsibility(b.id).history)

    assert lengths() == (1, 1)
    budget_engine.update_responsibility(a.id, ResponsibilityChanges(budget=Decimal("600")), "Alice")
    assert lengths() == (2, 1)
    budget_engine.update_responsibility(b.id, ResponsibilityChanges(name="B2"), "Alice")
    assert lengths() == (2, 2)
    budget_engine.reallocate_budget(a.id, b.id, Decimal("100"), "Alice")
    assert lengths() == (3, 3)
    budget_engine.reallocate_budget(a.id, b.id, Decimal("10000"), "Alice")
    assert lengths() == (3, 3)
    budget_engine.submit_expense(_draft(a.id, "10"), BOB.id)
    assert lengths() == (3, 3)


# ---------------------------------------------------------------------------
# Summary and soft delete
# ---------------------------------------------------------------------------


def test_envelope_summary(budget_engine) -> None:
    envelope = _envelope(budget_engine, budget="400")
    budget_engine.submit_expense(_draft(envelope.id, "100"), BOB.id)
    rejected = budget_engine.submit_expense(_draft(envelope.id, "50"), BOB.id)
    budget_engine.update_expense_status(rejected.id, ExpenseStatus.REJECTED)

    summary = budget_engine.envelope_summary(envelope.id)

    assert summary.spent == Decimal("100")
    assert summary.remaining == Decimal("300")
    assert summary.usage_percentage == 25.0


def test_deleted_envelope_is_hidden(budget_engine) -> None:
    envelope = _envelope(budget_engine)

    budget_engine.delete_responsibility(envelope.id, actor=ALICE)

    assert budget_engine.list_responsibilities() == []
    with pytest.raises(NotFoundError):
        budget_engine.get_responsibility(envelope.id)
    with pytest.raises(NotFoundError):
        budget_engine.delete_responsibility(envelope.id)


# ---------------------------------------------------------------------------
# Per-member splits of DISTRIBUTED group envelopes
# ---------------------------------------------------------------------------


def _split(record):
    return [(a.user_id, a.amount) for a in record.distributed_allocations]


def _distributed(budget_engine, name, budget, allocations):
    return _envelope(
        budget_engine,
        name=name,
        budget=budget,
        model=BudgetModel.DISTRIBUTED,
        assignee=Assignee(AssigneeType.GROUP, MARKETING_GROUP),
        distributed_allocations=[Allocation(uid, Decimal(amount)) for uid, amount in allocations],
    )


def test_reallocation_rescales_the_split_on_both_sides(budget_engine, store) -> None:
    team = _distributed(budget_engine, "Team", "100", [(2, "50"), (3, "50")])
    travel = _envelope(budget_engine, name="Travel", budget="0")

    out = budget_engine.reallocate_budget(team.id, travel.id, Decimal("30"), "Alice")
    assert out.success is True
    assert _split(store.get_responsibility(team.id)) == [(2, Decimal("35")), (3, Decimal("35"))]
    assert store.get_responsibility(travel.id).distributed_allocations == []

    back = budget_engine.reallocate_budget(travel.id, team.id, Decimal("10"), "Alice")
    assert back.success is True
    stored = store.get_responsibility(team.id)
    assert stored.budget == Decimal("80")
    assert _split(stored) == [(2, Decimal("40")), (3, Decimal("40"))]
    assert len(stored.history) == 3


def test_rename_after_reallocation_keeps_the_split(budget_engine, store) -> None:
    team = _distributed(budget_engine, "Team", "100", [(2, "50"), (3, "50")])
    travel = _envelope(budget_engine, name="Travel", budget="0")
    budget_engine.reallocate_budget(team.id, travel.id, Decimal("30"), "Alice")

    renamed = budget_engine.update_responsibility(
        team.id, ResponsibilityChanges(name="Renamed"), ALICE.name
    )

    assert renamed.name == "Renamed"
    assert renamed.budget == Decimal("70")
    assert sum(a.amount for a in renamed.distributed_allocations) == Decimal("70")


def test_rounding_remainder_lands_on_the_largest_share(budget_engine) -> None:
    team = _distributed(
        budget_engine, "Team", "100", [(2, "33.34"), (3, "33.33"), (4, "33.33")]
    )
    travel = _envelope(budget_engine, name="Travel", budget="0")

    result = budget_engine.reallocate_budget(team.id, travel.id, Decimal("50"), "Alice")

    updated = result.updated[0]
    assert _split(updated) == [(2, Decimal("16.66")), (3, Decimal("16.67")), (4, Decimal("16.67"))]
    assert sum(a.amount for a in updated.distributed_allocations) == updated.budget


def test_empty_split_is_spread_over_group_members(budget_engine) -> None:
    team = _distributed(budget_engine, "Team", "0", [])
    travel = _envelope(budget_engine, name="Travel", budget="100")

    result = budget_engine.reallocate_budget(travel.id, team.id, Decimal("100"), "Alice")

    assert _split(result.updated[1]) == [(2, Decimal("50")), (3, Decimal("50"))]


def test_rename_does_not_recheck_an_unchanged_split(budget_engine, store) -> None:
    """An out-of-balance split is only re-validated when the edit touches it."""
    team = _distributed(budget_engine, "Team", "100", [(2, "50"), (3, "50")])
    travel = _envelope(budget_engine, name="Travel", budget="0")
    with store.unit_of_work():
        store.transfer_budget(team.id, travel.id, Decimal("30"), "out", "in")

    renamed = budget_engine.update_responsibility(
        team.id, ResponsibilityChanges(name="Renamed"), ALICE.name
    )
    assert renamed.name == "Renamed"

    with pytest.raises(LedgerValidationError):
        budget_engine.update_responsibility(
            team.id, ResponsibilityChanges(budget=Decimal("75")), ALICE.name
        )


@settings(max_examples=60, deadline=None)
@given(
    moves=st.lists(
        st.tuples(
            st.integers(min_value=0, max_value=2),
            st.integers(min_value=0, max_value=2),
            st.decimals(min_value="-50", max_value="2500", places=2),
        ),
        max_size=25,
    )
)
def test_any_reallocation_sequence_conserves_total_budget(moves) -> None:
    engine = BudgetEngine(build_memory_store(), RecordingNotifier(), clock=FixedClock())
    ids = [
        _envelope(engine, name="A", budget="500").id,
        _envelope(engine, name="B", budget="300").id,
        _distributed(engine, "C", "1200.50", [(2, "600.25"), (3, "600.25")]).id,
    ]

    for src, dst, amount in moves:
        engine.reallocate_budget(ids[src], ids[dst], amount, "Alice")

    records = engine.list_responsibilities()
    assert sum(r.budget for r in records) == Decimal("2000.50")
    assert all(r.budget >= 0 for r in records)
    split_envelope = engine.get_responsibility(ids[2])
    assert sum(a.amount for a in split_envelope.distributed_allocations) == split_envelope.budget
    assert all(a.amount >= 0 for a in split_envelope.distributed_allocations)
