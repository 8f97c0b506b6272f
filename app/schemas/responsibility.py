"""
Pydantic v2 schemas for financial responsibilities (budget envelopes).

Money arrives as ``Decimal`` and leaves as ``float``; the ledger itself only
ever works with 2-decimal ``Decimal`` values.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import ConfigDict, Field

from app.schemas.common import CamelModel
from app.services.audit_history import HistoryEntry
from app.services.budget_engine import (
    EnvelopeSummary,
    ResponsibilityChanges,
    ResponsibilityDraft,
)
from app.services.ledger_store import Allocation, Assignee, ResponsibilityRecord
from app.utils.constants import AssigneeType, BudgetModel


class AssigneeSchema(CamelModel):
    type: Literal["user", "group"]
    id: int

    def to_assignee(self) -> Assignee:
        return Assignee(type=AssigneeType(self.type), id=self.id)


class AllocationSchema(CamelModel):
    user_id: int
    amount: Decimal = Field(..., ge=0)

    def to_allocation(self) -> Allocation:
        return Allocation(user_id=self.user_id, amount=self.amount)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class ResponsibilityCreate(CamelModel):
    """Body of ``POST /api/responsibilities``.

    ``distributedAllocations`` is only used for DISTRIBUTED envelopes
    assigned to a group and must add up to ``budget``.
    """

    name: str = Field(..., min_length=1, max_length=300)
    budget: Decimal = Field(..., ge=0)
    model: Literal["SHARED", "DISTRIBUTED"] = "SHARED"
    assignee: AssigneeSchema
    distributed_allocations: list[AllocationSchema] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Marketing Q3 Budget",
                "budget": 5000,
                "model": "DISTRIBUTED",
                "assignee": {"type": "group", "id": 1},
                "distributedAllocations": [
                    {"userId": 2, "amount": 2500},
                    {"userId": 3, "amount": 2500},
                ],
            }
        }
    )

    def to_draft(self) -> ResponsibilityDraft:
        return ResponsibilityDraft(
            name=self.name,
            budget=self.budget,
            model=BudgetModel(self.model),
            assignee=self.assignee.to_assignee(),
            distributed_allocations=[a.to_allocation() for a in self.distributed_allocations],
        )


class ResponsibilityUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=300)
    budget: Decimal | None = Field(default=None, ge=0)
    model: Literal["SHARED", "DISTRIBUTED"] | None = None
    assignee: AssigneeSchema | None = None
    distributed_allocations: list[AllocationSchema] | None = None

    def to_changes(self) -> ResponsibilityChanges:
        return ResponsibilityChanges(
            name=self.name,
            budget=self.budget,
            model=BudgetModel(self.model) if self.model else None,
            assignee=self.assignee.to_assignee() if self.assignee else None,
            distributed_allocations=(
                [a.to_allocation() for a in self.distributed_allocations]
                if self.distributed_allocations is not None
                else None
            ),
        )


class ReallocateRequest(CamelModel):
    """Body of ``POST /api/responsibilities/reallocate``.

    ``amount`` is not range-checked here: a non-positive amount is answered
    by the engine with ``NON_POSITIVE_AMOUNT``.
    """

    from_id: int
    to_id: int
    amount: Decimal


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class AllocationResponse(CamelModel):
    user_id: int
    amount: float


class ResponsibilityResponse(CamelModel):
    id: int
    name: str
    budget: float
    model: str
    assignee: AssigneeSchema
    distributed_allocations: list[AllocationResponse]
    history: list[str]

    @classmethod
    def from_record(cls, record: ResponsibilityRecord) -> ResponsibilityResponse:
        return cls(
            id=record.id,
            name=record.name,
            budget=float(record.budget),
            model=record.model.value,
            assignee=AssigneeSchema(type=record.assignee.type.value, id=record.assignee.id),
            distributed_allocations=[
                AllocationResponse(user_id=a.user_id, amount=float(a.amount))
                for a in record.distributed_allocations
            ],
            history=list(record.history),
        )


class ReallocateResponse(CamelModel):
    success: bool
    updated: list[ResponsibilityResponse]


class EnvelopeSummaryResponse(CamelModel):
    responsibility_id: int
    name: str
    budget: float
    spent: float
    remaining: float
    usage_percentage: float

    @classmethod
    def from_summary(cls, summary: EnvelopeSummary) -> EnvelopeSummaryResponse:
        return cls(
            responsibility_id=summary.responsibility_id,
            name=summary.name,
            budget=float(summary.budget),
            spent=float(summary.spent),
            remaining=float(summary.remaining),
            usage_percentage=summary.usage_percentage,
        )


class HistoryEntryResponse(CamelModel):
    """One history line plus whatever could be parsed out of it."""

    action: str
    text: str
    actor: str | None = None
    timestamp: datetime | None = None
    amount: float | None = None
    previous_budget: float | None = None
    counterpart: str | None = None

    @classmethod
    def from_entry(cls, entry: HistoryEntry) -> HistoryEntryResponse:
        return cls(
            action=entry.action.value,
            text=entry.raw if entry.raw is not None else entry.render(),
            actor=entry.actor,
            timestamp=entry.timestamp,
            amount=float(entry.amount) if entry.amount is not None else None,
            previous_budget=(
                float(entry.previous_budget) if entry.previous_budget is not None else None
            ),
            counterpart=entry.counterpart,
        )
