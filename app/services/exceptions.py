"""
Typed exceptions raised by the budget ledger.

Each class carries the HTTP status the API answers with, a machine-readable
``code`` and the structured fields a client needs to explain the failure.
``app.main`` renders any ``LedgerError`` through ``to_dict()``.

    LedgerError (400)
    +-- NotFoundError (404)
    +-- BudgetExceededError (403)
    +-- LedgerValidationError (422)
    +-- InvalidTransitionError (409)
    +-- PermissionDeniedError (403)
    +-- StoreFailure (500)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from app.utils.money import format_money


class LedgerError(Exception):
    status_code: int = 400
    code: str = "LEDGER_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def data(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.data()}


class NotFoundError(LedgerError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id

    def data(self) -> dict[str, Any]:
        return {"entity": self.entity, "entityId": self.entity_id}


class BudgetExceededError(LedgerError):
    """A non-manager submission would push consumption past the budget.

    Business-rule rejection, not a fault: nothing was written and retrying
    will not help without a manager decision.
    """

    status_code = 403
    code = "BUDGET_EXCEEDED"

    def __init__(self, attempted: Decimal, current_spent: Decimal, budget: Decimal) -> None:
        super().__init__(
            f"Budget Exceeded: This expense ({format_money(attempted)}) exceeds the "
            f"remaining budget. Current spent: {format_money(current_spent)}, "
            f"Budget: {format_money(budget)}. Contact a manager."
        )
        self.attempted = attempted
        self.current_spent = current_spent
        self.budget = budget

    def data(self) -> dict[str, Any]:
        return {
            "attempted": float(self.attempted),
            "currentSpent": float(self.current_spent),
            "budget": float(self.budget),
        }


class LedgerValidationError(LedgerError):
    status_code = 422
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def data(self) -> dict[str, Any]:
        return {"field": self.field} if self.field else {}


class InvalidTransitionError(LedgerError):
    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot move an expense from {current} to {requested}")
        self.current = current
        self.requested = requested

    def data(self) -> dict[str, Any]:
        return {"current": self.current, "requested": self.requested}


class PermissionDeniedError(LedgerError):
    status_code = 403
    code = "PERMISSION_DENIED"

    def __init__(self, action: str, role: str) -> None:
        super().__init__(f"Role {role} may not {action}")
        self.action = action
        self.role = role

    def data(self) -> dict[str, Any]:
        return {"action": self.action, "role": self.role}


class StoreFailure(LedgerError):
    """The store aborted a unit of work; it was rolled back and is safe to retry."""

    status_code = 500
    code = "STORE_FAILURE"

    def __init__(self, message: str = "The operation could not be completed") -> None:
        super().__init__(message)
