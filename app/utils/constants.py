"""
Application-wide constants for the Expense Ledger system.

Defines domain enumerations, business rule defaults, and lookup lists used
across routers, services, and models.  Enumerations subclass ``str`` so they
serialise as plain strings in JSON and compare equal to the values stored in
the database.
"""

from decimal import Decimal
from enum import Enum
from typing import Final

# ---------------------------------------------------------------------------
# User roles
# ---------------------------------------------------------------------------


class Role(str, Enum):
    MANAGER = "MANAGER"
    USER = "USER"


ROLES: Final[list[str]] = [r.value for r in Role]

# ---------------------------------------------------------------------------
# Budget envelope models and assignees
# ---------------------------------------------------------------------------


class BudgetModel(str, Enum):
    SHARED = "SHARED"            # one pool drawn down by any member
    DISTRIBUTED = "DISTRIBUTED"  # pool pre-split into per-member allocations


class AssigneeType(str, Enum):
    USER = "user"
    GROUP = "group"


# ---------------------------------------------------------------------------
# Expense lifecycle
# ---------------------------------------------------------------------------


class ExpenseStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# Statuses a manager may move a PENDING expense into
DECISION_STATUSES: Final[frozenset[ExpenseStatus]] = frozenset(
    {ExpenseStatus.APPROVED, ExpenseStatus.REJECTED}
)

# ---------------------------------------------------------------------------
# Notification triggers
# ---------------------------------------------------------------------------


class NotificationTrigger(str, Enum):
    NEW_INVOICE = "NEW_INVOICE"
    EXPENSE_APPROVED = "EXPENSE_APPROVED"
    EXPENSE_REJECTED = "EXPENSE_REJECTED"
    BUDGET_THRESHOLD = "BUDGET_THRESHOLD"
    RESPONSIBILITY_ASSIGNED = "RESPONSIBILITY_ASSIGNED"


NOTIFICATION_LANGUAGES: Final[list[str]] = ["en", "ar"]

# ---------------------------------------------------------------------------
# Expense categories offered by the submission form
# ---------------------------------------------------------------------------

CATEGORIES: Final[list[str]] = [
    "Marketing",
    "Software",
    "Travel",
    "Office Supplies",
    "Utilities",
    "Other",
]

# ---------------------------------------------------------------------------
# Business rule defaults
# ---------------------------------------------------------------------------

ALLOCATION_TOLERANCE: Final[Decimal] = Decimal("0.001")
BUDGET_WARNING_THRESHOLD: Final[Decimal] = Decimal("80")

# dd-mm-YYYY HH:MM:SS, as rendered in envelope history lines
HISTORY_DATE_FORMAT: Final[str] = "%d-%m-%Y %H:%M:%S"
