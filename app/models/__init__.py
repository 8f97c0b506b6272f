"""SQLAlchemy models package for the Expense Ledger.

Importing all models here ensures that SQLAlchemy's mapper registry is
populated before ``Base.metadata.create_all()`` or Alembic migrations run.
The import order follows the foreign-key dependency graph so that parent
tables are always registered before their children.

Usage from other modules:
    from app.models import Expense, FinancialResponsibility
"""

# Identity and directory tables
from app.models.user import User  # noqa: F401
from app.models.group import Group  # noqa: F401
from app.models.vendor import Vendor  # noqa: F401

# Budget ledger
from app.models.financial_responsibility import FinancialResponsibility  # noqa: F401
from app.models.expense import Expense  # noqa: F401

# Runtime configuration
from app.models.system_setting import SystemSetting  # noqa: F401

__all__ = [
    "User",
    "Group",
    "Vendor",
    "FinancialResponsibility",
    "Expense",
    "SystemSetting",
]
