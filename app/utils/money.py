"""Currency helpers: every amount in the ledger is a 2-decimal ``Decimal``."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Coerce *value* (int, float, str or Decimal) to a cent-quantized Decimal.

    Floats go through ``str`` first so ``0.1`` becomes ``Decimal("0.10")``
    rather than its binary expansion.

    Raises:
        ValueError: If *value* is ``None`` or not numeric.
    """
    if value is None:
        raise ValueError("Amount is required")
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Any) -> str:
    """Render an amount the way history lines and emails show it: ``1234.50``."""
    return f"{to_money(value):.2f}"


def safe_pct(numerator: Decimal, denominator: Decimal) -> float:
    """Return numerator / denominator × 100 rounded to 2 places; 0.0 if denominator is zero.

    Unlike a dashboard execution rate this is not capped at 100, since a
    manager override can push consumption past the budget.
    """
    if denominator == 0:
        return 0.0
    return round(float(numerator / denominator * 100), 2)
