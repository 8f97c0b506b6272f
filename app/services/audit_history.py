"""
Envelope audit trail.

Mutations build a structured ``HistoryEntry`` and the ledger stores only its
rendered line, so the persisted history stays a plain list of strings:

    Created by Alice on 01-07-2024 09:30:00 with a budget of $5000.00
    Budget updated manually from $5000.00 to $5500.00 by Alice on 02-07-2024 10:00:00
    Details updated by Alice on 03-07-2024 11:15:42
    Reallocated -$200.00 to 'Marketing' by Alice on 04-07-2024 16:20:05
    Reallocated +$200.00 from 'Engineering' by Alice on 04-07-2024 16:20:05

``parse_history_line`` reverses the rendering for lines written by this
module; anything else (imported or hand-written lines) comes back as
``HistoryAction.NOTE`` with only the raw text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from app.utils.constants import HISTORY_DATE_FORMAT
from app.utils.money import format_money, to_money


class HistoryAction(str, Enum):
    CREATED = "CREATED"
    BUDGET_UPDATED = "BUDGET_UPDATED"
    DETAILS_UPDATED = "DETAILS_UPDATED"
    REALLOCATED_OUT = "REALLOCATED_OUT"
    REALLOCATED_IN = "REALLOCATED_IN"
    NOTE = "NOTE"


@dataclass(frozen=True)
class HistoryEntry:
    action: HistoryAction
    actor: str | None = None
    timestamp: datetime | None = None
    amount: Decimal | None = None
    previous_budget: Decimal | None = None
    counterpart: str | None = None
    raw: str | None = None

    # -- constructors -------------------------------------------------------

    @classmethod
    def created(cls, actor: str, timestamp: datetime, budget: Decimal) -> HistoryEntry:
        return cls(HistoryAction.CREATED, actor, timestamp, amount=budget)

    @classmethod
    def budget_updated(
        cls, actor: str, timestamp: datetime, old: Decimal, new: Decimal
    ) -> HistoryEntry:
        return cls(
            HistoryAction.BUDGET_UPDATED, actor, timestamp, amount=new, previous_budget=old
        )

    @classmethod
    def details_updated(cls, actor: str, timestamp: datetime) -> HistoryEntry:
        return cls(HistoryAction.DETAILS_UPDATED, actor, timestamp)

    @classmethod
    def reallocation_pair(
        cls,
        actor: str,
        timestamp: datetime,
        amount: Decimal,
        from_name: str,
        to_name: str,
    ) -> tuple[HistoryEntry, HistoryEntry]:
        """Return the (source, destination) entries of one transfer."""
        return (
            cls(HistoryAction.REALLOCATED_OUT, actor, timestamp, amount=amount, counterpart=to_name),
            cls(HistoryAction.REALLOCATED_IN, actor, timestamp, amount=amount, counterpart=from_name),
        )

    # -- rendering ----------------------------------------------------------

    def render(self) -> str:
        if self.action is HistoryAction.NOTE:
            return self.raw or ""

        when = self.timestamp.strftime(HISTORY_DATE_FORMAT) if self.timestamp else ""

        if self.action is HistoryAction.CREATED:
            return (
                f"Created by {self.actor} on {when} "
                f"with a budget of ${format_money(self.amount)}"
            )
        if self.action is HistoryAction.BUDGET_UPDATED:
            return (
                f"Budget updated manually from ${format_money(self.previous_budget)} "
                f"to ${format_money(self.amount)} by {self.actor} on {when}"
            )
        if self.action is HistoryAction.DETAILS_UPDATED:
            return f"Details updated by {self.actor} on {when}"
        if self.action is HistoryAction.REALLOCATED_OUT:
            return (
                f"Reallocated -${format_money(self.amount)} to '{self.counterpart}' "
                f"by {self.actor} on {when}"
            )
        if self.action is HistoryAction.REALLOCATED_IN:
            return (
                f"Reallocated +${format_money(self.amount)} from '{self.counterpart}' "
                f"by {self.actor} on {when}"
            )
        raise ValueError(f"Unhandled history action: {self.action}")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_DATE = r"(?P<when>\d{2}-\d{2}-\d{4} \d{2}:\d{2}:\d{2})"
_AMOUNT = r"\$(?P<amount>\d+(?:\.\d+)?)"

_PATTERNS: list[tuple[HistoryAction, re.Pattern[str]]] = [
    (
        HistoryAction.CREATED,
        re.compile(rf"^Created by (?P<actor>.+) on {_DATE} with a budget of {_AMOUNT}$"),
    ),
    (
        HistoryAction.BUDGET_UPDATED,
        re.compile(
            rf"^Budget updated manually from \$(?P<previous>\d+(?:\.\d+)?) "
            rf"to {_AMOUNT} by (?P<actor>.+) on {_DATE}$"
        ),
    ),
    (
        HistoryAction.DETAILS_UPDATED,
        re.compile(rf"^Details updated by (?P<actor>.+) on {_DATE}$"),
    ),
    (
        HistoryAction.REALLOCATED_OUT,
        re.compile(
            rf"^Reallocated -{_AMOUNT} to '(?P<counterpart>.*)' by (?P<actor>.+) on {_DATE}$"
        ),
    ),
    (
        HistoryAction.REALLOCATED_IN,
        re.compile(
            rf"^Reallocated \+{_AMOUNT} from '(?P<counterpart>.*)' by (?P<actor>.+) on {_DATE}$"
        ),
    ),
]


def parse_history_line(line: str) -> HistoryEntry:
    for action, pattern in _PATTERNS:
        match = pattern.match(line)
        if match is None:
            continue
        groups = match.groupdict()
        return HistoryEntry(
            action=action,
            actor=groups.get("actor"),
            timestamp=datetime.strptime(groups["when"], HISTORY_DATE_FORMAT),
            amount=to_money(groups["amount"]) if groups.get("amount") else None,
            previous_budget=to_money(groups["previous"]) if groups.get("previous") else None,
            counterpart=groups.get("counterpart"),
            raw=line,
        )
    return HistoryEntry(HistoryAction.NOTE, raw=line)
