"""Tests for the demo seed script."""

from decimal import Decimal

from conftest import RecordingNotifier
from app.models import Expense, FinancialResponsibility, Group, User, Vendor
from app.utils.constants import NotificationTrigger
from seed_data import seed


def test_seed_populates_an_empty_database(db_session) -> None:
    notifier = RecordingNotifier()

    assert seed(db_session, notifier=notifier) is True

    assert db_session.query(User).count() == 4
    assert db_session.query(Group).count() == 2
    assert db_session.query(Vendor).count() == 3
    assert db_session.query(FinancialResponsibility).count() == 3

    statuses = {e.vendor: e.status for e in db_session.query(Expense).all()}
    assert statuses == {"AdCreative Inc.": "APPROVED", "Cloud Services LLC": "PENDING"}

    engineering = (
        db_session.query(FinancialResponsibility)
        .filter(FinancialResponsibility.name == "Engineering Projects Q3")
        .one()
    )
    assert Decimal(str(engineering.budget)) == Decimal("10000")
    assert engineering.history[0].startswith("Created by Alice on ")

    assert len(notifier.of(NotificationTrigger.NEW_INVOICE)) == 2
    assert len(notifier.of(NotificationTrigger.EXPENSE_APPROVED)) == 1


def test_seed_is_idempotent(db_session) -> None:
    seed(db_session, notifier=RecordingNotifier())

    assert seed(db_session, notifier=RecordingNotifier()) is False
    assert db_session.query(User).count() == 4
