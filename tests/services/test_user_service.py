"""Tests for the vendor registry in user_service."""

import pytest

from app.models import Vendor
from app.services import user_service
from app.services.exceptions import LedgerValidationError


def test_vendor_lookup_ignores_case(db_session) -> None:
    first = user_service.ensure_vendor(db_session, "AdCreative Inc.")
    again = user_service.ensure_vendor(db_session, "  adcreative inc. ")

    assert again.id == first.id
    assert again.name == "AdCreative Inc."
    assert db_session.query(Vendor).count() == 1


def test_deleted_vendor_is_restored(db_session) -> None:
    vendor = user_service.ensure_vendor(db_session, "Cloud Services LLC")
    vendor.is_deleted = True
    db_session.commit()

    restored = user_service.ensure_vendor(db_session, "Cloud Services LLC")

    assert restored.id == vendor.id
    assert restored.is_deleted is False


def test_blank_vendor_name_is_rejected(db_session) -> None:
    with pytest.raises(LedgerValidationError):
        user_service.ensure_vendor(db_session, "   ")


def test_insert_collision_reuses_the_winning_row(db_session, monkeypatch) -> None:
    """A name registered between the lookup and the insert is returned, not raised."""
    db_session.add(Vendor(name="Office Supplies Co.", is_deleted=False))
    db_session.commit()
    winner = db_session.query(Vendor).one()

    lookups = []
    find = user_service._find_vendor

    def stale_first_lookup(db, name):
        lookups.append(name)
        if len(lookups) == 1:
            return None
        return find(db, name)

    monkeypatch.setattr(user_service, "_find_vendor", stale_first_lookup)

    vendor = user_service.ensure_vendor(db_session, "Office Supplies Co.")

    assert vendor.id == winner.id
    assert len(lookups) == 2
    assert db_session.query(Vendor).count() == 1
