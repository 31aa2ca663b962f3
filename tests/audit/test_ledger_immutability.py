"""
ORM-level immutability of the ledger and of lot identity.

Tests cover:
- Ledger entries cannot be updated or deleted through the ORM
- Lot identity fields (lot_number, item_id, expiry_date) are frozen
- Lots cannot be deleted
- Mutable lot fields (quantity, status, location) still update
- Listener registration is idempotent
"""

from datetime import date

import pytest

from inventory_kernel.db.immutability import (
    FROZEN_LOT_FIELDS,
    immutability_listeners_registered,
    register_immutability_listeners,
)
from inventory_kernel.db.triggers import ALL_TRIGGER_NAMES, SQL_DIR, TRIGGER_FILES
from inventory_kernel.exceptions import ImmutabilityViolationError


class TestLedgerEntryImmutability:

    @pytest.mark.parametrize(
        "field, value",
        [("quantity", 99), ("after_quantity", 0), ("remarks", "edited"), ("department", "X")],
    )
    def test_update_blocked(self, session, ledger, item, create_lot, field, value):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        entry = ledger.find_by_lot(lot.id)[0]

        setattr(entry, field, value)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "StockTransaction"
        assert field in exc_info.value.reason

    def test_delete_blocked(self, session, ledger, item, create_lot):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        entry = ledger.find_by_lot(lot.id)[0]

        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestLotImmutability:

    @pytest.mark.parametrize(
        "field, value",
        [("lot_number", "RENAMED"), ("expiry_date", date(2030, 1, 1))],
    )
    def test_identity_fields_frozen(self, session, item, create_lot, field, value):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))

        setattr(lot, field, value)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert field in exc_info.value.reason

    def test_item_reassignment_blocked(self, session, item, create_item, create_lot):
        other = create_item(code="OTHER")
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))

        lot.item_id = other.id
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, item, create_lot):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        session.delete(lot)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_mutable_fields_still_update(self, session, lot_store, item, create_lot):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        lot_store.update_attributes(lot, location="C-03", remarks="moved")
        assert lot.location == "C-03"

    def test_frozen_field_list(self):
        assert set(FROZEN_LOT_FIELDS) == {"lot_number", "item_id", "expiry_date"}


class TestListenerRegistration:

    def test_registration_is_idempotent(self):
        register_immutability_listeners()
        register_immutability_listeners()
        assert immutability_listeners_registered()


class TestTriggerSql:
    """PostgreSQL trigger definitions ship with the package."""

    def test_trigger_files_present_and_name_every_trigger(self):
        sql = "\n".join((SQL_DIR / name).read_text() for name in TRIGGER_FILES)
        for trigger_name in ALL_TRIGGER_NAMES:
            assert trigger_name in sql
