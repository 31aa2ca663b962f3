"""
LotStore unit tests.

Tests cover:
- Lot creation: defaults, validation, duplicate lot numbers
- Lookup by id and lot number
- FEFO-ordered availability listing
- Quantity mutation never goes negative and never clamps
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.values import SYSTEM_ACTOR_ID, LotStatus
from inventory_kernel.exceptions import (
    DuplicateLotError,
    InsufficientStockError,
    ItemNotFoundError,
    LotNotFoundError,
    ValidationError,
)


class TestCreateLot:

    def test_new_lot_is_available_with_received_date_from_clock(self, lot_store, item):
        lot = lot_store.create_lot(item.id, "L1", 100, date(2025, 1, 1))

        assert lot.status == LotStatus.AVAILABLE
        assert lot.quantity == 100
        assert lot.received_date == date(2024, 1, 1)
        assert lot.version == 1
        assert lot.created_by_id == SYSTEM_ACTOR_ID

    def test_lot_number_is_stripped(self, lot_store, item):
        lot = lot_store.create_lot(item.id, "  L1  ", 10, date(2025, 1, 1))
        assert lot.lot_number == "L1"

    def test_hostile_lot_number_stored_literally(self, lot_store, item):
        hostile = "L1'; DROP TABLE stock_lots; --"
        lot = lot_store.create_lot(item.id, hostile, 10, date(2025, 1, 1))

        assert lot_store.get_lot_by_number(hostile).id == lot.id
        assert lot_store.get_lot(lot.id).quantity == 10

    def test_optional_attributes_persisted(self, lot_store, item, test_actor_id):
        lot = lot_store.create_lot(
            item.id,
            "L1",
            10,
            date(2025, 1, 1),
            manufacture_date=date(2023, 6, 1),
            supplier_name="Acme Pharma",
            unit_cost=Decimal("2.5000"),
            location="A-01",
            actor_id=test_actor_id,
        )
        dto = lot_store.get_lot(lot.id).to_dto()
        assert dto.supplier_name == "Acme Pharma"
        assert dto.unit_cost == Decimal("2.5000")
        assert dto.location == "A-01"
        assert lot.created_by_id == test_actor_id

    @pytest.mark.parametrize("quantity", [0, -1, 2.5, Decimal("10"), True])
    def test_non_positive_or_fractional_quantity_rejected(self, lot_store, item, quantity):
        with pytest.raises(ValidationError) as exc_info:
            lot_store.create_lot(item.id, "L1", quantity, date(2025, 1, 1))
        assert exc_info.value.field == "quantity"

    def test_missing_expiry_rejected(self, lot_store, item):
        with pytest.raises(ValidationError) as exc_info:
            lot_store.create_lot(item.id, "L1", 10, None)
        assert exc_info.value.field == "expiry_date"

    def test_blank_lot_number_rejected(self, lot_store, item):
        with pytest.raises(ValidationError):
            lot_store.create_lot(item.id, "   ", 10, date(2025, 1, 1))

    def test_manufacture_after_expiry_rejected(self, lot_store, item):
        with pytest.raises(ValidationError):
            lot_store.create_lot(
                item.id, "L1", 10, date(2025, 1, 1), manufacture_date=date(2025, 2, 1)
            )

    def test_negative_unit_cost_rejected(self, lot_store, item):
        with pytest.raises(ValidationError):
            lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1), unit_cost=Decimal("-1"))

    def test_unknown_item_rejected(self, lot_store):
        with pytest.raises(ItemNotFoundError):
            lot_store.create_lot(uuid4(), "L1", 10, date(2025, 1, 1))

    def test_duplicate_lot_number_rejected_and_store_unchanged(self, lot_store, item):
        lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))

        with pytest.raises(DuplicateLotError) as exc_info:
            lot_store.create_lot(item.id, "L1", 5, date(2025, 1, 1))

        assert exc_info.value.lot_number == "L1"
        assert lot_store.get_lot_by_number("L1").quantity == 10

    def test_duplicate_across_items_rejected(self, lot_store, item, create_item):
        other = create_item(code="OTHER")
        lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))
        with pytest.raises(DuplicateLotError):
            lot_store.create_lot(other.id, "L1", 10, date(2025, 1, 1))


class TestLookup:

    def test_get_unknown_lot(self, lot_store):
        lot_id = uuid4()
        with pytest.raises(LotNotFoundError) as exc_info:
            lot_store.get_lot(lot_id)
        assert exc_info.value.lot_id == str(lot_id)

    def test_get_unknown_lot_number(self, lot_store):
        with pytest.raises(LotNotFoundError) as exc_info:
            lot_store.get_lot_by_number("NOPE")
        assert exc_info.value.lot_number == "NOPE"

    def test_get_for_update_returns_lot(self, lot_store, item):
        lot = lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))
        assert lot_store.get_lot_for_update(lot.id).id == lot.id


class TestListAvailableLots:

    def test_fefo_order_and_filters(self, lot_store, item, create_item):
        late = lot_store.create_lot(item.id, "LATE", 10, date(2025, 6, 1))
        early = lot_store.create_lot(item.id, "EARLY", 10, date(2025, 1, 1))
        quarantined = lot_store.create_lot(item.id, "Q", 10, date(2024, 6, 1))
        lot_store.set_status(quarantined, LotStatus.QUARANTINE)
        empty = lot_store.create_lot(item.id, "EMPTY", 10, date(2024, 3, 1))
        lot_store.adjust_quantity(empty, -10)
        lot_store.create_lot(create_item(code="OTHER").id, "OTHER-1", 10, date(2024, 2, 1))

        lots = lot_store.list_available_lots_for_item(item.id)

        assert [lot.id for lot in lots] == [early.id, late.id]

    def test_tie_break_is_received_date_then_lot_number(self, lot_store, item):
        expiry = date(2025, 1, 1)
        lot_store.create_lot(item.id, "B", 10, expiry, received_date=date(2024, 1, 1))
        lot_store.create_lot(item.id, "A", 10, expiry, received_date=date(2024, 1, 1))
        lot_store.create_lot(item.id, "C", 10, expiry, received_date=date(2023, 12, 1))

        first = [lot.lot_number for lot in lot_store.list_available_lots_for_item(item.id)]
        second = [lot.lot_number for lot in lot_store.list_available_lots_for_item(item.id)]

        assert first == ["C", "A", "B"]
        assert first == second

    def test_expired_lots_excluded_on_request(self, lot_store, item):
        lot_store.create_lot(item.id, "OLD", 10, date(2023, 12, 31))
        lot_store.create_lot(item.id, "TODAY", 10, date(2024, 1, 1))

        lots = lot_store.list_available_lots_for_item(
            item.id, expiring_on_or_after=date(2024, 1, 1)
        )

        assert [lot.lot_number for lot in lots] == ["TODAY"]


class TestQuantityMutation:

    def test_adjust_returns_snapshot_and_bumps_version(self, lot_store, item):
        lot = lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))

        assert lot_store.adjust_quantity(lot, -4) == (10, 6)
        assert lot.quantity == 6
        assert lot.version == 2

    def test_decrement_past_zero_raises_without_clamping(self, lot_store, item):
        lot = lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))

        with pytest.raises(InsufficientStockError) as exc_info:
            lot_store.adjust_quantity(lot, -11)

        assert exc_info.value.requested == 11
        assert exc_info.value.available == 10
        assert exc_info.value.lot_id == str(lot.id)
        assert lot.quantity == 10

    def test_set_quantity_to_zero(self, lot_store, item):
        lot = lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))
        assert lot_store.set_quantity(lot, 0) == (10, 0)

    def test_set_negative_quantity_rejected(self, lot_store, item):
        lot = lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))
        with pytest.raises(ValidationError):
            lot_store.set_quantity(lot, -1)

    def test_set_status_does_not_touch_quantity(self, lot_store, item):
        lot = lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))
        lot_store.set_status(lot, LotStatus.DAMAGED)
        assert LotStatus(lot.status) == LotStatus.DAMAGED
        assert lot.quantity == 10

    @pytest.mark.parametrize("new_quantity", [1.5, "3", None])
    def test_set_fractional_quantity_rejected(self, lot_store, item, new_quantity):
        lot = lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))
        with pytest.raises(ValidationError) as exc_info:
            lot_store.set_quantity(lot, new_quantity)
        assert exc_info.value.field == "new_quantity"
        assert lot.quantity == 10

    @pytest.mark.parametrize("delta", [-0.5, True])
    def test_adjust_by_non_integer_rejected(self, lot_store, item, delta):
        lot = lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))
        with pytest.raises(ValidationError) as exc_info:
            lot_store.adjust_quantity(lot, delta)
        assert exc_info.value.field == "delta"
        assert lot.quantity == 10

    def test_unknown_status_rejected(self, lot_store, item):
        lot = lot_store.create_lot(item.id, "L1", 10, date(2025, 1, 1))
        with pytest.raises(ValidationError) as exc_info:
            lot_store.set_status(lot, "bogus")
        assert exc_info.value.field == "status"
        assert LotStatus(lot.status) == LotStatus.AVAILABLE
