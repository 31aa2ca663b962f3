"""
ReversalService tests.

Tests cover:
- Inverse effect per original type (INBOUND, RETURN, OUTBOUND, DISPOSAL,
  ADJUSTMENT, TRANSFER)
- Exactly one compensating ADJUSTMENT linked via reversal_of_id
- The original entry is never modified
- Rejections: unknown entry, double reversal, reversing a reversal,
  reversing consumed inbound stock
- Retired lots come back to AVAILABLE when stock is restored
"""

from datetime import date
from uuid import uuid4

import pytest

from inventory_kernel.domain.values import LotStatus, TransactionReason, TransactionType
from inventory_kernel.exceptions import (
    InsufficientStockError,
    ReversalNotAllowedError,
    TransactionAlreadyReversedError,
    TransactionNotFoundError,
)
from inventory_kernel.services.reversal_service import REVERSAL_REFERENCE_PREFIX


class TestInverseEffects:

    def test_outbound_reversal_restores_quantity(
        self, reversal_service, allocation_service, ledger, item, create_lot
    ):
        lot = create_lot(item, "L2", 50, date(2025, 6, 1))
        result = allocation_service.allocate_outbound(item.id, 30, department="Ward 1")
        original_id = result.transaction_ids[0]
        original = ledger.get(original_id)
        original_snapshot = (original.quantity, original.before_quantity, original.after_quantity)

        compensating = reversal_service.reverse(original_id, "wrong patient")

        assert lot.quantity == 50
        assert TransactionType(compensating.transaction_type) == TransactionType.ADJUSTMENT
        assert TransactionReason(compensating.reason) == TransactionReason.OTHER
        assert compensating.reversal_of_id == original_id
        assert compensating.remarks == "wrong patient"
        assert compensating.reference_number == f"{REVERSAL_REFERENCE_PREFIX}{original.seq}"
        assert compensating.department == "Ward 1"
        assert (compensating.before_quantity, compensating.after_quantity) == (20, 50)
        assert ledger.count_for_lot(lot.id) == 3

        original = ledger.get(original_id)
        assert (original.quantity, original.before_quantity, original.after_quantity) == original_snapshot
        assert original.reversal_of_id is None

    def test_inbound_reversal_decrements(self, reversal_service, movement_service, item, create_lot):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        receipt = movement_service.receive_inbound(lot.id, 5)

        reversal_service.reverse(receipt.id, "duplicate receipt")

        assert lot.quantity == 10

    def test_return_reversal_decrements(self, reversal_service, movement_service, item, create_lot):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        ret = movement_service.receive_return(lot.id, 4)

        reversal_service.reverse(ret.id, "not returned")

        assert lot.quantity == 10

    def test_adjustment_reversal_restores_before_quantity(
        self, reversal_service, movement_service, item, create_lot
    ):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        adjustment = movement_service.adjust_lot(lot.id, 4, TransactionReason.INVENTORY_CHECK)

        compensating = reversal_service.reverse(adjustment.id, "miscount")

        assert lot.quantity == 10
        assert compensating.quantity == 6

    def test_transfer_reversal_moves_lot_back(
        self, reversal_service, movement_service, ledger, item, create_lot
    ):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1), location="A-01")
        transfer = movement_service.transfer_lot(lot.id, "B-02")

        compensating = reversal_service.reverse(transfer.id, "wrong shelf")

        assert lot.location == "A-01"
        assert lot.quantity == 10
        assert (compensating.before_quantity, compensating.after_quantity) == (10, 10)
        assert compensating.quantity == 10
        assert (compensating.from_location, compensating.to_location) == ("B-02", "A-01")
        assert ledger.verify_lot_balance(lot) == 10


class TestRetiredLots:

    def test_disposal_reversal_reactivates_lot(self, reversal_service, movement_service, item, create_lot):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        disposal = movement_service.dispose_lot(lot.id, 10, TransactionReason.DAMAGED)
        assert LotStatus(lot.status) == LotStatus.DAMAGED

        reversal_service.reverse(disposal.id, "not actually damaged")

        assert lot.quantity == 10
        assert LotStatus(lot.status) == LotStatus.AVAILABLE

    def test_date_expired_lot_stays_retired(self, reversal_service, movement_service, item, create_lot):
        lot = create_lot(item, "OLD", 10, date(2023, 12, 1))
        disposal = movement_service.dispose_lot(lot.id, 10)

        reversal_service.reverse(disposal.id, "recount")

        assert lot.quantity == 10
        assert LotStatus(lot.status) == LotStatus.EXPIRED

    def test_disposal_adjustment_reversal_reactivates_lot(
        self, reversal_service, movement_service, item, create_lot
    ):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        adjustment = movement_service.adjust_lot(lot.id, 0, TransactionReason.LOST)
        assert LotStatus(lot.status) == LotStatus.EXPIRED

        reversal_service.reverse(adjustment.id, "found on shelf")

        assert lot.quantity == 10
        assert LotStatus(lot.status) == LotStatus.AVAILABLE

    def test_status_set_after_draining_allocation_is_kept(
        self, reversal_service, allocation_service, movement_service, item, create_lot
    ):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        result = allocation_service.allocate_outbound(item.id, 10)
        movement_service.update_lot_status(lot.id, LotStatus.DAMAGED)

        reversal_service.reverse(result.transaction_ids[0], "dispensed in error")

        assert lot.quantity == 10
        assert LotStatus(lot.status) == LotStatus.DAMAGED

    def test_status_changed_after_disposal_is_kept(
        self, reversal_service, movement_service, item, create_lot
    ):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        disposal = movement_service.dispose_lot(lot.id, 10, TransactionReason.EXPIRED)
        movement_service.update_lot_status(lot.id, LotStatus.DAMAGED)

        reversal_service.reverse(disposal.id, "recount")

        assert lot.quantity == 10
        assert LotStatus(lot.status) == LotStatus.DAMAGED

    def test_non_disposal_adjustment_to_zero_leaves_status(
        self, reversal_service, movement_service, item, create_lot
    ):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        adjustment = movement_service.adjust_lot(lot.id, 0, TransactionReason.INVENTORY_CHECK)
        movement_service.update_lot_status(lot.id, LotStatus.QUARANTINE)

        reversal_service.reverse(adjustment.id, "miscount")

        assert lot.quantity == 10
        assert LotStatus(lot.status) == LotStatus.QUARANTINE


class TestRejections:

    def test_unknown_transaction(self, reversal_service):
        with pytest.raises(TransactionNotFoundError):
            reversal_service.reverse(uuid4(), "x")

    def test_double_reversal_rejected(self, reversal_service, allocation_service, ledger, item, create_lot):
        lot = create_lot(item, "L1", 50, date(2025, 1, 1))
        tid = allocation_service.allocate_outbound(item.id, 30).transaction_ids[0]
        first = reversal_service.reverse(tid, "first")

        with pytest.raises(TransactionAlreadyReversedError) as exc_info:
            reversal_service.reverse(tid, "second")

        assert exc_info.value.reversal_id == str(first.id)
        assert lot.quantity == 50
        assert ledger.count_for_lot(lot.id) == 3

    def test_reversing_a_reversal_rejected(self, reversal_service, allocation_service, item, create_lot):
        create_lot(item, "L1", 50, date(2025, 1, 1))
        tid = allocation_service.allocate_outbound(item.id, 30).transaction_ids[0]
        compensating = reversal_service.reverse(tid, "first")

        with pytest.raises(ReversalNotAllowedError):
            reversal_service.reverse(compensating.id, "undo")

    def test_consumed_inbound_cannot_be_reversed(
        self, reversal_service, allocation_service, ledger, item, create_lot
    ):
        lot = create_lot(item, "L1", 10, date(2025, 1, 1))
        inbound = ledger.find_by_lot(lot.id)[0]
        allocation_service.allocate_outbound(item.id, 8)

        with pytest.raises(InsufficientStockError) as exc_info:
            reversal_service.reverse(inbound.id, "bad receipt")

        assert exc_info.value.requested == 10
        assert exc_info.value.available == 2
        assert lot.quantity == 2
