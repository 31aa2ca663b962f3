"""
LotMovementService -- single-lot stock movements.

Responsibility:
    Every quantity change that targets one named lot: receipt of a new lot,
    receipt onto an existing lot, absolute adjustment, customer return,
    disposal, location transfer, and the physical inventory audit.  Each
    movement is one LotStore mutation paired with one ledger entry.

Architecture position:
    Kernel > Services.  Called by InventoryOrchestrator.  Outbound
    withdrawals by item go through AllocationService instead.

Invariants enforced:
    NON_NEGATIVE_STOCK -- decrements go through LotStore.adjust_quantity;
        disposal never clamps.
    LEDGER_CONSISTENCY -- every entry is appended through TransactionLedger.
    Terminal statuses -- a disposal (or adjustment with a disposal reason)
        that takes a lot to zero retires it as EXPIRED or DAMAGED.

Failure modes:
    - LotNotFoundError, ItemNotFoundError, DuplicateLotError.
    - ValidationError for quantities that are not positive integers, unknown
      reasons or statuses, receipts or returns onto retired lots, no-op
      adjustments, and transfers of empty lots or to the same location.
    - InsufficientStockError when a disposal exceeds on-hand quantity.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import AuditCount, AuditLine, InventoryAuditResult
from inventory_kernel.domain.values import (
    DISPOSAL_REASONS,
    TERMINAL_LOT_STATUSES,
    LotStatus,
    TransactionReason,
    TransactionType,
    parse_reason,
    parse_status,
    require_whole_quantity,
    terminal_status_for,
)
from inventory_kernel.exceptions import ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.lot import StockLot
from inventory_kernel.models.stock_transaction import StockTransaction
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.lot_store import LotStore
from inventory_kernel.services.transaction_ledger import TransactionLedger

logger = get_logger("services.lot_movement")


def _require_active(lot: StockLot, action: str) -> None:
    status = LotStatus(lot.status)
    if status in TERMINAL_LOT_STATUSES:
        raise ValidationError("status", f"cannot {action} a {status.value} lot")


class LotMovementService(BaseService):
    """Single-lot movements, each paired with one ledger entry."""

    def __init__(
        self,
        session: Session,
        lot_store: LotStore,
        ledger: TransactionLedger,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._lots = lot_store
        self._ledger = ledger
        self._clock = clock or SystemClock()

    def receive_lot(
        self,
        item_id: UUID,
        lot_number: str,
        quantity: int,
        expiry_date: date,
        received_date: date | None = None,
        manufacture_date: date | None = None,
        supplier_name: str | None = None,
        unit_cost: Decimal | None = None,
        location: str | None = None,
        remarks: str | None = None,
        reference_number: str | None = None,
        actor_id: UUID | None = None,
    ) -> tuple[StockLot, StockTransaction]:
        """Create a lot and record its INBOUND entry (0 -> quantity, PURCHASE)."""
        lot = self._lots.create_lot(
            item_id=item_id,
            lot_number=lot_number,
            quantity=quantity,
            expiry_date=expiry_date,
            received_date=received_date,
            manufacture_date=manufacture_date,
            supplier_name=supplier_name,
            unit_cost=unit_cost,
            location=location,
            remarks=remarks,
            actor_id=actor_id,
        )
        entry = self._ledger.append(
            TransactionType.INBOUND,
            item_id=item_id,
            lot_id=lot.id,
            quantity=quantity,
            before_quantity=0,
            after_quantity=quantity,
            reason=TransactionReason.PURCHASE,
            reference_number=reference_number,
            remarks=remarks,
            actor_id=actor_id,
        )
        return lot, entry

    def receive_inbound(
        self,
        lot_id: UUID,
        quantity: int,
        reason: TransactionReason = TransactionReason.PURCHASE,
        reference_number: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> StockTransaction:
        """Receive additional stock onto an existing, non-retired lot."""
        require_whole_quantity("quantity", quantity)
        reason = parse_reason(reason)
        lot = self._lots.get_lot_for_update(lot_id)
        _require_active(lot, "receive onto")

        before, after = self._lots.adjust_quantity(lot, quantity, actor_id=actor_id)
        return self._ledger.append(
            TransactionType.INBOUND,
            item_id=lot.item_id,
            lot_id=lot.id,
            quantity=quantity,
            before_quantity=before,
            after_quantity=after,
            reason=reason,
            reference_number=reference_number,
            remarks=remarks,
            actor_id=actor_id,
        )

    def adjust_lot(
        self,
        lot_id: UUID,
        new_quantity: int,
        reason: TransactionReason,
        remarks: str | None = None,
        approver_name: str | None = None,
        actor_id: UUID | None = None,
    ) -> StockTransaction:
        """
        Set a lot to an absolute quantity.

        Taking a lot to zero with a disposal reason (EXPIRED, DAMAGED,
        LOST) retires it.

        Raises:
            ValidationError: negative target, or target equals current.
        """
        reason = parse_reason(reason)
        require_whole_quantity("new_quantity", new_quantity, minimum=0)

        lot = self._lots.get_lot_for_update(lot_id)
        if new_quantity == lot.quantity:
            raise ValidationError(
                "new_quantity", f"lot already holds {new_quantity}; nothing to adjust"
            )

        before, after = self._lots.set_quantity(lot, new_quantity, actor_id=actor_id)
        entry = self._ledger.append(
            TransactionType.ADJUSTMENT,
            item_id=lot.item_id,
            lot_id=lot.id,
            quantity=abs(after - before),
            before_quantity=before,
            after_quantity=after,
            reason=reason,
            approver_name=approver_name,
            remarks=remarks,
            actor_id=actor_id,
        )

        if after == 0 and reason in DISPOSAL_REASONS:
            self._lots.set_status(lot, terminal_status_for(reason), actor_id=actor_id)
        return entry

    def receive_return(
        self,
        lot_id: UUID,
        quantity: int,
        reason: TransactionReason = TransactionReason.OTHER,
        department: str | None = None,
        requester_name: str | None = None,
        reference_number: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> StockTransaction:
        """
        Put returned units back onto the lot they were issued from.

        Retired (EXPIRED or DAMAGED) lots do not take returns; returned
        units for them are disposed of outside the lot.
        """
        require_whole_quantity("quantity", quantity)
        reason = parse_reason(reason)
        lot = self._lots.get_lot_for_update(lot_id)
        _require_active(lot, "return onto")

        before, after = self._lots.adjust_quantity(lot, quantity, actor_id=actor_id)
        return self._ledger.append(
            TransactionType.RETURN,
            item_id=lot.item_id,
            lot_id=lot.id,
            quantity=quantity,
            before_quantity=before,
            after_quantity=after,
            reason=reason,
            reference_number=reference_number,
            department=department,
            requester_name=requester_name,
            remarks=remarks,
            actor_id=actor_id,
        )

    def dispose_lot(
        self,
        lot_id: UUID,
        quantity: int,
        reason: TransactionReason = TransactionReason.EXPIRED,
        approver_name: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> StockTransaction:
        """
        Remove ``quantity`` units from a lot as waste.

        Raises:
            InsufficientStockError: quantity exceeds on-hand (no clamping).
        """
        reason = parse_reason(reason)
        require_whole_quantity("quantity", quantity)
        lot = self._lots.get_lot_for_update(lot_id)

        before, after = self._lots.adjust_quantity(lot, -quantity, actor_id=actor_id)
        entry = self._ledger.append(
            TransactionType.DISPOSAL,
            item_id=lot.item_id,
            lot_id=lot.id,
            quantity=quantity,
            before_quantity=before,
            after_quantity=after,
            reason=reason,
            approver_name=approver_name,
            remarks=remarks,
            actor_id=actor_id,
        )

        if after == 0:
            self._lots.set_status(lot, terminal_status_for(reason), actor_id=actor_id)
        return entry

    def transfer_lot(
        self,
        lot_id: UUID,
        new_location: str,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> StockTransaction:
        """
        Move a whole lot to ``new_location``.

        Recorded as a TRANSFER of the on-hand quantity with before == after.
        """
        if new_location is None or not new_location.strip():
            raise ValidationError("new_location", "must not be blank")
        new_location = new_location.strip()

        lot = self._lots.get_lot_for_update(lot_id)
        if lot.quantity == 0:
            raise ValidationError("quantity", "cannot transfer an empty lot")
        if lot.location == new_location:
            raise ValidationError("new_location", f"lot is already at {new_location}")

        from_location = lot.location
        self._lots.update_attributes(lot, location=new_location, actor_id=actor_id)
        entry = self._ledger.append(
            TransactionType.TRANSFER,
            item_id=lot.item_id,
            lot_id=lot.id,
            quantity=lot.quantity,
            before_quantity=lot.quantity,
            after_quantity=lot.quantity,
            reason=TransactionReason.OTHER,
            remarks=remarks,
            from_location=from_location,
            to_location=new_location,
            actor_id=actor_id,
        )

        logger.info(
            "lot_transferred",
            extra={"lot_id": str(lot.id), "from_location": from_location, "to_location": new_location},
        )
        return entry

    def update_lot_status(
        self,
        lot_id: UUID,
        status: LotStatus,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> StockLot:
        """Change a lot's stored status (e.g. QUARANTINE, RESERVED).  No ledger entry."""
        lot = self._lots.get_lot_for_update(lot_id)
        self._lots.set_status(lot, parse_status(status), actor_id=actor_id)
        if remarks is not None:
            self._lots.update_attributes(lot, remarks=remarks, actor_id=actor_id)
        return lot

    def perform_inventory_audit(
        self,
        counts: list[AuditCount],
        auditor: str | None = None,
        actor_id: UUID | None = None,
    ) -> InventoryAuditResult:
        """
        Reconcile physically counted quantities with the system.

        Every lot whose count differs gets one ADJUSTMENT with reason
        INVENTORY_CHECK.  Lots are locked in lot-id order.

        Raises:
            ValidationError: a lot is counted twice or a count is negative.
        """
        seen: set[UUID] = set()
        for count in counts:
            if count.lot_id in seen:
                raise ValidationError("counts", f"lot {count.lot_id} counted more than once")
            require_whole_quantity("counted_quantity", count.counted_quantity, minimum=0)
            seen.add(count.lot_id)

        lines: list[AuditLine] = []
        for count in sorted(counts, key=lambda c: str(c.lot_id)):
            lot = self._lots.get_lot_for_update(count.lot_id)
            system_quantity = lot.quantity
            transaction_id = None
            if count.counted_quantity != system_quantity:
                before, after = self._lots.set_quantity(lot, count.counted_quantity, actor_id=actor_id)
                entry = self._ledger.append(
                    TransactionType.ADJUSTMENT,
                    item_id=lot.item_id,
                    lot_id=lot.id,
                    quantity=abs(after - before),
                    before_quantity=before,
                    after_quantity=after,
                    reason=TransactionReason.INVENTORY_CHECK,
                    requester_name=auditor,
                    remarks=count.remarks,
                    actor_id=actor_id,
                )
                transaction_id = entry.id
            lines.append(
                AuditLine(
                    lot_id=lot.id,
                    lot_number=lot.lot_number,
                    system_quantity=system_quantity,
                    counted_quantity=count.counted_quantity,
                    transaction_id=transaction_id,
                )
            )

        result = InventoryAuditResult(
            audited_at=self._clock.now_utc(),
            auditor=auditor,
            lines=tuple(lines),
        )
        logger.info(
            "inventory_audit_completed",
            extra={
                "lots_audited": result.lots_audited,
                "discrepancies": len(result.discrepancies),
                "net_difference": result.net_difference,
            },
        )
        return result
