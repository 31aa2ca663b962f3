"""
ReversalService -- compensating entries for ledger transactions.

Responsibility:
    Validates reversal preconditions, applies the inverse quantity effect
    of an original entry to its lot, and appends exactly one compensating
    ADJUSTMENT that references the original.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes LotStore and
    TransactionLedger.

Invariants enforced:
    APPEND_ONLY_LEDGER -- the original entry is never touched; reversal
        state is derived from the compensating entry's reversal_of_id.
    SINGLE_REVERSAL -- checked here and backed by UNIQUE (reversal_of_id).
    NON_NEGATIVE_STOCK -- the inverse effect goes through LotStore.

Failure modes:
    - TransactionNotFoundError: no such entry.
    - ReversalNotAllowedError: the entry is itself a compensating entry, or
      it has no lot.
    - TransactionAlreadyReversedError: a compensating entry already exists.
    - InsufficientStockError: undoing an increase would take the lot below
      zero (stock from that receipt has since been consumed).

Audit relevance:
    The compensating entry carries reason OTHER, reference "REV-<seq of
    original>" and the caller's reason in remarks.

Design principles:
    1. Ledger rows never change.
    2. One canonical linkage -- reversal_of_id is the single source of truth.
    3. Undoing a reversal is a new, explicit operation, not a second reversal.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.stock_status import is_expired
from inventory_kernel.domain.values import (
    DECREASING_TYPES,
    DISPOSAL_REASONS,
    INCREASING_TYPES,
    LotStatus,
    TransactionReason,
    TransactionType,
    terminal_status_for,
)
from inventory_kernel.exceptions import (
    ReversalNotAllowedError,
    TransactionAlreadyReversedError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.lot import StockLot
from inventory_kernel.models.stock_transaction import StockTransaction
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.lot_store import LotStore
from inventory_kernel.services.transaction_ledger import TransactionLedger

logger = get_logger("services.reversal")

REVERSAL_REFERENCE_PREFIX = "REV-"


class ReversalService(BaseService):
    """
    Reverses ledger entries by compensation.

    Contract:
        ``reverse`` returns the new compensating entry.  Flush-only.

    Guarantees:
        - With no intervening mutation, the lot returns to the original
          entry's before_quantity.
        - Exactly one new ADJUSTMENT is appended.

    Non-goals:
        - Does not reverse compensating entries.
        - Does not reverse multi-lot allocations as a group; each OUTBOUND
          entry of an allocation is reversed on its own.
    """

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

    def reverse(
        self,
        transaction_id: UUID,
        reason: str,
        actor_id: UUID | None = None,
    ) -> StockTransaction:
        original = self._ledger.get(transaction_id, for_update=True)

        if original.reversal_of_id is not None:
            raise ReversalNotAllowedError(
                transaction_id, "compensating entries cannot be reversed"
            )
        if original.lot_id is None:
            raise ReversalNotAllowedError(transaction_id, "entry is not tied to a lot")

        existing = self._ledger.find_reversal_of(transaction_id)
        if existing is not None:
            raise TransactionAlreadyReversedError(transaction_id, existing.id)

        lot = self._lots.get_lot_for_update(original.lot_id)
        original_type = TransactionType(original.transaction_type)

        if original_type in INCREASING_TYPES:
            before, after = self._lots.adjust_quantity(lot, -original.quantity, actor_id=actor_id)
        elif original_type in DECREASING_TYPES:
            before, after = self._lots.adjust_quantity(lot, original.quantity, actor_id=actor_id)
        elif original_type == TransactionType.ADJUSTMENT:
            before, after = self._lots.set_quantity(lot, original.before_quantity, actor_id=actor_id)
        else:
            # TRANSFER: no quantity effect, move the lot back
            before = after = lot.quantity
            if original.from_location is not None:
                self._lots.update_attributes(lot, location=original.from_location, actor_id=actor_id)

        quantity = abs(after - before) or original.quantity

        compensating = self._ledger.append(
            TransactionType.ADJUSTMENT,
            item_id=original.item_id,
            lot_id=lot.id,
            quantity=quantity,
            before_quantity=before,
            after_quantity=after,
            reason=TransactionReason.OTHER,
            reference_number=f"{REVERSAL_REFERENCE_PREFIX}{original.seq}",
            department=original.department,
            remarks=reason,
            from_location=original.to_location if original_type == TransactionType.TRANSFER else None,
            to_location=original.from_location if original_type == TransactionType.TRANSFER else None,
            actor_id=actor_id,
            reversal_of_id=original.id,
        )

        self._restore_status_if_retired(lot, original, after, actor_id)

        logger.info(
            "reversal_completed",
            extra={
                "original_transaction_id": str(original.id),
                "original_seq": original.seq,
                "original_type": original_type.value,
                "reversal_transaction_id": str(compensating.id),
                "lot_id": str(lot.id),
                "before_quantity": before,
                "after_quantity": after,
            },
        )
        return compensating

    def _restore_status_if_retired(
        self,
        lot: StockLot,
        original: StockTransaction,
        after: int,
        actor_id: UUID | None,
    ) -> None:
        """
        A lot retired to zero by the original entry becomes AVAILABLE again
        once stock is restored, unless its expiry date has passed.

        Only the status that the original entry itself set is undone.  A
        status applied afterwards (e.g. DAMAGED via update_lot_status on a
        lot an allocation had emptied) is left in place.
        """
        if after <= 0 or original.after_quantity != 0:
            return
        if not _retired_lot(original):
            return
        if LotStatus(lot.status) != terminal_status_for(original.reason):
            return
        if is_expired(lot.expiry_date, self._clock.today()):
            return
        self._lots.set_status(lot, LotStatus.AVAILABLE, actor_id=actor_id)


def _retired_lot(entry: StockTransaction) -> bool:
    """True if ``entry`` is a movement that retires a lot it empties."""
    entry_type = TransactionType(entry.transaction_type)
    if entry_type == TransactionType.DISPOSAL:
        return True
    return (
        entry_type == TransactionType.ADJUSTMENT
        and TransactionReason(entry.reason) in DISPOSAL_REASONS
    )
