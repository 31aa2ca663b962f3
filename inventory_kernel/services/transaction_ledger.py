"""
TransactionLedger -- sole write path into the append-only stock ledger.

Responsibility:
    Validates and appends ledger entries, assigns their ``seq`` and
    ``transaction_date``, and answers the ledger lookups the writers need
    (by id, by lot, by item, by date range, reversal of).  Also replays a
    lot's entries to reconstruct and verify its on-hand quantity.

Architecture position:
    Kernel > Services.  Called by LotMovementService, AllocationService and
    ReversalService in the same unit of work as the LotStore mutation the
    entry records.

Invariants enforced:
    LEDGER_CONSISTENCY -- ``append`` rejects any entry whose before/after
        snapshot does not follow from its type and quantity
        (domain.values.validate_quantity_effect).
    APPEND_ONLY_LEDGER -- there is no update or delete method; ORM
        listeners and PostgreSQL triggers reject both.
    SINGLE_REVERSAL -- a second entry with the same reversal_of_id hits the
        UNIQUE constraint and surfaces as TransactionAlreadyReversedError.

Failure modes:
    - ValidationError on an inconsistent entry.
    - TransactionNotFoundError from ``get``.
    - LedgerInconsistencyError from ``verify_lot_balance`` when replay and
      on-hand quantity disagree or the before/after chain is broken.

Audit relevance:
    ``transaction_date`` comes from the injected clock, never from the
    caller.  (transaction_date, seq) gives every query a total order.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock, to_utc
from inventory_kernel.domain.values import (
    TransactionReason,
    TransactionType,
    apply_effect,
    parse_reason,
    parse_transaction_type,
    validate_quantity_effect,
)
from inventory_kernel.exceptions import (
    LedgerInconsistencyError,
    TransactionAlreadyReversedError,
    TransactionNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.lot import StockLot
from inventory_kernel.models.stock_transaction import LEDGER_ORDER, StockTransaction
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.sequence_service import SequenceService

logger = get_logger("services.transaction_ledger")


class TransactionLedger(BaseService):
    """
    Append-only stock ledger.

    Contract:
        ``append`` validates, numbers, timestamps and flushes one entry.
        It never commits.

    Guarantees:
        - Every stored entry satisfies validate_quantity_effect.
        - seq values are unique and increasing in commit order.

    Non-goals:
        - Does not mutate lots.  Callers apply the change through LotStore
          and pass the resulting snapshot here.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequences = sequence_service or SequenceService(session)

    def append(
        self,
        transaction_type: TransactionType,
        item_id: UUID,
        lot_id: UUID | None,
        quantity: int,
        before_quantity: int,
        after_quantity: int,
        reason: TransactionReason,
        reference_number: str | None = None,
        department: str | None = None,
        requester_name: str | None = None,
        approver_name: str | None = None,
        remarks: str | None = None,
        from_location: str | None = None,
        to_location: str | None = None,
        actor_id: UUID | None = None,
        reversal_of_id: UUID | None = None,
    ) -> StockTransaction:
        """
        Validate and append one entry.

        Raises:
            ValidationError: snapshot inconsistent with type and quantity.
            TransactionAlreadyReversedError: reversal_of_id already used.
        """
        transaction_type = parse_transaction_type(transaction_type)
        reason = parse_reason(reason)

        # INVARIANT: LEDGER_CONSISTENCY
        validate_quantity_effect(transaction_type, quantity, before_quantity, after_quantity)

        entry = StockTransaction(
            seq=self._sequences.next_value(SequenceService.STOCK_TRANSACTION),
            item_id=item_id,
            lot_id=lot_id,
            transaction_type=transaction_type,
            quantity=quantity,
            before_quantity=before_quantity,
            after_quantity=after_quantity,
            transaction_date=self._clock.now_utc(),
            reason=reason,
            reference_number=reference_number,
            department=department,
            requester_name=requester_name,
            approver_name=approver_name,
            remarks=remarks,
            from_location=from_location,
            to_location=to_location,
            actor_id=actor_id,
            reversal_of_id=reversal_of_id,
        )
        self.session.add(entry)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if reversal_of_id is not None and "reversal_of" in str(exc.orig).lower():
                raise TransactionAlreadyReversedError(reversal_of_id) from exc
            raise

        logger.info(
            "ledger_entry_appended",
            extra={
                "transaction_id": str(entry.id),
                "seq": entry.seq,
                "transaction_type": transaction_type.value,
                "lot_id": str(lot_id) if lot_id else None,
                "quantity": quantity,
                "before_quantity": before_quantity,
                "after_quantity": after_quantity,
                "reason": reason.value,
            },
        )
        return entry

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, transaction_id: UUID, for_update: bool = False) -> StockTransaction:
        if for_update:
            entry = self.session.execute(
                select(StockTransaction)
                .where(StockTransaction.id == transaction_id)
                .with_for_update()
            ).scalar_one_or_none()
        else:
            entry = self.session.get(StockTransaction, transaction_id)
        if entry is None:
            raise TransactionNotFoundError(transaction_id)
        return entry

    def find_by_lot(self, lot_id: UUID) -> list[StockTransaction]:
        return list(
            self.session.execute(
                select(StockTransaction)
                .where(StockTransaction.lot_id == lot_id)
                .order_by(*LEDGER_ORDER)
            ).scalars().all()
        )

    def find_by_item(
        self,
        item_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[StockTransaction]:
        stmt = select(StockTransaction).where(StockTransaction.item_id == item_id)
        if start is not None:
            stmt = stmt.where(StockTransaction.transaction_date >= to_utc(start))
        if end is not None:
            stmt = stmt.where(StockTransaction.transaction_date < to_utc(end))
        return list(self.session.execute(stmt.order_by(*LEDGER_ORDER)).scalars().all())

    def find_by_date_range(self, start: datetime, end: datetime) -> list[StockTransaction]:
        """Entries with start <= transaction_date < end."""
        return list(
            self.session.execute(
                select(StockTransaction)
                .where(
                    StockTransaction.transaction_date >= to_utc(start),
                    StockTransaction.transaction_date < to_utc(end),
                )
                .order_by(*LEDGER_ORDER)
            ).scalars().all()
        )

    def find_reversal_of(self, transaction_id: UUID) -> StockTransaction | None:
        return self.session.execute(
            select(StockTransaction).where(StockTransaction.reversal_of_id == transaction_id)
        ).scalar_one_or_none()

    def count_for_lot(self, lot_id: UUID) -> int:
        return len(self.find_by_lot(lot_id))

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def replay_lot_balance(self, lot_id: UUID) -> int:
        """
        Reconstruct a lot's quantity from its ledger entries.

        Each entry's before_quantity must equal the running balance; the
        first entry starts from zero.

        Raises:
            LedgerInconsistencyError: the before/after chain is broken.
        """
        balance = 0
        for entry in self.find_by_lot(lot_id):
            if entry.before_quantity != balance:
                raise LedgerInconsistencyError(
                    lot_id,
                    expected=entry.before_quantity,
                    replayed=balance,
                    detail=f"chain broken at seq {entry.seq}",
                )
            balance = apply_effect(
                balance,
                TransactionType(entry.transaction_type),
                entry.quantity,
                entry.after_quantity,
            )
        return balance

    def verify_lot_balance(self, lot: StockLot) -> int:
        """
        Replay the lot's ledger and compare with its on-hand quantity.

        Returns:
            The replayed quantity (equal to lot.quantity).

        Raises:
            LedgerInconsistencyError: replay differs from lot.quantity.
        """
        replayed = self.replay_lot_balance(lot.id)
        if replayed != lot.quantity:
            logger.error(
                "ledger_inconsistency_detected",
                extra={"lot_id": str(lot.id), "expected": lot.quantity, "replayed": replayed},
            )
            raise LedgerInconsistencyError(lot.id, expected=lot.quantity, replayed=replayed)
        return replayed
