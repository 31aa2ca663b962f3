"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing ``seq`` values for ledger entries.  The
    ledger orders entries by (transaction_date, seq), so seq is the
    deterministic tie-break for entries written at the same instant.

Architecture position:
    Kernel > Services -- called by TransactionLedger.append.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of the next
      value.  MAX(seq) + 1 is never used.
    - Transactional: the increment is only visible after the caller
      commits.  Rollback returns the value.

Failure modes:
    - ConcurrencyConflictError when another unit of work incremented or
      created the counter first (optimistic version check, or UNIQUE on
      first creation).  The orchestrator retries.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.exceptions import ConcurrencyConflictError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.sequence import SequenceCounter
from inventory_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceService(BaseService):
    """
    Service for generating transactional sequence numbers.

    Guarantees:
        - Returns a value strictly greater than any value previously
          committed for the same name.
        - ``SELECT ... FOR UPDATE`` serializes allocations on PostgreSQL;
          the counter's version column catches lost updates elsewhere.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    STOCK_TRANSACTION = "stock_transaction"

    WELL_KNOWN = (STOCK_TRANSACTION,)

    def __init__(self, session: Session):
        super().__init__(session)

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the counter row, increment it and return the new value.

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              returned value for ``sequence_name``.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use of this sequence
            counter = SequenceCounter(name=sequence_name, current_value=1)
            self.session.add(counter)
            try:
                self.session.flush()
            except IntegrityError as exc:
                logger.debug(
                    "sequence_counter_race",
                    extra={"sequence_name": sequence_name},
                )
                raise ConcurrencyConflictError("SequenceCounter", sequence_name) from exc
            logger.debug(
                "sequence_allocated",
                extra={"sequence_name": sequence_name, "value": 1},
            )
            return 1

        counter.current_value += 1
        self._flush("SequenceCounter", sequence_name)

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if the sequence is unknown."""
        counter = self.session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def initialize_sequences(self) -> None:
        """Create any missing well-known counters at value 0."""
        for name in self.WELL_KNOWN:
            exists = self.session.execute(
                select(SequenceCounter.id).where(SequenceCounter.name == name)
            ).scalar_one_or_none()
            if exists is None:
                self.session.add(SequenceCounter(name=name, current_value=0))
        self.session.flush()
