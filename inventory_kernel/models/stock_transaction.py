"""
Module: inventory_kernel.models.stock_transaction
Responsibility: ORM persistence for the append-only stock ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.  MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - APPEND_ONLY_LEDGER: rows are immutable from creation
      (db/immutability.py, db/sql/01_stock_transaction.sql).
    - SINGLE_REVERSAL: UNIQUE (reversal_of_id).  At most one compensating
      entry can point at any transaction.
    - Ordering: UNIQUE (seq).  (transaction_date, seq) is a total order.
    - CHECK (quantity > 0) and non-negative snapshots.

Audit relevance:
    Every quantity-affecting event is one row here with its before/after
    snapshot.  Replaying a lot's rows in (transaction_date, seq) order
    reproduces the lot's current quantity.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString
from inventory_kernel.domain.dtos import TransactionDTO
from inventory_kernel.domain.values import TransactionReason, TransactionType


class StockTransaction(Base):
    """
    One immutable ledger entry.

    Contract:
        Written only by TransactionLedger.append, which validates the
        snapshot against the transaction type before adding the row.

    Guarantees:
        - quantity > 0; before_quantity, after_quantity >= 0.
        - reversal_of_id, when set, points at the entry this one compensates.
    """

    __tablename__ = "stock_transactions"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_stock_transaction_seq"),
        UniqueConstraint("reversal_of_id", name="uq_stock_transaction_reversal_of"),
        CheckConstraint("quantity > 0", name="ck_stock_transaction_quantity_positive"),
        CheckConstraint("before_quantity >= 0", name="ck_stock_transaction_before_non_negative"),
        CheckConstraint("after_quantity >= 0", name="ck_stock_transaction_after_non_negative"),
        Index("idx_stock_transaction_item_date", "item_id", "transaction_date"),
        Index("idx_stock_transaction_lot", "lot_id"),
        Index("idx_stock_transaction_date", "transaction_date"),
        Index("idx_stock_transaction_department", "department"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("stock_lots.id"),
        nullable=True,
    )

    transaction_type: Mapped[TransactionType] = mapped_column(String(20), nullable=False)

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    before_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    after_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Assigned from the injected clock; callers cannot backdate
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reason: Mapped[TransactionReason] = mapped_column(String(30), nullable=False)

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    department: Mapped[str | None] = mapped_column(String(100), nullable=True)

    requester_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    approver_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Set on TRANSFER entries and on their compensating entries
    from_location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    to_location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    remarks: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # If this is a compensating entry, points to the reversed transaction
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("stock_transactions.id"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<StockTransaction seq={self.seq} {self.transaction_type} "
            f"{self.before_quantity}->{self.after_quantity}>"
        )

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    def to_dto(self) -> TransactionDTO:
        return TransactionDTO(
            id=self.id,
            seq=self.seq,
            item_id=self.item_id,
            lot_id=self.lot_id,
            transaction_type=TransactionType(self.transaction_type),
            quantity=self.quantity,
            before_quantity=self.before_quantity,
            after_quantity=self.after_quantity,
            transaction_date=self.transaction_date,
            reason=TransactionReason(self.reason),
            reference_number=self.reference_number,
            department=self.department,
            requester_name=self.requester_name,
            approver_name=self.approver_name,
            remarks=self.remarks,
            from_location=self.from_location,
            to_location=self.to_location,
            actor_id=self.actor_id,
            reversal_of_id=self.reversal_of_id,
        )


# Total order for every ledger read
LEDGER_ORDER = (StockTransaction.transaction_date, StockTransaction.seq)
