"""
Module: inventory_kernel.models.lot
Responsibility: ORM persistence for stock lots -- dated batches of one item
    with their own on-hand quantity.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.  MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - NON_NEGATIVE_STOCK: CHECK (quantity >= 0).  LotStore raises
      InsufficientStockError first; the constraint is the backstop.
    - UNIQUE_LOT_NUMBER: UNIQUE (lot_number).
    - lot_number, item_id and expiry_date never change after creation and
      lots are never deleted (db/immutability.py, db/sql/02_stock_lot.sql).
    - Optimistic versioning: ``version`` is SQLAlchemy's version_id_col, so
      every UPDATE carries ``WHERE version = :expected``.  A concurrent
      writer that got there first surfaces as StaleDataError.

Audit relevance:
    The lot row holds only the current state.  Its history lives in
    stock_transactions; replaying those entries reproduces ``quantity``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString
from inventory_kernel.domain.dtos import LotDTO
from inventory_kernel.domain.values import LotStatus


class StockLot(TrackedBase):
    """
    A lot of one item.

    Contract:
        Only LotStore mutates ``quantity`` and ``status``.  Every quantity
        mutation is paired with exactly one ledger entry in the same unit
        of work.

    Guarantees:
        - quantity >= 0 at every commit.
        - ``version`` increases on every UPDATE.

    Non-goals:
        - Does not derive expiry from the date.  ``status == EXPIRED`` only
          records a disposal.
    """

    __tablename__ = "stock_lots"

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_stock_lot_quantity_non_negative"),
        Index("idx_stock_lot_item_expiry", "item_id", "expiry_date"),
        Index("idx_stock_lot_status", "status"),
        Index("idx_stock_lot_location", "location"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    lot_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)

    manufacture_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    received_date: Mapped[date] = mapped_column(Date, nullable=False)

    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(19, 4), nullable=True)

    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[LotStatus] = mapped_column(
        String(20),
        nullable=False,
        default=LotStatus.AVAILABLE,
    )

    remarks: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<StockLot {self.lot_number} qty={self.quantity} status={self.status}>"

    def to_dto(self) -> LotDTO:
        return LotDTO(
            id=self.id,
            item_id=self.item_id,
            lot_number=self.lot_number,
            quantity=self.quantity,
            expiry_date=self.expiry_date,
            received_date=self.received_date,
            status=LotStatus(self.status),
            manufacture_date=self.manufacture_date,
            supplier_name=self.supplier_name,
            unit_cost=self.unit_cost,
            location=self.location,
            remarks=self.remarks,
            version=self.version,
        )
