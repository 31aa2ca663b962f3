"""
Module: inventory_kernel.models.item
Responsibility: ORM persistence for catalog items that lots belong to.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.  MUST NOT import from services/, selectors/, or outer layers.

The item catalog is owned outside the kernel.  This table exists so lots
and ledger entries can reference items and so stock-level queries can read
each item's minimum threshold.
"""

from sqlalchemy import Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase
from inventory_kernel.domain.dtos import ItemDTO


class Item(TrackedBase):
    """
    A stockable item (e.g. a medicine SKU).

    Guarantees:
        - ``code`` is unique.
        - ``min_stock_quantity`` >= 0 (CHECK constraint).
    """

    __tablename__ = "items"

    __table_args__ = (
        CheckConstraint("min_stock_quantity >= 0", name="ck_item_min_stock_non_negative"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="EA")

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Reorder threshold used by stock-level classification
    min_stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Item {self.code}: {self.name}>"

    def to_dto(self) -> ItemDTO:
        return ItemDTO(
            id=self.id,
            code=self.code,
            name=self.name,
            unit=self.unit,
            category=self.category,
            min_stock_quantity=self.min_stock_quantity,
            is_active=self.is_active,
        )
