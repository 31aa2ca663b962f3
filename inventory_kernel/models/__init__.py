"""ORM models for the inventory kernel."""

from inventory_kernel.models.item import Item
from inventory_kernel.models.lot import StockLot
from inventory_kernel.models.sequence import SequenceCounter
from inventory_kernel.models.stock_transaction import StockTransaction

__all__ = [
    "Item",
    "SequenceCounter",
    "StockLot",
    "StockTransaction",
]
