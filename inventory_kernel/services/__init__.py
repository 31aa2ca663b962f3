"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.allocation_service import AllocationService
from inventory_kernel.services.inventory_orchestrator import InventoryOrchestrator, UnitOfWork
from inventory_kernel.services.lot_movement_service import LotMovementService
from inventory_kernel.services.lot_store import LotStore
from inventory_kernel.services.reversal_service import ReversalService
from inventory_kernel.services.sequence_service import SequenceService
from inventory_kernel.services.transaction_ledger import TransactionLedger

__all__ = [
    "AllocationService",
    "InventoryOrchestrator",
    "LotMovementService",
    "LotStore",
    "ReversalService",
    "SequenceService",
    "TransactionLedger",
    "UnitOfWork",
]
