"""
Kernel Invariants Contract.

These invariants are structural law. They are hardcoded in the services,
ORM listeners and database constraints. No configuration value may
override them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across LotStore, TransactionLedger,
AllocationService, ReversalService and db/immutability.py.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """On-hand quantity of every lot is >= 0. Enforced by LotStore (no
    clamping) and by a CHECK constraint on stock_lots.quantity."""

    LEDGER_CONSISTENCY = "ledger_consistency"
    """after_quantity follows from before_quantity, quantity and the
    transaction type's direction. Enforced by TransactionLedger.append."""

    APPEND_ONLY_LEDGER = "append_only_ledger"
    """Ledger entries are never updated or deleted. Enforced by ORM
    listeners and, on PostgreSQL, by triggers."""

    ALL_OR_NOTHING_ALLOCATION = "all_or_nothing_allocation"
    """An outbound allocation either fully succeeds or changes nothing.
    Enforced by planning before mutating and a single unit of work."""

    FEFO_ORDER = "fefo_order"
    """Outbound stock is drawn from the earliest-expiring lot first, with a
    deterministic tie-break. Enforced by domain.allocation."""

    UNIQUE_LOT_NUMBER = "unique_lot_number"
    """Lot numbers are unique across the store. Enforced by LotStore and a
    UNIQUE constraint."""

    SINGLE_REVERSAL = "single_reversal"
    """A transaction is reversed at most once. Enforced by ReversalService
    and a UNIQUE constraint on reversal_of_id."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "inventory_config",
)
