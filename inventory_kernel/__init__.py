"""
Inventory Kernel - lot-tracked perishable stock

An append-only, lot-level inventory ledger with:
- Non-negative on-hand quantities per lot
- FEFO (first-expired-first-out) outbound allocation, all-or-nothing
- Immutable ledger entries with before/after snapshots
- Compensating reversal (at most once per transaction)
- Per-lot serialization via row locks and optimistic versioning
"""

__version__ = "0.1.0"
