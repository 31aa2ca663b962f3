"""Read-only query selectors returning frozen DTOs."""

from inventory_kernel.selectors.audit_selector import AuditSelector
from inventory_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["AuditSelector", "LedgerSelector"]
