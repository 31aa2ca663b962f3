"""
Data transfer objects returned across the kernel boundary.

Every public orchestrator operation and every selector returns these
frozen dataclasses, never ORM instances, so results stay valid after the
unit of work that produced them has closed.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from inventory_kernel.domain.stock_status import days_until_expiry, is_expired
from inventory_kernel.domain.values import (
    LotStatus,
    StockLevel,
    TransactionReason,
    TransactionType,
)


@dataclass(frozen=True)
class ItemDTO:
    id: UUID
    code: str
    name: str
    unit: str
    category: str | None
    min_stock_quantity: int
    is_active: bool


@dataclass(frozen=True)
class LotDTO:
    """Snapshot of a lot at read time."""

    id: UUID
    item_id: UUID
    lot_number: str
    quantity: int
    expiry_date: date
    received_date: date
    status: LotStatus
    manufacture_date: date | None = None
    supplier_name: str | None = None
    unit_cost: Decimal | None = None
    location: str | None = None
    remarks: str | None = None
    version: int = 1

    def is_expired(self, today: date) -> bool:
        """Date-derived expiry; independent of ``status``."""
        return is_expired(self.expiry_date, today)

    def days_until_expiry(self, today: date) -> int:
        return days_until_expiry(self.expiry_date, today)


@dataclass(frozen=True)
class TransactionDTO:
    """One immutable ledger entry."""

    id: UUID
    seq: int
    item_id: UUID
    lot_id: UUID | None
    transaction_type: TransactionType
    quantity: int
    before_quantity: int
    after_quantity: int
    transaction_date: datetime
    reason: TransactionReason
    reference_number: str | None = None
    department: str | None = None
    requester_name: str | None = None
    approver_name: str | None = None
    remarks: str | None = None
    from_location: str | None = None
    to_location: str | None = None
    actor_id: UUID | None = None
    reversal_of_id: UUID | None = None

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    @property
    def net_change(self) -> int:
        return self.after_quantity - self.before_quantity


@dataclass(frozen=True)
class LotAllocation:
    """Quantity taken from one lot by an outbound allocation."""

    lot_id: UUID
    lot_number: str
    quantity_taken: int
    before_quantity: int
    after_quantity: int
    transaction_id: UUID


@dataclass(frozen=True)
class AllocationResult:
    """
    Outcome of a successful FEFO allocation.

    Guarantees:
        - ``total_allocated == requested_quantity``.
        - ``allocations`` are in FEFO order.
    """

    item_id: UUID
    requested_quantity: int
    allocations: tuple[LotAllocation, ...]

    @property
    def total_allocated(self) -> int:
        return sum(a.quantity_taken for a in self.allocations)

    @property
    def transaction_ids(self) -> tuple[UUID, ...]:
        return tuple(a.transaction_id for a in self.allocations)


@dataclass(frozen=True)
class LedgerFilter:
    """
    Typed ledger query.  Every field is optional; set fields are ANDed.

    ``start`` is inclusive and ``end`` is exclusive.
    Results come oldest first unless ``newest_first`` is set.
    """

    item_id: UUID | None = None
    lot_id: UUID | None = None
    transaction_type: TransactionType | None = None
    reason: TransactionReason | None = None
    department: str | None = None
    requester: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = None
    newest_first: bool = False

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("LedgerFilter.start must not be after end")
        if self.limit is not None and self.limit <= 0:
            raise ValueError("LedgerFilter.limit must be positive")


# Inventory audit (physical count)


@dataclass(frozen=True)
class AuditCount:
    """A physically counted quantity for one lot."""

    lot_id: UUID
    counted_quantity: int
    remarks: str | None = None


@dataclass(frozen=True)
class AuditLine:
    lot_id: UUID
    lot_number: str
    system_quantity: int
    counted_quantity: int
    transaction_id: UUID | None = None

    @property
    def difference(self) -> int:
        return self.counted_quantity - self.system_quantity


@dataclass(frozen=True)
class InventoryAuditResult:
    """
    Result of a physical inventory audit.

    ``lines`` holds one entry per counted lot; only lines with a non-zero
    difference produced an ADJUSTMENT.
    """

    audited_at: datetime
    auditor: str | None
    lines: tuple[AuditLine, ...]

    @property
    def discrepancies(self) -> tuple[AuditLine, ...]:
        return tuple(line for line in self.lines if line.difference != 0)

    @property
    def lots_audited(self) -> int:
        return len(self.lines)

    @property
    def net_difference(self) -> int:
        return sum(line.difference for line in self.lines)


# Aggregations


@dataclass(frozen=True)
class TypeTotal:
    transaction_type: TransactionType
    count: int
    quantity: int


@dataclass(frozen=True)
class ReasonTotal:
    reason: TransactionReason
    count: int
    quantity: int


@dataclass(frozen=True)
class ItemMovement:
    item_id: UUID
    item_code: str
    item_name: str
    count: int
    quantity: int


@dataclass(frozen=True)
class RequesterActivity:
    requester_name: str
    count: int
    quantity: int


@dataclass(frozen=True)
class DepartmentActivity:
    department: str
    count: int
    quantity: int
    top_requesters: tuple[RequesterActivity, ...] = ()


@dataclass(frozen=True)
class StockLevelDTO:
    """Item-level on-hand quantity (AVAILABLE lots only) and its bucket."""

    item_id: UUID
    item_code: str
    item_name: str
    on_hand: int
    min_stock_quantity: int
    level: StockLevel

    @property
    def shortfall(self) -> int:
        return max(self.min_stock_quantity - self.on_hand, 0)


@dataclass(frozen=True)
class DailyStatistics:
    day: date
    totals: tuple[TypeTotal, ...]

    @property
    def transaction_count(self) -> int:
        return sum(t.count for t in self.totals)

    def quantity_for(self, transaction_type: TransactionType) -> int:
        for total in self.totals:
            if total.transaction_type == transaction_type:
                return total.quantity
        return 0

    def count_for(self, transaction_type: TransactionType) -> int:
        for total in self.totals:
            if total.transaction_type == transaction_type:
                return total.count
        return 0


@dataclass(frozen=True)
class TransactionSummary:
    start: datetime
    end: datetime
    by_type: tuple[TypeTotal, ...]
    by_reason: tuple[ReasonTotal, ...]
    reversal_count: int

    @property
    def transaction_count(self) -> int:
        return sum(t.count for t in self.by_type)


@dataclass(frozen=True)
class DailyNetChange:
    day: date
    net_change: int


@dataclass(frozen=True)
class StockChangeStatistics:
    """
    Stock movement over the inclusive day range [start_date, end_date].

    Totals are quantities per entry type.  ``net_change`` and
    ``daily_changes`` use each entry's signed effect
    (after_quantity - before_quantity), so compensating entries and
    disposals count too.  Days without entries are omitted.
    """

    start_date: date
    end_date: date
    totals: tuple[TypeTotal, ...]
    net_change: int
    daily_changes: tuple[DailyNetChange, ...] = ()

    def quantity_for(self, transaction_type: TransactionType) -> int:
        for total in self.totals:
            if total.transaction_type == transaction_type:
                return total.quantity
        return 0

    @property
    def total_inbound(self) -> int:
        return self.quantity_for(TransactionType.INBOUND)

    @property
    def total_outbound(self) -> int:
        return self.quantity_for(TransactionType.OUTBOUND)

    @property
    def total_adjustment(self) -> int:
        return self.quantity_for(TransactionType.ADJUSTMENT)

    def change_on(self, day: date) -> int:
        for change in self.daily_changes:
            if change.day == day:
                return change.net_change
        return 0


@dataclass(frozen=True)
class LotStatusCount:
    status: LotStatus
    lot_count: int
    quantity: int


@dataclass(frozen=True)
class ItemValuation:
    item_id: UUID
    item_code: str
    item_name: str
    quantity: int
    value: Decimal


@dataclass(frozen=True)
class StockValuation:
    """
    On-hand value of AVAILABLE stock at each lot's unit cost.

    Lots without a unit cost contribute to ``unvalued_quantity`` only.
    """

    total_value: Decimal
    items: tuple[ItemValuation, ...] = field(default_factory=tuple)
    unvalued_quantity: int = 0


# Batch processing


@dataclass(frozen=True)
class BatchLine:
    """
    One movement in a batch.

    INBOUND, RETURN, DISPOSAL and ADJUSTMENT name a ``lot_id``; OUTBOUND
    names an ``item_id`` and is allocated FEFO.  For ADJUSTMENT,
    ``quantity`` is the new absolute lot quantity.
    """

    transaction_type: TransactionType
    quantity: int
    item_id: UUID | None = None
    lot_id: UUID | None = None
    reason: TransactionReason | None = None
    reference_number: str | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class BatchLineResult:
    """``transaction_type`` echoes the line as submitted, even when unrecognised."""

    index: int
    transaction_type: TransactionType | str
    succeeded: bool
    transaction_ids: tuple[UUID, ...] = ()
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class BatchResult:
    """Per-line outcome of a batch, in submission order."""

    lines: tuple[BatchLineResult, ...]

    @property
    def total_count(self) -> int:
        return len(self.lines)

    @property
    def succeeded_count(self) -> int:
        return sum(1 for line in self.lines if line.succeeded)

    @property
    def failed_count(self) -> int:
        return self.total_count - self.succeeded_count

    @property
    def transaction_ids(self) -> tuple[UUID, ...]:
        return tuple(tid for line in self.lines for tid in line.transaction_ids)

    @property
    def failures(self) -> tuple[BatchLineResult, ...]:
        return tuple(line for line in self.lines if not line.succeeded)
