"""
Inventory value types and ledger arithmetic.

Responsibility:
    Enumerations shared by models, services and DTOs (lot status,
    transaction type, reason, stock level) and the pure rules that relate
    a ledger entry's ``quantity`` to its before/after snapshot.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    LEDGER_CONSISTENCY -- ``validate_quantity_effect`` is the single
        definition of how each transaction type moves on-hand quantity.
        TransactionLedger calls it on every append; replay uses
        ``apply_effect``.
"""

from enum import Enum
from uuid import UUID

from inventory_kernel.exceptions import ValidationError


class LotStatus(str, Enum):
    """Stored status of a lot.

    EXPIRED and DAMAGED are terminal states set by disposal.  Date-based
    expiry is computed separately (see domain.stock_status.is_expired).
    """

    AVAILABLE = "available"
    RESERVED = "reserved"
    EXPIRED = "expired"
    DAMAGED = "damaged"
    QUARANTINE = "quarantine"


TERMINAL_LOT_STATUSES = frozenset({LotStatus.EXPIRED, LotStatus.DAMAGED})


class TransactionType(str, Enum):
    """Kind of quantity-affecting event recorded in the ledger."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    DISPOSAL = "disposal"
    TRANSFER = "transfer"


class TransactionReason(str, Enum):
    PURCHASE = "purchase"
    SALES = "sales"
    PRESCRIPTION = "prescription"
    INVENTORY_CHECK = "inventory_check"
    EXPIRED = "expired"
    DAMAGED = "damaged"
    LOST = "lost"
    SAMPLE = "sample"
    DONATION = "donation"
    OTHER = "other"


SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")
"""Actor recorded when a caller does not identify one."""


# Reasons that retire a lot when they take it to zero.
DISPOSAL_REASONS = frozenset(
    {TransactionReason.EXPIRED, TransactionReason.DAMAGED, TransactionReason.LOST}
)


class StockLevel(str, Enum):
    """Item-level stock bucket derived from on-hand vs. minimum threshold."""

    OUT_OF_STOCK = "out_of_stock"
    CRITICAL = "critical"
    LOW = "low"
    SUFFICIENT = "sufficient"


INCREASING_TYPES = frozenset({TransactionType.INBOUND, TransactionType.RETURN})
DECREASING_TYPES = frozenset({TransactionType.OUTBOUND, TransactionType.DISPOSAL})


def require_whole_quantity(field: str, value: int, minimum: int = 1) -> int:
    """
    Return ``value`` if it is an integer of at least ``minimum``.

    Quantities are counts of units: floats, Decimals, strings and bools are
    rejected even when numerically whole.

    Raises:
        ValidationError: On any other value.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, f"must be a whole number of units, got {value!r}")
    if value < minimum:
        raise ValidationError(field, f"must be >= {minimum}, got {value}")
    return value


def parse_reason(value: TransactionReason | str, field: str = "reason") -> TransactionReason:
    try:
        return TransactionReason(value)
    except ValueError:
        raise ValidationError(field, f"unknown transaction reason {value!r}") from None


def parse_status(value: LotStatus | str, field: str = "status") -> LotStatus:
    try:
        return LotStatus(value)
    except ValueError:
        raise ValidationError(field, f"unknown lot status {value!r}") from None


def parse_transaction_type(
    value: TransactionType | str, field: str = "transaction_type"
) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(field, f"unknown transaction type {value!r}") from None


def terminal_status_for(reason: TransactionReason) -> LotStatus:
    """Terminal lot status for a lot retired to zero with ``reason``."""
    if TransactionReason(reason) == TransactionReason.DAMAGED:
        return LotStatus.DAMAGED
    return LotStatus.EXPIRED


def signed_delta(transaction_type: TransactionType, quantity: int) -> int | None:
    """
    Signed quantity change for a directional type.

    Returns None for ADJUSTMENT (sets an absolute value) and 0 for TRANSFER.
    """
    transaction_type = TransactionType(transaction_type)
    if transaction_type in INCREASING_TYPES:
        return quantity
    if transaction_type in DECREASING_TYPES:
        return -quantity
    if transaction_type == TransactionType.TRANSFER:
        return 0
    return None


def validate_quantity_effect(
    transaction_type: TransactionType,
    quantity: int,
    before_quantity: int,
    after_quantity: int,
) -> None:
    """
    Check that a ledger entry's snapshot is consistent with its type.

    Rules:
        - quantity > 0, before >= 0, after >= 0, all integers, for every type.
        - INBOUND/RETURN: after == before + quantity.
        - OUTBOUND/DISPOSAL: after == before - quantity.
        - ADJUSTMENT: quantity == |after - before| when they differ.
          An ADJUSTMENT with before == after is a compensating entry for
          a no-op change and keeps the original magnitude.
        - TRANSFER: after == before.

    Raises:
        ValidationError: On any violation.
    """
    require_whole_quantity("quantity", quantity)
    require_whole_quantity("before_quantity", before_quantity, minimum=0)
    require_whole_quantity("after_quantity", after_quantity, minimum=0)

    transaction_type = parse_transaction_type(transaction_type)
    if transaction_type == TransactionType.ADJUSTMENT:
        if before_quantity != after_quantity and quantity != abs(after_quantity - before_quantity):
            raise ValidationError(
                "quantity",
                f"adjustment {before_quantity}->{after_quantity} "
                f"must record quantity {abs(after_quantity - before_quantity)}, got {quantity}",
            )
        return

    expected = before_quantity + signed_delta(transaction_type, quantity)
    if after_quantity != expected:
        raise ValidationError(
            "after_quantity",
            f"{transaction_type.value} of {quantity} from {before_quantity} "
            f"must give {expected}, got {after_quantity}",
        )


def apply_effect(
    current: int,
    transaction_type: TransactionType,
    quantity: int,
    after_quantity: int,
) -> int:
    """
    Apply one ledger entry to a running balance during replay.

    ADJUSTMENT entries set the balance to their recorded ``after_quantity``;
    every other type applies its signed delta.
    """
    delta = signed_delta(transaction_type, quantity)
    if delta is None:
        return after_quantity
    return current + delta
