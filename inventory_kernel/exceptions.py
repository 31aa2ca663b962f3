"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InventoryKernelError:

    InventoryKernelError (base)
    |
    +-- NotFoundError
    |   +-- ItemNotFoundError
    |   +-- LotNotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- DuplicateLotError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- ValidationError
    |
    +-- ReversalError
    |   +-- TransactionAlreadyReversedError
    |   +-- ReversalNotAllowedError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- LedgerInconsistencyError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | ITEM_NOT_FOUND              | Item ID doesn't exist in the catalog
                | LOT_NOT_FOUND               | Lot ID / lot number doesn't exist
                | TRANSACTION_NOT_FOUND       | Ledger entry ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Uniqueness      | DUPLICATE_LOT               | Lot number already registered
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Decrement exceeds available quantity
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed input or inconsistent entry
----------------|-----------------------------|-----------------------------------------
Reversal        | TRANSACTION_ALREADY_REVERSED| Entry already has a compensating entry
                | REVERSAL_NOT_ALLOWED        | Entry cannot be reversed at all
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT        | Lost a race on a lot; retries exhausted
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying ledger history or frozen field
----------------|-----------------------------|-----------------------------------------
Ledger          | LEDGER_INCONSISTENCY        | Replay does not match on-hand quantity

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH SPECIFIC EXCEPTIONS:

    try:
        orchestrator.allocate_outbound(item_id, 120)
    except InsufficientStockError as e:
        render(f"requested {e.requested}, only {e.available} available")

2. USE STRUCTURED DATA (not message parsing):

    except DuplicateLotError as e:
        return {"error": e.code, "lot_number": e.lot_number}

3. CONCURRENCY ERRORS ARE ALREADY RETRIED:

    ConcurrencyConflictError only reaches the caller after the orchestrator
    has exhausted its bounded retry budget.

===============================================================================
"""

from uuid import UUID


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Missing references


class NotFoundError(InventoryKernelError):
    """Base exception for missing references."""

    code: str = "NOT_FOUND"


class ItemNotFoundError(NotFoundError):
    """Item with given ID was not found."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: UUID | str):
        self.item_id = str(item_id)
        super().__init__(f"Item not found: {item_id}")


class LotNotFoundError(NotFoundError):
    """Lot with given ID (or lot number) was not found."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, lot_id: UUID | str | None = None, lot_number: str | None = None):
        self.lot_id = str(lot_id) if lot_id is not None else None
        self.lot_number = lot_number
        ref = lot_number if lot_number is not None else lot_id
        super().__init__(f"Lot not found: {ref}")


class TransactionNotFoundError(NotFoundError):
    """Ledger entry with given ID was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: UUID | str):
        self.transaction_id = str(transaction_id)
        super().__init__(f"Transaction not found: {transaction_id}")


# Uniqueness


class DuplicateLotError(InventoryKernelError):
    """Lot number already exists in the store."""

    code: str = "DUPLICATE_LOT"

    def __init__(self, lot_number: str):
        self.lot_number = lot_number
        super().__init__(f"Lot number already exists: {lot_number}")


# Stock


class StockError(InventoryKernelError):
    """Base exception for on-hand quantity errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """
    Requested decrement exceeds available quantity.

    Raised both by FEFO allocation (item-level, lot_id is None) and by
    single-lot decrements such as disposal or reversal (lot_id set).
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        requested: int,
        available: int,
        item_id: UUID | str | None = None,
        lot_id: UUID | str | None = None,
    ):
        self.requested = requested
        self.available = available
        self.item_id = str(item_id) if item_id is not None else None
        self.lot_id = str(lot_id) if lot_id is not None else None
        target = f"lot {lot_id}" if lot_id is not None else f"item {item_id}"
        super().__init__(
            f"Insufficient stock for {target}: "
            f"requested {requested}, available {available}"
        )


# Validation


class ValidationError(InventoryKernelError):
    """Malformed input or internally inconsistent ledger entry."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Invalid {field}: {message}")


# Reversal


class ReversalError(InventoryKernelError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class TransactionAlreadyReversedError(ReversalError):
    """A compensating entry already exists for this transaction."""

    code: str = "TRANSACTION_ALREADY_REVERSED"

    def __init__(self, transaction_id: UUID | str, reversal_id: UUID | str | None = None):
        self.transaction_id = str(transaction_id)
        self.reversal_id = str(reversal_id) if reversal_id is not None else None
        super().__init__(f"Transaction already reversed: {transaction_id}")


class ReversalNotAllowedError(ReversalError):
    """The transaction cannot be reversed (e.g. it is itself a reversal)."""

    code: str = "REVERSAL_NOT_ALLOWED"

    def __init__(self, transaction_id: UUID | str, reason: str):
        self.transaction_id = str(transaction_id)
        self.reason = reason
        super().__init__(f"Cannot reverse transaction {transaction_id}: {reason}")


# Concurrency


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """
    A concurrent unit of work modified the same row first.

    Raised by services when an optimistic version check fails; the
    orchestrator retries and re-raises once its budget is exhausted.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str | None = None, attempts: int = 1):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        target = f"{entity_type} {entity_id}" if entity_id else entity_type
        super().__init__(
            f"Concurrent modification of {target} "
            f"(after {attempts} attempt(s))"
        )


# Immutability


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record or field.

    Ledger entries are immutable from creation; lot_number, item_id and
    expiry_date of a lot are immutable after creation; lots are never
    deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Ledger


class LedgerInconsistencyError(InventoryKernelError):
    """Replaying a lot's ledger does not reproduce its on-hand quantity."""

    code: str = "LEDGER_INCONSISTENCY"

    def __init__(self, lot_id: UUID | str, expected: int, replayed: int, detail: str | None = None):
        self.lot_id = str(lot_id)
        self.expected = expected
        self.replayed = replayed
        self.detail = detail
        msg = f"Ledger replay for lot {lot_id} gives {replayed}, on-hand is {expected}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)
