"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
LAYERS
===============================================================================

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications made through SQLAlchemy sessions
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/sql/*.sql (PostgreSQL triggers, installed by db/triggers.py)
    - Catches raw SQL, bulk UPDATE/DELETE statements, direct psql access

Both layers enforce the same rules.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Rule
------------------|------------------------------------------------------------
StockTransaction  | Immutable from creation.  No UPDATE, no DELETE.
StockLot          | lot_number, item_id, expiry_date frozen.  No DELETE.
                  | quantity, status, location, remarks remain mutable through
                  | LotStore (each quantity change is paired with a ledger row).

===============================================================================
USAGE
===============================================================================

Called once at startup (bridges.build_orchestrator does this):

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

Registration is idempotent.  To disable temporarily (TESTS ONLY):

    unregister_immutability_listeners()
    # ... forbidden operation ...
    register_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

FROZEN_LOT_FIELDS = ("lot_number", "item_id", "expiry_date")


def _block(entity_type: str, entity_id: str, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_stock_transaction_immutability(mapper, connection, target):
    """Ledger entries are immutable from creation."""
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.history.has_changes():
            _block(
                "StockTransaction",
                str(target.id),
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a ledger entry",
                field=attr.key,
            )


def _check_stock_transaction_delete(mapper, connection, target):
    _block(
        "StockTransaction",
        str(target.id),
        "DELETE",
        "Ledger entries cannot be deleted",
    )


def _check_stock_lot_immutability(mapper, connection, target):
    """Lot identity fields are frozen after creation."""
    for field in FROZEN_LOT_FIELDS:
        hist = get_history(target, field)
        if hist.deleted:
            _block(
                "StockLot",
                str(target.id),
                "UPDATE",
                f"Cannot modify '{field}' of an existing lot",
                field=field,
            )


def _check_stock_lot_delete(mapper, connection, target):
    _block(
        "StockLot",
        str(target.id),
        "DELETE",
        "Lots cannot be deleted",
    )


def _listener_table():
    from inventory_kernel.models.lot import StockLot
    from inventory_kernel.models.stock_transaction import StockTransaction

    return (
        (StockTransaction, "before_update", _check_stock_transaction_immutability),
        (StockTransaction, "before_delete", _check_stock_transaction_delete),
        (StockLot, "before_update", _check_stock_lot_immutability),
        (StockLot, "before_delete", _check_stock_lot_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately violate immutability
    to verify the database-level layer or replay verification.
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)


def immutability_listeners_registered() -> bool:
    return all(
        event.contains(target, event_name, listener_fn)
        for target, event_name, listener_fn in _listener_table()
    )
