"""
Module: inventory_kernel.db.triggers
Responsibility: Load and install the PostgreSQL triggers that back the ORM
    immutability listeners (append-only ledger, frozen lot identity).
Architecture position: Kernel > DB.  Uses only the stdlib (SQL file loading)
    and sqlalchemy (execution).  MUST NOT import from models/, services/,
    selectors/, or domain/.

Invariants enforced:
    - stock_transactions rows cannot be updated or deleted.
    - stock_lots.lot_number, item_id and expiry_date cannot change;
      stock_lots rows cannot be deleted.

Failure modes:
    - FileNotFoundError if SQL files are missing from the sql/ directory.
    - Triggers are PostgreSQL-only; on other dialects create_all() skips
      installation and the ORM listeners are the only layer.

Audit relevance:
    The triggers catch raw SQL and bulk statements that bypass the ORM.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = (
    "01_stock_transaction.sql",
    "02_stock_lot.sql",
)

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = (
    "trg_stock_transaction_immutable_update",
    "trg_stock_transaction_immutable_delete",
    "trg_stock_lot_identity_update",
    "trg_stock_lot_delete",
)


def _load_sql_file(filename: str) -> str:
    path = SQL_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"Trigger SQL file not found: {path}")
    return path.read_text()


def _load_all_trigger_sql() -> str:
    parts = []
    for filename in TRIGGER_FILES:
        parts.append(f"-- Loading: {filename}")
        parts.append(_load_sql_file(filename))
        parts.append("")
    return "\n".join(parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables exist.  Engine is connected to PostgreSQL.
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed
        (CREATE OR REPLACE, so repeated calls are safe).
    """
    sql_content = _load_all_trigger_sql()

    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()

    logger.info("immutability_triggers_installed", extra={"count": len(ALL_TRIGGER_NAMES)})


def uninstall_immutability_triggers(engine: Engine) -> None:
    """Remove database-level immutability triggers (tests and migrations only)."""
    sql_content = _load_sql_file(DROP_FILE)

    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()

    logger.warning("immutability_triggers_uninstalled")
