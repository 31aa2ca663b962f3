"""Database layer: declarative base, engine/session management, immutability."""

from inventory_kernel.db.base import Base, TrackedBase, UUIDString
from inventory_kernel.db.engine import (
    create_all,
    create_engine_from_url,
    create_tables,
    drop_all,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    make_session_factory,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_all",
    "create_engine_from_url",
    "create_tables",
    "drop_all",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "is_postgres",
    "make_session_factory",
    "reset_engine",
    "session_scope",
]
