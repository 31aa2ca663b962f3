"""
Module: inventory_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  Single point of database connection
    configuration for the kernel.
Architecture position: Kernel > DB.  May import from db/base.py and
    db/triggers.py.  MUST NOT import from services/, selectors/, domain/, or
    outer layers (create_tables imports models to populate metadata).

Invariants enforced:
    - PostgreSQL is the production backend: READ COMMITTED isolation with
      explicit row locks (SELECT ... FOR UPDATE) on lots and counters, plus
      the append-only triggers.
    - SQLite is supported for tests and single-process use.  Row locks are
      a no-op there; the optimistic version columns on lots and counters
      still detect lost updates.
    - Sessions never expire attributes on commit (expire_on_commit=False),
      so DTOs can be built after the unit of work completes.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
    - OperationalError on deadlock during trigger installation (retried).

Audit relevance:
    All unit-of-work boundaries flow through sessions created here.
    session_scope() gives commit-or-rollback semantics for a whole
    operation, which is what makes multi-lot allocation all-or-nothing.
"""

import atexit
import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _is_sqlite_url(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: float = 5.0,
) -> Engine:
    """
    Build an Engine for ``database_url`` without touching module state.

    PostgreSQL URLs get a QueuePool and READ COMMITTED isolation.
    SQLite URLs get foreign keys enabled; in-memory SQLite uses a
    StaticPool so every session sees the same database.
    """
    if _is_sqlite_url(database_url):
        kwargs: dict = {
            "echo": echo,
            "connect_args": {
                "check_same_thread": False,
                "timeout": sqlite_busy_timeout,
            },
        }
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory with the kernel's session settings."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Preconditions: database_url is a PostgreSQL or SQLite URL.
    Postconditions: get_engine/get_session/get_session_factory use this
        engine.  A second call replaces the first.
    """
    global _engine, _SessionFactory

    _engine = create_engine_from_url(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
    )
    _SessionFactory = make_session_factory(_engine)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.

    The orchestrator opens one session per operation from this factory.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit the session is committed and closed.
        On exception it is rolled back and closed, and the exception is
        re-raised.

    Usage:
        with session_scope() as session:
            LotStore(session, clock).create_lot(...)
            # Commits on successful exit, rolls back on exception
    """
    factory = session_factory or get_session_factory()
    session = factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back")
        raise
    finally:
        session.close()


def create_all(engine: Engine, install_triggers: bool = True) -> None:
    """
    Create all kernel tables on ``engine`` and seed the sequence counters.

    Triggers are installed only on PostgreSQL.
    """
    from inventory_kernel.db.base import Base
    import inventory_kernel.models  # noqa: F401  (populate Base.metadata)
    from inventory_kernel.services.sequence_service import SequenceService

    Base.metadata.create_all(engine)

    with session_scope(make_session_factory(engine)) as session:
        SequenceService(session).initialize_sequences()

    if install_triggers and engine.dialect.name == "postgresql":
        from inventory_kernel.db.triggers import install_immutability_triggers

        max_retries = 3
        for attempt in range(max_retries):
            try:
                install_immutability_triggers(engine)
                break
            except OperationalError as exc:
                if "deadlock" in str(exc).lower() and attempt < max_retries - 1:
                    logger.warning(
                        "trigger_install_deadlock_retry",
                        extra={"attempt": attempt + 1, "max_retries": max_retries},
                    )
                    engine.dispose()
                    time.sleep(0.5 * (attempt + 1))
                else:
                    raise

    logger.info("tables_created", extra={"dialect": engine.dialect.name})


def create_tables(install_triggers: bool = True) -> None:
    """Create all tables on the module-level engine."""
    create_all(get_engine(), install_triggers=install_triggers)


def drop_all(engine: Engine) -> None:
    """Drop all kernel tables on ``engine``.  Testing only."""
    from inventory_kernel.db.base import Base
    import inventory_kernel.models  # noqa: F401

    if engine.dialect.name == "postgresql":
        from inventory_kernel.db.triggers import uninstall_immutability_triggers

        uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)


def drop_tables() -> None:
    """Drop all tables on the module-level engine.  Testing only."""
    drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory.  Test cleanup."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


def _atexit_dispose():
    global _engine
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_postgres() -> bool:
    """Check if the current engine is PostgreSQL."""
    if _engine is None:
        return False
    return _engine.dialect.name == "postgresql"
