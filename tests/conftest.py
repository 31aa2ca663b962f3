"""
Pytest fixtures for the inventory kernel test suite.

Provides:
- A fresh in-memory SQLite database per test (kernel tables + counters)
- ``session`` for service-level tests (flush-only, rolled back at teardown)
- ``session_factory`` / ``orchestrator`` for unit-of-work tests (real commits)
- Deterministic clock, service fixtures and item / lot factories
- ``captured_logs`` for asserting on structured log output

Environment Variables:
- DATABASE_URL is NOT used here; tests always run against SQLite.  The
  file-backed concurrency tests build their own engine in tmp_path.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from inventory_kernel.db.engine import create_all, create_engine_from_url, make_session_factory
from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_kernel.models.item import Item
from inventory_kernel.models.lot import StockLot
from inventory_kernel.selectors.audit_selector import AuditSelector
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.allocation_service import AllocationService
from inventory_kernel.services.inventory_orchestrator import InventoryOrchestrator
from inventory_kernel.services.lot_movement_service import LotMovementService
from inventory_kernel.services.lot_store import LotStore
from inventory_kernel.services.reversal_service import ReversalService
from inventory_kernel.services.sequence_service import SequenceService
from inventory_kernel.services.transaction_ledger import TransactionLedger

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: multi-session tests against a file-backed database"
    )
    config.addinivalue_line(
        "markers", "property: Hypothesis property-based tests"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, handler=logging.NullHandler())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.allocate_outbound(item_id, 10)
            logs = captured_logs()
            assert any(r["message"] == "allocation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Immutability listeners
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with all kernel tables."""
    eng = create_engine_from_url("sqlite://")
    create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """Session for service tests.  Services only flush; teardown rolls back."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


# Clock fixtures


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2024-01-01 12:00 UTC."""
    return DeterministicClock()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def sequence_service(session) -> SequenceService:
    return SequenceService(session)


@pytest.fixture
def lot_store(session, deterministic_clock) -> LotStore:
    return LotStore(session, deterministic_clock)


@pytest.fixture
def ledger(session, deterministic_clock, sequence_service) -> TransactionLedger:
    return TransactionLedger(session, deterministic_clock, sequence_service)


@pytest.fixture
def movement_service(session, lot_store, ledger, deterministic_clock) -> LotMovementService:
    return LotMovementService(session, lot_store, ledger, deterministic_clock)


@pytest.fixture
def allocation_service(session, lot_store, ledger, deterministic_clock) -> AllocationService:
    return AllocationService(session, lot_store, ledger, deterministic_clock)


@pytest.fixture
def reversal_service(session, lot_store, ledger, deterministic_clock) -> ReversalService:
    return ReversalService(session, lot_store, ledger, deterministic_clock)


@pytest.fixture
def ledger_selector(session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def audit_selector(session) -> AuditSelector:
    return AuditSelector(session)


@pytest.fixture
def orchestrator(session_factory, deterministic_clock) -> InventoryOrchestrator:
    return InventoryOrchestrator(
        session_factory,
        clock=deterministic_clock,
        retry_backoff_seconds=0,
    )


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def create_item(lot_store, test_actor_id):
    """Factory fixture to register catalog items in ``session``."""

    def _create(code: str | None = None, name: str = "Amoxicillin 500mg", min_stock_quantity: int = 10) -> Item:
        return lot_store.register_item(
            code or f"ITEM-{uuid4().hex[:8]}",
            name,
            min_stock_quantity=min_stock_quantity,
            actor_id=test_actor_id,
        )

    return _create


@pytest.fixture
def item(create_item) -> Item:
    return create_item(code="AMX-500")


@pytest.fixture
def create_lot(movement_service, test_actor_id):
    """Factory fixture: receive a lot (with its INBOUND entry) in ``session``."""

    def _create(
        item: Item,
        lot_number: str,
        quantity: int,
        expiry_date: date,
        received_date: date | None = None,
        unit_cost: Decimal | None = None,
        location: str | None = None,
    ) -> StockLot:
        lot, _ = movement_service.receive_lot(
            item_id=item.id,
            lot_number=lot_number,
            quantity=quantity,
            expiry_date=expiry_date,
            received_date=received_date,
            unit_cost=unit_cost,
            location=location,
            actor_id=test_actor_id,
        )
        return lot

    return _create
