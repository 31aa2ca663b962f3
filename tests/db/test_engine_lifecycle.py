"""
Engine, session scope and schema tests.

Covers the SQLite engine settings, module-level engine lifecycle,
session_scope commit/rollback, idempotent schema creation and the
database constraints that back the kernel invariants.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import inspect, select, text
from sqlalchemy.exc import IntegrityError

from inventory_kernel.db import (
    create_all,
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
from inventory_kernel.db.types import round_price
from inventory_kernel.models import Item, SequenceCounter, StockLot
from inventory_kernel.services.lot_store import LotStore
from inventory_kernel.services.sequence_service import SequenceService

KERNEL_TABLES = {"items", "stock_lots", "stock_transactions", "sequence_counters"}


@pytest.fixture
def module_engine():
    engine = init_engine_from_url("sqlite://")
    yield engine
    reset_engine()


class TestEngineFactory:

    def test_in_memory_sqlite_shares_one_database(self, session_factory):
        with session_scope(session_factory) as s:
            LotStore(s).register_item("GAUZE", "Gauze 10x10")

        with session_scope(session_factory) as s:
            assert s.execute(select(Item.code)).scalar_one() == "GAUZE"

    def test_foreign_keys_enforced(self, engine):
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar_one() == 1

    def test_sessions_keep_attributes_after_commit(self, engine):
        assert make_session_factory(engine).kw["expire_on_commit"] is False


class TestModuleEngine:

    def test_uninitialized_access_raises(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()
        with pytest.raises(RuntimeError):
            get_session_factory()
        assert is_postgres() is False

    def test_init_and_reset(self, module_engine):
        assert get_engine() is module_engine
        assert is_postgres() is False
        session = get_session()
        try:
            assert session.bind is module_engine
        finally:
            session.close()

    def test_create_and_drop_tables_on_module_engine(self, module_engine):
        create_tables()
        assert KERNEL_TABLES <= set(inspect(module_engine).get_table_names())

        drop_tables()
        assert not KERNEL_TABLES & set(inspect(module_engine).get_table_names())


class TestSessionScope:

    def test_commits_on_success(self, session_factory):
        with session_scope(session_factory) as s:
            LotStore(s).register_item("AMX-500", "Amoxicillin 500mg")

        with session_scope(session_factory) as s:
            assert s.execute(select(Item)).scalars().one().code == "AMX-500"

    def test_rolls_back_on_error(self, session_factory):
        with pytest.raises(ZeroDivisionError):
            with session_scope(session_factory) as s:
                LotStore(s).register_item("AMX-500", "Amoxicillin 500mg")
                1 / 0

        with session_scope(session_factory) as s:
            assert s.execute(select(Item)).scalars().all() == []


class TestSchema:

    def test_create_all_builds_tables_and_seeds_counters(self, engine, session):
        assert KERNEL_TABLES <= set(inspect(engine).get_table_names())
        assert SequenceService(session).current_value(SequenceService.STOCK_TRANSACTION) == 0

    def test_create_all_is_idempotent(self, engine, session_factory):
        create_all(engine)

        with session_scope(session_factory) as s:
            counters = s.execute(select(SequenceCounter)).scalars().all()
        assert [c.name for c in counters] == [SequenceService.STOCK_TRANSACTION]

    def test_drop_all(self, engine):
        drop_all(engine)
        assert not KERNEL_TABLES & set(inspect(engine).get_table_names())


class TestConstraints:

    def test_negative_lot_quantity_rejected_by_database(self, session, item, create_lot):
        lot = create_lot(item, "L1", 5, date(2025, 1, 1))
        lot.quantity = -1

        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()

    def test_duplicate_lot_number_rejected_by_database(self, session, item, create_lot, test_actor_id):
        create_lot(item, "L1", 5, date(2025, 1, 1))
        session.add(
            StockLot(
                item_id=item.id,
                lot_number="L1",
                quantity=1,
                expiry_date=date(2025, 1, 1),
                received_date=date(2024, 1, 1),
                status="available",
                created_by_id=test_actor_id,
            )
        )

        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()


class TestPriceRounding:

    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("1.23455"), Decimal("1.2346")),
            (Decimal("1.23445"), Decimal("1.2345")),
            (Decimal("2"), Decimal("2.0000")),
        ],
    )
    def test_round_half_up_to_four_places(self, value, expected):
        assert round_price(value) == expected
        assert round_price(value).as_tuple().exponent == -4
