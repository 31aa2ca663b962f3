"""Stock level buckets and date-derived expiry."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import LedgerFilter, LotDTO, StockLevelDTO
from inventory_kernel.domain.stock_status import (
    classify_stock_level,
    days_until_expiry,
    is_expired,
    is_expiring_within,
)
from inventory_kernel.domain.values import LotStatus, StockLevel


class TestClassifyStockLevel:

    @pytest.mark.parametrize(
        "on_hand, minimum, expected",
        [
            (0, 10, StockLevel.OUT_OF_STOCK),
            (4, 10, StockLevel.CRITICAL),
            (5, 10, StockLevel.LOW),
            (9, 10, StockLevel.LOW),
            (10, 10, StockLevel.SUFFICIENT),
            (1, 0, StockLevel.SUFFICIENT),
        ],
    )
    def test_buckets(self, on_hand, minimum, expected):
        assert classify_stock_level(on_hand, minimum) == expected

    def test_custom_critical_ratio(self):
        assert classify_stock_level(7, 10, Decimal("0.8")) == StockLevel.CRITICAL

    def test_shortfall(self):
        dto = StockLevelDTO(uuid4(), "C", "N", on_hand=3, min_stock_quantity=10, level=StockLevel.CRITICAL)
        assert dto.shortfall == 7


class TestExpiry:

    def test_expiry_day_itself_is_not_expired(self):
        assert not is_expired(date(2024, 1, 1), date(2024, 1, 1))
        assert is_expired(date(2023, 12, 31), date(2024, 1, 1))

    def test_days_until_expiry_negative_after_expiry(self):
        assert days_until_expiry(date(2024, 1, 11), date(2024, 1, 1)) == 10
        assert days_until_expiry(date(2023, 12, 30), date(2024, 1, 1)) == -2

    def test_expiring_window_is_inclusive(self):
        today = date(2024, 1, 1)
        assert is_expiring_within(date(2024, 1, 31), today, 30)
        assert not is_expiring_within(date(2024, 2, 1), today, 30)
        assert not is_expiring_within(date(2023, 12, 31), today, 30)

    def test_lot_dto_expiry_is_independent_of_status(self):
        lot = LotDTO(
            id=uuid4(),
            item_id=uuid4(),
            lot_number="L1",
            quantity=5,
            expiry_date=date(2023, 6, 1),
            received_date=date(2023, 1, 1),
            status=LotStatus.AVAILABLE,
        )
        assert lot.is_expired(date(2024, 1, 1))
        assert lot.status == LotStatus.AVAILABLE


class TestLedgerFilter:

    def test_start_after_end_rejected(self):
        from datetime import datetime, timezone

        with pytest.raises(ValueError):
            LedgerFilter(
                start=datetime(2024, 2, 1, tzinfo=timezone.utc),
                end=datetime(2024, 1, 1, tzinfo=timezone.utc),
            )

    def test_non_positive_limit_rejected(self):
        with pytest.raises(ValueError):
            LedgerFilter(limit=0)
