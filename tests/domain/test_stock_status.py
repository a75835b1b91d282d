"""Stock classification, clock and reference generator tests."""

import re
from datetime import UTC, datetime

import pytest

from pharmacy_kernel.domain.clock import DeterministicClock
from pharmacy_kernel.domain.identifiers import (
    RandomReferenceGenerator,
    SequentialReferenceGenerator,
)
from pharmacy_kernel.domain.statuses import StockStatus
from pharmacy_kernel.domain.stock import derive_stock_status


class TestDeriveStockStatus:

    @pytest.mark.parametrize(
        "quantity,reorder_point,expected",
        [
            (0, 10, StockStatus.OUT_OF_STOCK),
            (1, 10, StockStatus.LOW_STOCK),
            (10, 10, StockStatus.LOW_STOCK),
            (11, 10, StockStatus.IN_STOCK),
            (0, 0, StockStatus.OUT_OF_STOCK),
            (1, 0, StockStatus.IN_STOCK),
        ],
    )
    def test_classification(self, quantity, reorder_point, expected):
        assert derive_stock_status(quantity, reorder_point) == expected

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValueError):
            derive_stock_status(-1, 10)


class TestDeterministicClock:

    def test_fixed_until_advanced(self):
        clock = DeterministicClock(datetime(2024, 6, 1, 9, 0, tzinfo=UTC))
        assert clock.now() == clock.now()
        assert clock.tick() == datetime(2024, 6, 1, 9, 0, 1, tzinfo=UTC)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(30)
        clock.set_time(datetime(2025, 1, 1, tzinfo=UTC))
        assert clock.now() == datetime(2025, 1, 1, tzinfo=UTC)


class TestReferenceGenerators:

    def test_sequential_numbers_share_one_counter(self):
        gen = SequentialReferenceGenerator(order_prefix="RX")
        assert gen.order_number() == "RX-000001"
        assert gen.payment_reference() == "TXN_000002"
        assert gen.refund_reference() == "REF_000003"

    def test_random_formats(self):
        clock = DeterministicClock(datetime(2024, 3, 4, 5, 6, 7, tzinfo=UTC))
        gen = RandomReferenceGenerator(clock)
        assert re.fullmatch(r"ORD-20240304050607-[0-9A-F]{8}", gen.order_number())
        assert re.fullmatch(r"TXN_20240304050607_[0-9A-F]{8}", gen.payment_reference())
        assert re.fullmatch(r"REF_20240304050607_[0-9A-F]{8}", gen.refund_reference())

    def test_random_numbers_differ(self):
        gen = RandomReferenceGenerator(DeterministicClock())
        assert len({gen.order_number() for _ in range(50)}) == 50
