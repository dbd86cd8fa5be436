"""
Property-based tests for the stock ledger and the pure engines.

Properties checked:
- Aggregate stock always equals the sum of live batch remainders, and
  every remainder stays within [0, quantity_received]
- A rejected debit leaves every batch untouched
- Largest-remainder percentages always sum to exactly 100.00
- Stock bands are monotonic in current stock
- Expiry classification agrees with days-until-expiry
"""

import itertools
from datetime import date, timedelta
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_engines.analytics import largest_remainder_percentages
from stock_engines.expiry import ExpiryWindows, classify_expiry, days_until_expiry
from stock_engines.stock_classifier import availability_status, classify
from stock_kernel.domain.dtos import AvailabilityStatus, ExpiryRisk, StockHealth
from stock_kernel.exceptions import InsufficientStockError

_BAND_ORDER = [StockHealth.CRITICAL, StockHealth.LOW, StockHealth.MEDIUM, StockHealth.GOOD]

_item_ids = itertools.count(1)

operations = st.lists(
    st.one_of(
        st.tuples(st.just("receive"), st.integers(1, 50), st.integers(-10, 120)),
        st.tuples(st.just("debit"), st.integers(1, 60), st.just(0)),
    ),
    min_size=1,
    max_size=12,
)


class TestLedgerProperties:

    @settings(
        max_examples=30,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(ops=operations)
    def test_aggregate_matches_batches(self, service, ops):
        item_id = f"FUZZ-{next(_item_ids)}"
        service.register_item(item_id, item_id, "supply", "Fuzz")
        today = service.clock.today()
        expected = 0

        for index, (kind, quantity, expires_in) in enumerate(ops):
            if kind == "receive":
                service.add_batch(
                    item_id, quantity, today + timedelta(days=expires_in), f"{item_id}-{index}"
                )
                expected += quantity
            else:
                before = {b.batch_id: b.quantity_remaining for b in service.batches_for_item(item_id)}
                try:
                    allocations = service.debit(item_id, quantity)
                except InsufficientStockError:
                    after = {b.batch_id: b.quantity_remaining for b in service.batches_for_item(item_id)}
                    assert after == before
                    assert quantity > expected
                    continue
                assert sum(a.quantity for a in allocations) == quantity
                expected -= quantity

            batches = service.batches_for_item(item_id)
            assert service.aggregate_stock(item_id) == expected
            assert sum(b.quantity_remaining for b in batches) == expected
            for batch in batches:
                assert 0 <= batch.quantity_remaining <= batch.quantity_received

    @settings(
        max_examples=30,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(
        sizes=st.lists(st.integers(1, 20), min_size=2, max_size=5),
        quantity=st.integers(1, 40),
    )
    def test_debit_drains_earliest_expiry_first(self, service, sizes, quantity):
        item_id = f"FIFO-{next(_item_ids)}"
        service.register_item(item_id, item_id, "supply", "Fuzz")
        today = service.clock.today()
        for index, size in enumerate(sizes):
            service.add_batch(item_id, size, today + timedelta(days=10 * (index + 1)), f"{item_id}-{index}")

        if quantity > sum(sizes):
            return
        service.debit(item_id, quantity)

        remaining = [b.quantity_remaining for b in service.batches_for_item(item_id)]
        # Once a batch still has stock, every later-expiring batch is untouched.
        partially_used = False
        for size, left in zip(sizes, remaining):
            if partially_used:
                assert left == size
            elif left > 0:
                partially_used = True


class TestPercentageProperties:

    @given(counts=st.lists(st.integers(0, 10_000), min_size=1, max_size=12))
    def test_sum_is_exactly_one_hundred(self, counts):
        percentages = largest_remainder_percentages(counts)
        if sum(counts) == 0:
            assert percentages == []
        else:
            assert sum(percentages) == Decimal("100.00")
            assert all(p >= 0 for p in percentages)

    @given(counts=st.lists(st.integers(1, 10_000), min_size=1, max_size=12))
    def test_each_share_within_a_hundredth(self, counts):
        total = sum(counts)
        for count, pct in zip(counts, largest_remainder_percentages(counts)):
            exact = Decimal(count * 100) / Decimal(total)
            assert abs(pct - exact) < Decimal("0.01")


class TestClassifierProperties:

    @given(minimum=st.integers(0, 1000), stock=st.integers(0, 1000))
    def test_band_monotonic_in_stock(self, minimum, stock):
        lower = _BAND_ORDER.index(classify(stock, minimum))
        higher = _BAND_ORDER.index(classify(stock + 1, minimum))
        assert higher >= lower

    @given(minimum=st.integers(1, 1000))
    def test_boundaries(self, minimum):
        assert classify(0, minimum) is StockHealth.CRITICAL
        assert classify(minimum, minimum) is StockHealth.GOOD
        if minimum % 2 == 0:
            assert classify(minimum // 2, minimum) is StockHealth.LOW

    @given(minimum=st.integers(0, 1000), stock=st.integers(0, 1000))
    def test_availability_consistent_with_health(self, minimum, stock):
        status = availability_status(stock, minimum)
        if status is AvailabilityStatus.OUT_OF_STOCK:
            assert stock == 0
        if classify(stock, minimum) is not StockHealth.GOOD:
            assert status is not AvailabilityStatus.AVAILABLE


class TestExpiryProperties:

    @given(
        offset=st.integers(-400, 400),
        critical=st.integers(0, 20),
        extra=st.integers(0, 60),
    )
    def test_classification_matches_days(self, offset, critical, extra):
        today = date(2024, 3, 15)
        windows = ExpiryWindows(critical_days=critical, warning_days=critical + extra)
        expiry = today + timedelta(days=offset)

        risk = classify_expiry(expiry, today, windows)
        days = days_until_expiry(expiry, today)

        assert days == offset
        if days < 0:
            assert risk is ExpiryRisk.EXPIRED
        elif days <= critical:
            assert risk is ExpiryRisk.CRITICAL_7D
        elif days <= critical + extra:
            assert risk is ExpiryRisk.WARNING_30D
        else:
            assert risk is ExpiryRisk.OK
