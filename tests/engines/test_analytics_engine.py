"""
Tests for the analytics projections.

Covers:
- Largest-remainder percentages summing to exactly 100.00
- Category distribution over live batches
- Usage ranking with the item-id tie-break
- Fixed-length trend buckets for every bucket kind
- Inventory value, alerts and summary
"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_engines.analytics import (
    DateWindow,
    LedgerSnapshot,
    category_distribution,
    expiry_analysis,
    inventory_alerts,
    inventory_summary,
    inventory_value,
    largest_remainder_percentages,
    stock_levels,
    stock_status_distribution,
    top_suppliers,
    top_usage,
    trend_buckets,
    usage_trend,
)
from stock_kernel.domain.dtos import (
    AvailabilityStatus,
    BatchInfo,
    ExpiryRisk,
    ItemInfo,
    ItemType,
    TrendBucket,
    UsageEntryInfo,
    UsageLineSpec,
)

TODAY = date(2024, 3, 15)


def _item(item_id, category="Routine", item_type=ItemType.VACCINE, minimum=10):
    return ItemInfo(
        item_id=item_id,
        name=item_id,
        item_type=item_type,
        category=category,
        unit_of_measure="dose",
        minimum_stock=minimum,
        unit_cost=Decimal("1.00"),
    )


def _batch(item_id, remaining=5, received=10, expires_in=90, cost="1.00", supplier=None):
    return BatchInfo(
        batch_id=uuid4(),
        batch_number=f"{item_id}-{uuid4().hex[:6]}",
        item_id=item_id,
        quantity_received=received,
        quantity_remaining=remaining,
        expiry_date=TODAY + timedelta(days=expires_in),
        received_date=date(2024, 1, 2),
        unit_cost=Decimal(cost),
        supplier=supplier,
    )


def _entry(day, *lines):
    return UsageEntryInfo(
        entry_id=uuid4(),
        usage_date=day,
        lines=tuple(UsageLineSpec(item_id=i, quantity=q) for i, q in lines),
        debits=(),
        recorded_at=datetime(2024, 3, 15, tzinfo=UTC),
    )


def _snapshot(items=(), batches=(), entries=()):
    return LedgerSnapshot(
        items=tuple(items), batches=tuple(batches), entries=tuple(entries), today=TODAY
    )


class TestLargestRemainder:

    def test_thirds_sum_to_exactly_one_hundred(self):
        pcts = largest_remainder_percentages([1, 1, 1])

        assert pcts == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]
        assert sum(pcts) == Decimal("100.00")

    def test_largest_remainder_gets_the_extra_hundredth(self):
        assert largest_remainder_percentages([2, 1]) == [Decimal("66.67"), Decimal("33.33")]

    def test_single_category_is_whole(self):
        assert largest_remainder_percentages([7]) == [Decimal("100.00")]

    def test_empty_or_zero_total(self):
        assert largest_remainder_percentages([]) == []
        assert largest_remainder_percentages([0, 0]) == []

    def test_two_decimal_places(self):
        for pct in largest_remainder_percentages([3, 5, 11, 13]):
            assert pct.as_tuple().exponent == -2


class TestCategoryDistribution:

    def test_counts_batches_of_the_type(self):
        items = [
            _item("BCG", "Routine"),
            _item("HEPB", "Routine"),
            _item("RAB", "Travel"),
            _item("PCM", "Analgesic", ItemType.MEDICATION),
        ]
        batches = [
            _batch("BCG"), _batch("BCG"), _batch("HEPB", remaining=0),
            _batch("RAB"), _batch("PCM"),
        ]

        shares = category_distribution(
            snapshot=_snapshot(items, batches), item_type=ItemType.VACCINE
        )

        assert [(s.category, s.count) for s in shares] == [("Routine", 3), ("Travel", 1)]
        assert [s.percentage for s in shares] == [Decimal("75.00"), Decimal("25.00")]

    def test_ties_sorted_by_category_name(self):
        items = [_item("X", "Zeta"), _item("Y", "Alpha")]
        shares = category_distribution(
            snapshot=_snapshot(items, [_batch("X"), _batch("Y")]),
            item_type=ItemType.VACCINE,
        )
        assert [s.category for s in shares] == ["Alpha", "Zeta"]

    def test_no_batches_yields_empty(self):
        shares = category_distribution(
            snapshot=_snapshot([_item("BCG")]), item_type=ItemType.VACCINE
        )
        assert shares == []


class TestTopUsage:

    WINDOW = DateWindow(date(2024, 3, 1), date(2024, 3, 31))

    def test_tie_broken_by_item_id(self):
        """Totals [50, 50, 30] rank A, B, C."""
        entries = [
            _entry(date(2024, 3, 2), ("C", 30)),
            _entry(date(2024, 3, 3), ("B", 50)),
            _entry(date(2024, 3, 4), ("A", 20)),
            _entry(date(2024, 3, 5), ("A", 30)),
        ]

        ranks = top_usage(entries=entries, n=3, window=self.WINDOW)

        assert [r.item_id for r in ranks] == ["A", "B", "C"]
        assert [r.total_quantity_used for r in ranks] == [50, 50, 30]
        assert [r.usage_event_count for r in ranks] == [2, 1, 1]

    def test_entries_outside_window_ignored(self):
        entries = [
            _entry(date(2024, 2, 29), ("A", 100)),
            _entry(date(2024, 3, 31), ("B", 1)),
            _entry(date(2024, 4, 1), ("C", 100)),
        ]
        ranks = top_usage(entries=entries, n=5, window=self.WINDOW)
        assert [r.item_id for r in ranks] == ["B"]

    def test_multi_line_entry_counts_once_per_item(self):
        entries = [_entry(date(2024, 3, 2), ("A", 1), ("A", 2), ("B", 1))]
        ranks = top_usage(entries=entries, n=5, window=self.WINDOW)
        assert ranks[0].item_id == "A"
        assert ranks[0].total_quantity_used == 3
        assert ranks[0].usage_event_count == 1

    def test_limit_applied(self):
        entries = [_entry(date(2024, 3, 2), ("A", 1), ("B", 2), ("C", 3))]
        assert len(top_usage(entries=entries, n=2, window=self.WINDOW)) == 2
        assert top_usage(entries=entries, n=0, window=self.WINDOW) == []

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            top_usage(entries=[], n=-1, window=self.WINDOW)

    def test_inverted_window_rejected(self):
        with pytest.raises(ValueError):
            DateWindow(date(2024, 3, 2), date(2024, 3, 1))


class TestTrendBuckets:

    def test_day_buckets_are_monday_to_sunday(self):
        points = trend_buckets(TrendBucket.DAY, TODAY)

        assert [p.label for p in points] == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
        assert points[0].start == date(2024, 3, 11)
        assert points[-1].end == date(2024, 3, 17)

    def test_week_buckets_of_thirty_one_day_month(self):
        points = trend_buckets(TrendBucket.WEEK, TODAY)

        assert [p.label for p in points] == ["Week 1", "Week 2", "Week 3", "Week 4", "Week 5"]
        assert points[0].start == date(2024, 3, 1)
        assert points[-1].start == date(2024, 3, 29)
        assert points[-1].end == date(2024, 3, 31)

    def test_non_leap_february_has_four_weeks(self):
        points = trend_buckets(TrendBucket.WEEK, date(2023, 2, 10))
        assert len(points) == 4
        assert points[-1].end == date(2023, 2, 28)

    def test_leap_february_has_five_weeks(self):
        points = trend_buckets(TrendBucket.WEEK, date(2024, 2, 10))
        assert len(points) == 5
        assert points[-1].start == points[-1].end == date(2024, 2, 29)

    def test_month_buckets(self):
        points = trend_buckets(TrendBucket.MONTH, TODAY)
        assert len(points) == 12
        assert points[1].label == "Feb"
        assert points[1].end == date(2024, 2, 29)

    def test_year_buckets(self):
        points = trend_buckets(TrendBucket.YEAR, TODAY)
        assert [p.label for p in points] == ["2020", "2021", "2022", "2023", "2024"]


class TestUsageTrend:

    def test_empty_buckets_report_zero(self):
        points = usage_trend(entries=[], bucket=TrendBucket.MONTH, anchor=TODAY)
        assert len(points) == 12
        assert all(p.usage_count == 0 and p.total_quantity == 0 for p in points)

    def test_counts_entries_per_day(self):
        entries = [
            _entry(date(2024, 3, 11), ("A", 2)),
            _entry(date(2024, 3, 11), ("B", 1), ("A", 4)),
            _entry(date(2024, 3, 15), ("A", 1)),
            _entry(date(2024, 3, 18), ("A", 9)),  # next week
        ]

        points = usage_trend(entries=entries, bucket=TrendBucket.DAY, anchor=TODAY)

        assert [p.usage_count for p in points] == [2, 0, 0, 0, 1, 0, 0]
        assert points[0].total_quantity == 7

    def test_item_filter(self):
        entries = [
            _entry(date(2024, 3, 11), ("A", 2), ("B", 3)),
            _entry(date(2024, 3, 12), ("B", 1)),
        ]

        points = usage_trend(
            entries=entries, bucket=TrendBucket.DAY, anchor=TODAY, item_id="A"
        )

        assert [p.usage_count for p in points][:2] == [1, 0]
        assert points[0].total_quantity == 2


class TestInventoryViews:

    def _fixture(self):
        items = [
            _item("A", minimum=10),
            _item("B", minimum=10),
            _item("C", minimum=10),
            _item("M", item_type=ItemType.MEDICATION, minimum=0),
        ]
        batches = [
            _batch("A", remaining=20, received=20, cost="2.50", supplier="Acme"),
            _batch("B", remaining=4, expires_in=5, cost="1.10", supplier="Acme"),
            _batch("B", remaining=0, expires_in=-2, supplier="Beta"),
            _batch("M", remaining=3, expires_in=-1, cost="0.333", supplier=None),
        ]
        return _snapshot(items, batches)

    def test_inventory_value_rounded_to_cents(self):
        snap = self._fixture()
        # 20 * 2.50 + 4 * 1.10 + 0 + 3 * 0.333 = 55.399
        assert inventory_value(snap.batches) == Decimal("55.40")

    def test_stock_levels_and_status_distribution(self):
        levels = stock_levels(self._fixture())
        counts = stock_status_distribution(levels)

        assert counts == {
            AvailabilityStatus.AVAILABLE: 2,
            AvailabilityStatus.LOW_STOCK: 1,
            AvailabilityStatus.OUT_OF_STOCK: 1,
        }

    def test_expiry_analysis_counts_every_batch(self):
        snap = self._fixture()
        counts = expiry_analysis(snap.batches, snap.today)
        assert counts[ExpiryRisk.EXPIRED] == 2
        assert counts[ExpiryRisk.CRITICAL_7D] == 1
        assert counts[ExpiryRisk.OK] == 1

    def test_top_suppliers_skips_unnamed(self):
        shares = top_suppliers(self._fixture().batches, n=5)
        assert [(s.supplier, s.batch_count, s.total_units) for s in shares] == [
            ("Acme", 2, 24),
            ("Beta", 1, 0),
        ]

    def test_alerts(self):
        alerts = inventory_alerts(snapshot=self._fixture())

        assert [lvl.item_id for lvl in alerts.low_stock] == ["B"]
        assert [lvl.item_id for lvl in alerts.out_of_stock] == ["C"]
        assert [b.item_id for b in alerts.expiring] == ["B"]
        assert sorted(b.item_id for b in alerts.expired) == ["B", "M"]
        assert alerts.total == 5

    def test_summary_filtered_by_type(self):
        summary = inventory_summary(snapshot=self._fixture(), item_type=ItemType.VACCINE)

        assert summary.total_items == 3
        assert summary.available == 1
        assert summary.low_stock == 1
        assert summary.out_of_stock == 1
        assert summary.expiring_batches == 1
        assert summary.expired_batches == 1
        assert summary.total_units == 24
        assert summary.total_value == Decimal("54.40")
