"""
Module: stock_engines.analytics
Responsibility:
    Read-only projections over an explicit ledger snapshot: category
    distribution, usage ranking, fixed-length usage trends, and the
    inventory reporting views (value, stock status, expiry analysis,
    suppliers, alerts, summary).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Every function takes the
    snapshot (or the relevant slice of it) as an argument.  Nothing here is
    cached; the service rebuilds the snapshot per request.

Invariants enforced:
    - Category percentages are two-place Decimals summing to exactly
      100.00 whenever there is at least one batch (largest remainder
      method; ties go to the earlier row in display order).
    - Usage ranking is sorted by total descending, item_id ascending.
    - Trend output length depends only on bucket kind and anchor:
      7 days, 4-5 weeks, 12 months, 5 years.  Empty buckets report zero.

Failure modes:
    - ValueError for an inverted DateWindow or a negative ranking limit.

Usage:
    from stock_engines.analytics import usage_trend
    from stock_kernel.domain.dtos import TrendBucket

    points = usage_trend(entries=entries, bucket=TrendBucket.DAY, anchor=today)
    len(points)   # 7
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from stock_engines.expiry import DEFAULT_WINDOWS, ExpiryWindows, classify_expiry
from stock_engines.stock_classifier import StockLevel, classify_levels
from stock_engines.tracer import traced_engine
from stock_kernel.domain.dtos import (
    AvailabilityStatus,
    BatchInfo,
    ExpiryRisk,
    ItemInfo,
    ItemType,
    TrendBucket,
    UsageEntryInfo,
)

CENT = Decimal("0.01")
_DAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTH_LABELS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)
YEARS_IN_TREND = 5


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DateWindow:
    """Inclusive calendar window ``[start, end]``."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"window end {self.end} is before start {self.start}")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    Everything the aggregator reads, captured at one point in time.

    Contract:
        ``batches`` are live batches only; ``today`` comes from the clock
        that produced the snapshot.
    """

    items: tuple[ItemInfo, ...]
    batches: tuple[BatchInfo, ...]
    entries: tuple[UsageEntryInfo, ...]
    today: date

    def items_of_type(self, item_type: ItemType | None) -> list[ItemInfo]:
        if item_type is None:
            return list(self.items)
        kind = ItemType(item_type)
        return [i for i in self.items if i.item_type == kind]

    def batches_of_type(self, item_type: ItemType | None) -> list[BatchInfo]:
        if item_type is None:
            return list(self.batches)
        ids = {i.item_id for i in self.items_of_type(item_type)}
        return [b for b in self.batches if b.item_id in ids]

    def stock_by_item(self) -> dict[str, int]:
        stock: dict[str, int] = {i.item_id: 0 for i in self.items}
        for batch in self.batches:
            stock[batch.item_id] = stock.get(batch.item_id, 0) + batch.quantity_remaining
        return stock


@dataclass(frozen=True)
class CategoryShare:
    category: str
    count: int
    percentage: Decimal


@dataclass(frozen=True)
class UsageRank:
    item_id: str
    total_quantity_used: int
    usage_event_count: int


@dataclass(frozen=True)
class TrendPoint:
    label: str
    start: date
    end: date
    usage_count: int = 0
    total_quantity: int = 0


@dataclass(frozen=True)
class SupplierShare:
    supplier: str
    batch_count: int
    total_units: int


@dataclass(frozen=True)
class InventoryAlerts:
    """Items and batches that need staff attention."""

    low_stock: tuple[StockLevel, ...] = ()
    out_of_stock: tuple[StockLevel, ...] = ()
    expiring: tuple[BatchInfo, ...] = ()
    expired: tuple[BatchInfo, ...] = ()

    @property
    def total(self) -> int:
        return (
            len(self.low_stock) + len(self.out_of_stock)
            + len(self.expiring) + len(self.expired)
        )


@dataclass(frozen=True)
class InventorySummary:
    total_items: int
    available: int
    low_stock: int
    out_of_stock: int
    expiring_batches: int
    expired_batches: int
    total_units: int
    total_value: Decimal
    status_counts: dict[AvailabilityStatus, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Category distribution
# ---------------------------------------------------------------------------


def largest_remainder_percentages(counts: Sequence[int]) -> list[Decimal]:
    """
    Two-place percentages for ``counts`` that sum to exactly 100.00.

    Works in hundredths of a percent: each share is floored, then the
    leftover hundredths go to the largest remainders (earlier index wins
    a tie).  Returns an empty list when the counts sum to zero.
    """
    total = sum(counts)
    if total <= 0:
        return []
    units = 10000
    floors: list[int] = []
    remainders: list[tuple[int, int]] = []
    for index, count in enumerate(counts):
        share, rem = divmod(count * units, total)
        floors.append(share)
        remainders.append((-rem, index))
    leftover = units - sum(floors)
    for _, index in sorted(remainders)[:leftover]:
        floors[index] += 1
    return [(Decimal(f) / 100).quantize(CENT) for f in floors]


@traced_engine("analytics.category_distribution", "1.0", fingerprint_fields=("item_type",))
def category_distribution(
    *,
    snapshot: LedgerSnapshot,
    item_type: ItemType,
) -> list[CategoryShare]:
    """
    Live batches per category for one item type.

    Exhausted batches count until they are disposed.  Sorted by count
    descending, then category name.
    """
    category_of = {i.item_id: i.category for i in snapshot.items_of_type(item_type)}
    counts: dict[str, int] = defaultdict(int)
    for batch in snapshot.batches:
        category = category_of.get(batch.item_id)
        if category is not None:
            counts[category] += 1

    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    percentages = largest_remainder_percentages([c for _, c in ordered])
    return [
        CategoryShare(category=name, count=count, percentage=pct)
        for (name, count), pct in zip(ordered, percentages)
    ]


# ---------------------------------------------------------------------------
# Usage ranking
# ---------------------------------------------------------------------------


@traced_engine("analytics.top_usage", "1.0", fingerprint_fields=("n", "window"))
def top_usage(
    *,
    entries: Sequence[UsageEntryInfo],
    n: int,
    window: DateWindow,
) -> list[UsageRank]:
    """
    The ``n`` most-used items within ``window``.

    ``usage_event_count`` counts distinct entries that used the item.
    """
    if n < 0:
        raise ValueError(f"n cannot be negative: {n}")
    totals: dict[str, int] = defaultdict(int)
    events: dict[str, set] = defaultdict(set)
    for entry in entries:
        if not window.contains(entry.usage_date):
            continue
        for line in entry.lines:
            totals[line.item_id] += line.quantity
            events[line.item_id].add(entry.entry_id)

    ranked = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
    return [
        UsageRank(item_id=item_id, total_quantity_used=total, usage_event_count=len(events[item_id]))
        for item_id, total in ranked[:n]
    ]


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------


def trend_buckets(bucket: TrendBucket, anchor: date) -> list[TrendPoint]:
    """Empty, ordered buckets for the period that contains ``anchor``."""
    kind = TrendBucket(bucket)
    if kind is TrendBucket.DAY:
        monday = anchor - timedelta(days=anchor.weekday())
        return [
            TrendPoint(label=_DAY_LABELS[i], start=monday + timedelta(days=i), end=monday + timedelta(days=i))
            for i in range(7)
        ]
    if kind is TrendBucket.WEEK:
        last_day = calendar.monthrange(anchor.year, anchor.month)[1]
        month_end = date(anchor.year, anchor.month, last_day)
        points = []
        start = date(anchor.year, anchor.month, 1)
        number = 1
        while start <= month_end:
            end = min(start + timedelta(days=6), month_end)
            points.append(TrendPoint(label=f"Week {number}", start=start, end=end))
            start = end + timedelta(days=1)
            number += 1
        return points
    if kind is TrendBucket.MONTH:
        return [
            TrendPoint(
                label=_MONTH_LABELS[m - 1],
                start=date(anchor.year, m, 1),
                end=date(anchor.year, m, calendar.monthrange(anchor.year, m)[1]),
            )
            for m in range(1, 13)
        ]
    first_year = anchor.year - (YEARS_IN_TREND - 1)
    return [
        TrendPoint(label=str(y), start=date(y, 1, 1), end=date(y, 12, 31))
        for y in range(first_year, anchor.year + 1)
    ]


@traced_engine("analytics.usage_trend", "1.0", fingerprint_fields=("bucket", "anchor", "item_id"))
def usage_trend(
    *,
    entries: Sequence[UsageEntryInfo],
    bucket: TrendBucket,
    anchor: date,
    item_id: str | None = None,
) -> list[TrendPoint]:
    """
    Usage per bucket for the period containing ``anchor``.

    ``usage_count`` counts entries; ``total_quantity`` sums line
    quantities.  With ``item_id`` only lines of that item are counted.
    """
    points = trend_buckets(bucket, anchor)
    counts = [0] * len(points)
    quantities = [0] * len(points)
    for entry in entries:
        if item_id is not None and not any(line.item_id == item_id for line in entry.lines):
            continue
        quantity = entry.total_quantity if item_id is None else entry.quantity_for(item_id)
        for index, point in enumerate(points):
            if point.start <= entry.usage_date <= point.end:
                counts[index] += 1
                quantities[index] += quantity
                break
    return [
        TrendPoint(
            label=p.label,
            start=p.start,
            end=p.end,
            usage_count=counts[i],
            total_quantity=quantities[i],
        )
        for i, p in enumerate(points)
    ]


# ---------------------------------------------------------------------------
# Inventory reporting views
# ---------------------------------------------------------------------------


def _by_expiry(batch: BatchInfo) -> tuple:
    return (batch.expiry_date, batch.received_date, batch.batch_number)


def inventory_value(batches: Sequence[BatchInfo]) -> Decimal:
    """Sum of remaining quantity times batch unit cost, rounded to cents."""
    total = sum((b.remaining_value for b in batches), Decimal("0"))
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def stock_levels(snapshot: LedgerSnapshot, item_type: ItemType | None = None) -> list[StockLevel]:
    stock = snapshot.stock_by_item()
    return classify_levels(
        levels=[
            (i.item_id, stock.get(i.item_id, 0), i.minimum_stock)
            for i in snapshot.items_of_type(item_type)
            if i.is_active
        ]
    )


def stock_status_distribution(levels: Sequence[StockLevel]) -> dict[AvailabilityStatus, int]:
    counts = {status: 0 for status in AvailabilityStatus}
    for level in levels:
        counts[level.availability] += 1
    return counts


def expiry_analysis(
    batches: Sequence[BatchInfo],
    today: date,
    windows: ExpiryWindows = DEFAULT_WINDOWS,
) -> dict[ExpiryRisk, int]:
    counts = {risk: 0 for risk in ExpiryRisk}
    for batch in batches:
        counts[classify_expiry(batch.expiry_date, today, windows)] += 1
    return counts


def top_suppliers(batches: Sequence[BatchInfo], n: int = 5) -> list[SupplierShare]:
    """Suppliers by number of live batches, then name; unnamed suppliers skipped."""
    if n < 0:
        raise ValueError(f"n cannot be negative: {n}")
    batch_counts: dict[str, int] = defaultdict(int)
    units: dict[str, int] = defaultdict(int)
    for batch in batches:
        if not batch.supplier:
            continue
        batch_counts[batch.supplier] += 1
        units[batch.supplier] += batch.quantity_remaining
    ranked = sorted(batch_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [
        SupplierShare(supplier=name, batch_count=count, total_units=units[name])
        for name, count in ranked[:n]
    ]


@traced_engine("analytics.inventory_alerts", "1.0", fingerprint_fields=("expiring_window_days",))
def inventory_alerts(
    *,
    snapshot: LedgerSnapshot,
    expiring_window_days: int = 30,
    item_type: ItemType | None = None,
) -> InventoryAlerts:
    """
    Low/out-of-stock items plus expiring and expired batches.

    Exhausted batches raise no "expiring" alert; expired ones are listed
    regardless of quantity until they are disposed.
    """
    levels = stock_levels(snapshot, item_type)
    batches = snapshot.batches_of_type(item_type)
    horizon = snapshot.today + timedelta(days=expiring_window_days)
    return InventoryAlerts(
        low_stock=tuple(l for l in levels if l.availability is AvailabilityStatus.LOW_STOCK),
        out_of_stock=tuple(l for l in levels if l.availability is AvailabilityStatus.OUT_OF_STOCK),
        expiring=tuple(sorted(
            (b for b in batches if snapshot.today <= b.expiry_date <= horizon and b.quantity_remaining > 0),
            key=_by_expiry,
        )),
        expired=tuple(sorted((b for b in batches if b.expiry_date < snapshot.today), key=_by_expiry)),
    )


@traced_engine("analytics.inventory_summary", "1.0", fingerprint_fields=("item_type",))
def inventory_summary(
    *,
    snapshot: LedgerSnapshot,
    item_type: ItemType | None = None,
    expiring_window_days: int = 30,
) -> InventorySummary:
    levels = stock_levels(snapshot, item_type)
    batches = snapshot.batches_of_type(item_type)
    status_counts = stock_status_distribution(levels)
    horizon = snapshot.today + timedelta(days=expiring_window_days)
    return InventorySummary(
        total_items=len(levels),
        available=status_counts[AvailabilityStatus.AVAILABLE],
        low_stock=status_counts[AvailabilityStatus.LOW_STOCK],
        out_of_stock=status_counts[AvailabilityStatus.OUT_OF_STOCK],
        expiring_batches=sum(1 for b in batches if snapshot.today <= b.expiry_date <= horizon),
        expired_batches=sum(1 for b in batches if b.expiry_date < snapshot.today),
        total_units=sum(b.quantity_remaining for b in batches),
        total_value=inventory_value(batches),
        status_counts=status_counts,
    )
