"""
Analytics Service (``stock_services.analytics_service``).

Responsibility
--------------
Builds a ``LedgerSnapshot`` from the selectors and hands it to the pure
projections in ``stock_engines.analytics``.  Nothing is cached: every
call reads the ledgers afresh, so reports always reflect committed state.

Architecture
------------
Layer: **Services** -- read-only orchestration.  No locks, no commits.

Usage::

    analytics = AnalyticsService(session, clock=clock, config=config)
    analytics.category_distribution(ItemType.VACCINE)
    analytics.trend(TrendBucket.WEEK)
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from stock_config.schema import EngineConfig
from stock_engines import analytics
from stock_engines.analytics import (
    CategoryShare,
    DateWindow,
    InventoryAlerts,
    InventorySummary,
    LedgerSnapshot,
    SupplierShare,
    TrendPoint,
    UsageRank,
)
from stock_engines.expiry import ExpiryWindows
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import AvailabilityStatus, ExpiryRisk, ItemType, TrendBucket
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.usage_selector import UsageSelector

logger = get_logger("services.analytics")


def current_month(today: date) -> DateWindow:
    """Calendar month containing ``today``."""
    last_day = calendar.monthrange(today.year, today.month)[1]
    return DateWindow(today.replace(day=1), today.replace(day=last_day))


class AnalyticsService:
    """Read-side reporting over the batch and usage ledgers."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
    ):
        self._clock = clock or SystemClock()
        self._config = config or EngineConfig.with_defaults()
        self._inventory = InventorySelector(session)
        self._usage = UsageSelector(session)
        self._windows = ExpiryWindows(
            critical_days=self._config.critical_window_days,
            warning_days=self._config.warning_window_days,
        )

    def snapshot(self, window: DateWindow | None = None) -> LedgerSnapshot:
        """
        Capture items, live batches and usage entries as of today.

        With ``window`` only entries dated inside it are loaded.
        """
        entries = (
            self._usage.entries(window.start, window.end)
            if window is not None
            else self._usage.entries()
        )
        snap = LedgerSnapshot(
            items=tuple(self._inventory.items(include_inactive=True)),
            batches=tuple(self._inventory.batches()),
            entries=tuple(entries),
            today=self._clock.today(),
        )
        logger.debug(
            "analytics_snapshot_built",
            extra={
                "item_count": len(snap.items),
                "batch_count": len(snap.batches),
                "entry_count": len(snap.entries),
                "as_of": snap.today.isoformat(),
            },
        )
        return snap

    def _stock_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            items=tuple(self._inventory.items()),
            batches=tuple(self._inventory.batches()),
            entries=(),
            today=self._clock.today(),
        )

    # ------------------------------------------------------------------
    # Usage views
    # ------------------------------------------------------------------

    def category_distribution(self, item_type: ItemType) -> list[CategoryShare]:
        return analytics.category_distribution(
            snapshot=self._stock_snapshot(), item_type=ItemType(item_type)
        )

    def top_usage(
        self,
        n: int | None = None,
        window: DateWindow | None = None,
    ) -> list[UsageRank]:
        """Most-used items; defaults to the configured limit and the current month."""
        limit = self._config.top_usage_limit if n is None else n
        span = window or current_month(self._clock.today())
        snap = self.snapshot(span)
        return analytics.top_usage(entries=snap.entries, n=limit, window=span)

    def trend(
        self,
        bucket: TrendBucket,
        anchor: date | None = None,
        item_id: str | None = None,
    ) -> list[TrendPoint]:
        """Fixed-length usage trend for the period containing ``anchor`` (default today)."""
        day = anchor or self._clock.today()
        kind = TrendBucket(bucket)
        buckets = analytics.trend_buckets(kind, day)
        snap = self.snapshot(DateWindow(buckets[0].start, buckets[-1].end))
        return analytics.usage_trend(
            entries=snap.entries, bucket=kind, anchor=day, item_id=item_id
        )

    # ------------------------------------------------------------------
    # Inventory views
    # ------------------------------------------------------------------

    def inventory_value(self, item_type: ItemType | None = None) -> Decimal:
        return analytics.inventory_value(self._stock_snapshot().batches_of_type(item_type))

    def stock_status_distribution(
        self, item_type: ItemType | None = None
    ) -> dict[AvailabilityStatus, int]:
        levels = analytics.stock_levels(self._stock_snapshot(), item_type)
        return analytics.stock_status_distribution(levels)

    def expiry_analysis(self, item_type: ItemType | None = None) -> dict[ExpiryRisk, int]:
        snap = self._stock_snapshot()
        return analytics.expiry_analysis(
            snap.batches_of_type(item_type), snap.today, self._windows
        )

    def top_suppliers(
        self,
        n: int | None = None,
        item_type: ItemType | None = None,
    ) -> list[SupplierShare]:
        limit = self._config.top_suppliers_limit if n is None else n
        return analytics.top_suppliers(
            self._stock_snapshot().batches_of_type(item_type), limit
        )

    def inventory_alerts(self, item_type: ItemType | None = None) -> InventoryAlerts:
        return analytics.inventory_alerts(
            snapshot=self._stock_snapshot(),
            expiring_window_days=self._config.expiring_window_days,
            item_type=item_type,
        )

    def inventory_summary(self, item_type: ItemType | None = None) -> InventorySummary:
        return analytics.inventory_summary(
            snapshot=self._stock_snapshot(),
            item_type=item_type,
            expiring_window_days=self._config.expiring_window_days,
        )
