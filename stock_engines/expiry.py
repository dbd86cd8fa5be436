"""
Module: stock_engines.expiry
Responsibility:
    Date-only expiry classification of batches and the enumeration
    helpers behind the expiry monitor (expiring within a window, already
    expired, bucketed by risk).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  "Today" is always passed
    in; the service layer reads it from the injected Clock.

Invariants enforced:
    - Comparisons are on calendar dates; time of day never matters.
    - expiry < today is EXPIRED; expiry == today is still usable
      (CRITICAL_7D).
    - Windows are inclusive at both ends.

Failure modes:
    - ValueError for negative windows or a warning window shorter than
      the critical window.

Usage:
    from datetime import date
    from stock_engines.expiry import classify_expiry

    classify_expiry(date(2024, 3, 6), date(2024, 3, 1))   # CRITICAL_7D
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Sequence

from stock_engines.tracer import traced_engine
from stock_kernel.domain.dtos import BatchInfo, ExpiryRisk


@dataclass(frozen=True)
class ExpiryWindows:
    """Day counts separating CRITICAL_7D, WARNING_30D and OK."""

    critical_days: int = 7
    warning_days: int = 30

    def __post_init__(self) -> None:
        if self.critical_days < 0:
            raise ValueError("critical_days cannot be negative")
        if self.warning_days < self.critical_days:
            raise ValueError("warning_days cannot be less than critical_days")


DEFAULT_WINDOWS = ExpiryWindows()


def days_until_expiry(expiry_date: date, today: date) -> int:
    """Whole days from ``today`` to ``expiry_date`` (negative once expired)."""
    return (expiry_date - today).days


def classify_expiry(
    expiry_date: date,
    today: date,
    windows: ExpiryWindows = DEFAULT_WINDOWS,
) -> ExpiryRisk:
    if expiry_date < today:
        return ExpiryRisk.EXPIRED
    if expiry_date <= today + timedelta(days=windows.critical_days):
        return ExpiryRisk.CRITICAL_7D
    if expiry_date <= today + timedelta(days=windows.warning_days):
        return ExpiryRisk.WARNING_30D
    return ExpiryRisk.OK


def _expiry_order(batch: BatchInfo) -> tuple:
    return (batch.expiry_date, batch.received_date, batch.batch_number)


def expiring_within(
    batches: Sequence[BatchInfo],
    today: date,
    window_days: int,
) -> list[BatchInfo]:
    """Batches expiring in ``[today, today + window_days]``, soonest first."""
    if window_days < 0:
        raise ValueError(f"window_days cannot be negative: {window_days}")
    horizon = today + timedelta(days=window_days)
    hits = [b for b in batches if today <= b.expiry_date <= horizon]
    return sorted(hits, key=_expiry_order)


def expired_as_of(batches: Sequence[BatchInfo], today: date) -> list[BatchInfo]:
    """Batches whose expiry date is before ``today``, oldest first."""
    return sorted((b for b in batches if b.expiry_date < today), key=_expiry_order)


@traced_engine("expiry_monitor", "1.0", fingerprint_fields=("today", "windows"))
def bucket_by_risk(
    *,
    batches: Sequence[BatchInfo],
    today: date,
    windows: ExpiryWindows = DEFAULT_WINDOWS,
) -> dict[ExpiryRisk, list[BatchInfo]]:
    """Every batch placed in exactly one risk bucket; all four keys present."""
    buckets: dict[ExpiryRisk, list[BatchInfo]] = {risk: [] for risk in ExpiryRisk}
    for batch in sorted(batches, key=_expiry_order):
        buckets[classify_expiry(batch.expiry_date, today, windows)].append(batch)
    return buckets
