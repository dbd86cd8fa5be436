"""
Module: stock_engines.stock_classifier
Responsibility:
    Classify an item's aggregate stock against its configured minimum.
    Two views are offered: the ratio-based health band (CRITICAL, LOW,
    MEDIUM, GOOD) and the catalog availability label (out of stock,
    low stock, available).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Integer cross-multiplication only; no division, no float rounding.
    - ratio = current / max(minimum, 1); a zero minimum never divides.
    - current == 0 is always CRITICAL.

Failure modes:
    - ValueError on negative stock or negative minimum.

Usage:
    from stock_engines.stock_classifier import classify

    classify(5, 10)   # StockHealth.LOW (ratio 0.5 is the LOW boundary)
    classify(3, 0)    # StockHealth.GOOD
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from stock_engines.tracer import traced_engine
from stock_kernel.domain.dtos import AvailabilityStatus, StockHealth


def _check(current_stock: int, minimum_stock: int) -> None:
    if current_stock < 0:
        raise ValueError(f"current_stock cannot be negative: {current_stock}")
    if minimum_stock < 0:
        raise ValueError(f"minimum_stock cannot be negative: {minimum_stock}")


def classify(current_stock: int, minimum_stock: int) -> StockHealth:
    """
    Health band for ``current_stock`` against ``minimum_stock``.

    ratio <= 0.25 CRITICAL; <= 0.5 LOW; < 1.0 MEDIUM; otherwise GOOD.
    """
    _check(current_stock, minimum_stock)
    if current_stock == 0:
        return StockHealth.CRITICAL
    denom = max(minimum_stock, 1)
    if 4 * current_stock <= denom:
        return StockHealth.CRITICAL
    if 2 * current_stock <= denom:
        return StockHealth.LOW
    if current_stock < denom:
        return StockHealth.MEDIUM
    return StockHealth.GOOD


def availability_status(current_stock: int, minimum_stock: int) -> AvailabilityStatus:
    """Catalog label: nothing left, at/below minimum, or available."""
    _check(current_stock, minimum_stock)
    if current_stock == 0:
        return AvailabilityStatus.OUT_OF_STOCK
    if current_stock <= minimum_stock:
        return AvailabilityStatus.LOW_STOCK
    return AvailabilityStatus.AVAILABLE


@dataclass(frozen=True)
class StockLevel:
    """One item's stock with both classifications."""

    item_id: str
    current_stock: int
    minimum_stock: int
    health: StockHealth
    availability: AvailabilityStatus


@traced_engine("stock_classifier", "1.0", fingerprint_fields=("levels",))
def classify_levels(*, levels: Sequence[tuple[str, int, int]]) -> list[StockLevel]:
    """Classify ``(item_id, current_stock, minimum_stock)`` triples in input order."""
    return [
        StockLevel(
            item_id=item_id,
            current_stock=current,
            minimum_stock=minimum,
            health=classify(current, minimum),
            availability=availability_status(current, minimum),
        )
        for item_id, current, minimum in levels
    ]
