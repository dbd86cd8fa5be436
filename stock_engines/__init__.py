"""
stock_engines -- pure calculation layer.

Stock health classification, expiry classification and the analytics
projections.  Functions take plain values and frozen DTOs and never touch
the database or the clock; "today" is always an argument.
"""

from stock_engines.expiry import (
    DEFAULT_WINDOWS,
    ExpiryWindows,
    bucket_by_risk,
    classify_expiry,
    days_until_expiry,
    expired_as_of,
    expiring_within,
)
from stock_engines.stock_classifier import (
    StockLevel,
    availability_status,
    classify,
    classify_levels,
)

__all__ = [
    "DEFAULT_WINDOWS",
    "ExpiryWindows",
    "StockLevel",
    "availability_status",
    "bucket_by_risk",
    "classify",
    "classify_expiry",
    "classify_levels",
    "days_until_expiry",
    "expired_as_of",
    "expiring_within",
]
