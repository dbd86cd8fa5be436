"""Domain models for the stock kernel."""

from stock_kernel.models.batch import Batch
from stock_kernel.models.disposal import DisposalRecord
from stock_kernel.models.item import InventoryItem
from stock_kernel.models.usage import UsageDebit, UsageEntry, UsageLine

__all__ = [
    "InventoryItem",
    "Batch",
    "UsageEntry",
    "UsageLine",
    "UsageDebit",
    "DisposalRecord",
]
