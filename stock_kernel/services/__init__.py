"""Kernel services: flush-only ledgers over a caller-owned session."""

from stock_kernel.services.batch_ledger import BatchLedger
from stock_kernel.services.catalog_service import CatalogService
from stock_kernel.services.item_locks import ItemLockRegistry, default_lock_registry
from stock_kernel.services.usage_ledger import UsageLedger

__all__ = [
    "BatchLedger",
    "CatalogService",
    "ItemLockRegistry",
    "UsageLedger",
    "default_lock_registry",
]
