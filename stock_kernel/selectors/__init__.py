"""Read-only selectors returning frozen DTOs."""

from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.usage_selector import UsageSelector

__all__ = ["InventorySelector", "UsageSelector"]
