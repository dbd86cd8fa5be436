"""
stock_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the kernel ledgers and the pure engines.
    This is the only layer that commits transactions, holds item locks
    across a command, or drives the disposal countdown.

Architecture position:
    Services -- outermost library layer.

    Dependency direction:
        stock_services/ -> stock_engines/, stock_kernel/, stock_config/
        stock_engines/  -> stock_kernel/ (domain types only)
        stock_kernel/   -> nothing above it

Audit relevance:
    This package is the canonical import surface for host applications.
"""

from stock_services.analytics_service import AnalyticsService
from stock_services.disposal_workflow import DISPOSAL_WORKFLOW, DisposalWorkflow
from stock_services.inventory_service import InventoryService
from stock_services.runtime import StockRuntime, start_runtime

__all__ = [
    "AnalyticsService",
    "DISPOSAL_WORKFLOW",
    "DisposalWorkflow",
    "InventoryService",
    "StockRuntime",
    "start_runtime",
]
