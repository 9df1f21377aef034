"""
Inventory Module (``fbms_modules.inventory``).

Products, append-only stock movements and the InventoryLedger that applies
them.  Journal postings for stock changes are made by the kernel
JournalLedger; this package never writes journal rows.
"""

from fbms_modules.inventory.config import InventoryConfig
from fbms_modules.inventory.models import (
    COST_VARIANCE,
    STOCK_SHORTFALL,
    MovementOutcome,
    MovementReason,
    Product,
    StockMovement,
)
from fbms_modules.inventory.service import InventoryLedger, StockStore, weighted_average_cost

__all__ = [
    "InventoryConfig",
    "InventoryLedger",
    "MovementOutcome",
    "MovementReason",
    "Product",
    "StockMovement",
    "StockStore",
    "COST_VARIANCE",
    "STOCK_SHORTFALL",
    "weighted_average_cost",
]
