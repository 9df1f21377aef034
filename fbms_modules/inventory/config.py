"""
Inventory Configuration Schema.

Defines the structure and defaults for inventory settings.  Actual values
come from the active ledger configuration (``fbms_config``).
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass
class InventoryConfig:
    """
    Configuration schema for the inventory ledger.

        config = InventoryConfig(allow_negative_stock=True)

    ``allow_negative_stock`` keeps the back-order behaviour: a sale larger
    than stock on hand drives stock below zero instead of clamping at zero.
    The shortfall warning is emitted either way.

    ``significant_cost_variance_pct`` is the change in unit cost, in
    percent, above which a receipt is flagged for review.
    """

    allow_negative_stock: bool = False
    default_min_stock: int = 0
    significant_cost_variance_pct: Decimal = Decimal("10")

    def __post_init__(self):
        if self.default_min_stock < 0:
            raise ValueError("default_min_stock cannot be negative")
        if self.significant_cost_variance_pct < 0:
            raise ValueError("significant_cost_variance_pct cannot be negative")
