"""
Inventory Domain Models (``fbms_modules.inventory.models``).

Responsibility
--------------
Frozen value objects for products and their append-only stock movements.

Invariants
----------
- A product's ``stock`` changes only through a ``StockMovement``; the
  InventoryLedger is the only code that builds one.
- ``StockMovement.resulting_stock`` is the stock immediately after the
  movement, so replaying deltas from zero in ``sequence`` order reproduces
  the product's current stock.
- All monetary fields use ``Decimal``, never ``float``.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fbms_kernel.db.types import ZERO

# Warning code attached to a sale that asked for more than was on hand
STOCK_SHORTFALL = "stock-shortfall"
# Warning code attached to a receipt that moved unit cost past the threshold
COST_VARIANCE = "cost-variance"


class MovementReason(str, Enum):
    """Why a product's stock changed."""
    SALE = "sale"
    RECEIVING = "receiving"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class Product:
    """A stocked product.

    ``version`` mirrors the optimistic concurrency column; callers never
    set it, the repository does.
    """
    id: UUID
    sku: str
    name: str
    stock: int = 0
    min_stock: int = 0
    cost: Decimal = ZERO
    price: Decimal = ZERO
    is_active: bool = True
    version: int = 0

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock

    def with_stock(self, stock: int) -> "Product":
        return replace(self, stock=stock)

    def with_cost(self, cost: Decimal) -> "Product":
        return replace(self, cost=cost)


@dataclass(frozen=True)
class StockMovement:
    """An immutable record of one change to a product's stock."""
    id: UUID
    product_id: UUID
    delta: int
    reason: MovementReason
    reference_id: UUID | None
    resulting_stock: int
    timestamp: datetime
    actor_id: UUID
    sequence: int
    note: str = ""


@dataclass(frozen=True)
class MovementOutcome:
    """What ``InventoryLedger.apply_movement`` did.

    ``requested_delta`` differs from ``movement.delta`` only when a sale
    was clamped at zero stock.
    """
    movement: StockMovement
    product: Product
    requested_delta: int
    warnings: tuple[str, ...] = ()

    @property
    def was_clamped(self) -> bool:
        return self.requested_delta != self.movement.delta
