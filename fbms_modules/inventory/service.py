"""
Inventory Ledger (``fbms_modules.inventory.service``).

Responsibility
--------------
Owns product stock quantities and their append-only movement history.
``InventoryLedger.apply_movement`` is the only code path that changes a
product's ``stock``.

Architecture position
---------------------
**Modules layer**.  Persists through the ``StockStore`` protocol (satisfied
by ``fbms_services.repository.SqlAlchemyLedgerRepository``).  Does NOT own
the transaction boundary; the TransactionCoordinator does.

Invariants enforced
-------------------
* Replay: summing every movement delta for a product in ``sequence`` order
  from zero yields its current stock.  Clamped sales record the clamped
  delta, never the requested one.
* Negative-stock policy: sale decrements clamp at zero with a
  ``stock-shortfall`` warning unless ``allow_negative_stock`` is set.
  Manual adjustments never clamp; one that would go below zero raises
  ``NegativeStockError`` before anything is written.
* Weighted-average cost: every receipt through ``receive_at_cost`` sets
  the product cost to the value-weighted mean of the stock on hand and
  the goods received, so cost of goods sold follows what was paid.

Failure modes
-------------
* ``ProductNotFoundError`` -- unknown product id.
* ``NegativeStockError`` -- adjustment below zero (validation, no mutation).

Usage::

    ledger = InventoryLedger(repo, clock=clock)
    outcome = ledger.apply_movement(
        product_id, -2, MovementReason.SALE, sale_id, cashier_id,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from decimal import Decimal
from typing import Protocol
from uuid import UUID, uuid4

from fbms_kernel.db.types import ZERO, round_money
from fbms_kernel.domain.clock import Clock, SystemClock
from fbms_kernel.exceptions import NegativeStockError, ProductNotFoundError
from fbms_kernel.logging_config import get_logger
from fbms_modules.inventory.config import InventoryConfig
from fbms_modules.inventory.models import (
    COST_VARIANCE,
    STOCK_SHORTFALL,
    MovementOutcome,
    MovementReason,
    Product,
    StockMovement,
)

logger = get_logger("modules.inventory.service")


def weighted_average_cost(
    on_hand: int, current_cost: Decimal, incoming: int, incoming_cost: Decimal,
) -> Decimal:
    """Unit cost after ``incoming`` units at ``incoming_cost`` join the shelf.

    Stock below zero (an uncleared back order) carries no value, so it
    counts as zero on hand.
    """
    on_hand = max(on_hand, 0)
    total_units = on_hand + incoming
    if total_units <= 0:
        return round_money(incoming_cost)
    value = on_hand * current_cost + incoming * incoming_cost
    return round_money(value / total_units)


def cost_variance_pct(old_cost: Decimal, new_cost: Decimal) -> Decimal:
    if old_cost == 0:
        return ZERO
    return round_money((new_cost - old_cost) / old_cost * 100)


class StockStore(Protocol):
    """Persistence operations the inventory ledger needs."""

    def load_product(self, product_id: UUID) -> Product | None: ...

    def save_product(self, product: Product, actor_id: UUID) -> Product: ...

    def list_products(self, active_only: bool = True) -> Sequence[Product]: ...

    def save_stock_movement(self, movement: StockMovement) -> None: ...

    def list_stock_movements(self, product_id: UUID) -> Sequence[StockMovement]: ...

    def last_stock_movement_sequence(self, product_id: UUID) -> int: ...


class InventoryLedger:
    """Applies stock movements and answers stock questions."""

    def __init__(
        self,
        store: StockStore,
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._config = config or InventoryConfig()

    def get_product(self, product_id: UUID) -> Product:
        product = self._store.load_product(product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    def apply_movement(
        self,
        product_id: UUID,
        delta: int,
        reason: MovementReason | str,
        reference_id: UUID | None,
        actor_id: UUID,
        note: str = "",
    ) -> MovementOutcome:
        """
        Record one stock movement and update the product's stock.

        Returns the movement, the updated product and any warnings.
        """
        reason = MovementReason(reason)
        product = self.get_product(product_id)
        current = product.stock
        applied = delta
        warnings: list[str] = []

        if reason is MovementReason.ADJUSTMENT and current + delta < 0:
            logger.warning(
                "negative_stock_adjustment_rejected",
                extra={
                    "product_id": str(product_id),
                    "current_stock": current,
                    "delta": delta,
                },
            )
            raise NegativeStockError(str(product_id), current, delta)

        if reason is MovementReason.SALE and current + delta < 0:
            if not self._config.allow_negative_stock:
                applied = max(delta, -max(current, 0))
            warnings.append(STOCK_SHORTFALL)
            logger.warning(
                "stock_shortfall",
                extra={
                    "product_id": str(product_id),
                    "sku": product.sku,
                    "current_stock": current,
                    "requested_delta": delta,
                    "applied_delta": applied,
                    "reference_id": str(reference_id) if reference_id else None,
                },
            )

        movement = StockMovement(
            id=uuid4(),
            product_id=product_id,
            delta=applied,
            reason=reason,
            reference_id=reference_id,
            resulting_stock=current + applied,
            timestamp=self._clock.now(),
            actor_id=actor_id,
            sequence=self._store.last_stock_movement_sequence(product_id) + 1,
            note=note,
        )
        self._store.save_stock_movement(movement)
        updated = self._store.save_product(
            product.with_stock(movement.resulting_stock), actor_id,
        )

        logger.info(
            "stock_movement_applied",
            extra={
                "product_id": str(product_id),
                "reason": reason.value,
                "delta": applied,
                "resulting_stock": movement.resulting_stock,
                "sequence": movement.sequence,
            },
        )
        return MovementOutcome(
            movement=movement,
            product=updated,
            requested_delta=delta,
            warnings=tuple(warnings),
        )

    def receive_at_cost(
        self,
        product_id: UUID,
        quantity: int,
        unit_cost: Decimal,
        reference_id: UUID | None,
        actor_id: UUID,
    ) -> MovementOutcome:
        """
        Receive goods and fold their purchase cost into the product's cost.

        The new cost is the weighted average of the stock on hand at its
        current cost and the incoming quantity at ``unit_cost``.  A change
        larger than ``significant_cost_variance_pct`` adds a
        ``cost-variance`` warning.
        """
        if quantity <= 0:
            raise ValueError("received quantity must be positive")
        outcome = self.apply_movement(
            product_id, quantity, MovementReason.RECEIVING, reference_id, actor_id,
        )
        product = outcome.product
        on_hand = product.stock - quantity
        new_cost = weighted_average_cost(on_hand, product.cost, quantity, unit_cost)
        if new_cost == product.cost:
            return outcome

        variance_pct = cost_variance_pct(product.cost, new_cost)
        warnings = list(outcome.warnings)
        extra = {
            "product_id": str(product_id),
            "sku": product.sku,
            "on_hand": on_hand,
            "received": quantity,
            "unit_cost": str(unit_cost),
            "old_cost": str(product.cost),
            "new_cost": str(new_cost),
            "variance_pct": str(variance_pct),
        }
        if abs(variance_pct) > self._config.significant_cost_variance_pct:
            warnings.append(COST_VARIANCE)
            logger.warning("significant_cost_variance", extra=extra)

        updated = self._store.save_product(product.with_cost(new_cost), actor_id)
        logger.info("weighted_average_cost_updated", extra=extra)
        return replace(outcome, product=updated, warnings=tuple(warnings))

    def open_product(
        self,
        sku: str,
        name: str,
        cost: Decimal,
        price: Decimal,
        actor_id: UUID,
        opening_stock: int = 0,
        min_stock: int | None = None,
        product_id: UUID | None = None,
    ) -> Product:
        """
        Register a new product.

        Opening stock is recorded as an adjustment movement so that replay
        from zero holds from the very first row.
        """
        if opening_stock < 0:
            raise ValueError("opening_stock cannot be negative")
        product = Product(
            id=product_id or uuid4(),
            sku=sku,
            name=name,
            stock=0,
            min_stock=self._config.default_min_stock if min_stock is None else min_stock,
            cost=round_money(cost),
            price=round_money(price),
        )
        product = self._store.save_product(product, actor_id)
        logger.info(
            "product_opened",
            extra={"product_id": str(product.id), "sku": sku, "opening_stock": opening_stock},
        )
        if opening_stock > 0:
            outcome = self.apply_movement(
                product.id,
                opening_stock,
                MovementReason.ADJUSTMENT,
                None,
                actor_id,
                note="opening stock",
            )
            product = outcome.product
        return product

    def replay_stock(self, product_id: UUID) -> int:
        """Stock obtained by replaying every movement from zero."""
        return sum(m.delta for m in self._store.list_stock_movements(product_id))

    def verify_stock(self, product_id: UUID) -> bool:
        product = self.get_product(product_id)
        replayed = self.replay_stock(product_id)
        if replayed != product.stock:
            logger.error(
                "stock_replay_mismatch",
                extra={
                    "product_id": str(product_id),
                    "stock": product.stock,
                    "replayed": replayed,
                },
            )
            return False
        return True

    def low_stock_products(self) -> list[Product]:
        """Active products at or below their minimum stock."""
        return [p for p in self._store.list_products(active_only=True) if p.is_low_stock]
