"""
InventoryLedger: movement application, shortfall clamping, receipt costing
and replay.

Stock is never edited directly; every change is a movement, and replaying
the movements from zero reproduces the product's stock.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fbms_kernel.exceptions import NegativeStockError, ProductNotFoundError
from fbms_modules.inventory import (
    COST_VARIANCE,
    STOCK_SHORTFALL,
    InventoryConfig,
    InventoryLedger,
    MovementReason,
    weighted_average_cost,
)


@pytest.fixture
def inventory(seeded_repo, clock) -> InventoryLedger:
    return InventoryLedger(seeded_repo, clock=clock)


class TestOpenProduct:

    def test_opening_stock_recorded_as_movement(self, inventory, make_product, seeded_repo):
        product = make_product("RICE-25", cost="1150.00", price="1350.00", stock=12)

        movements = seeded_repo.list_stock_movements(product.id)
        assert product.stock == 12
        assert [(m.delta, m.reason, m.sequence) for m in movements] == [
            (12, MovementReason.ADJUSTMENT, 1),
        ]
        assert inventory.verify_stock(product.id)

    def test_negative_opening_stock_rejected(self, inventory, test_actor_id):
        with pytest.raises(ValueError):
            inventory.open_product(
                "X", "X", Decimal("1"), Decimal("2"), test_actor_id, opening_stock=-1,
            )


class TestApplyMovement:

    def test_sale_decrements_stock(self, inventory, make_product, seeded_repo, test_actor_id):
        product = make_product("SOAP-01", cost="25.00", price="35.00", stock=10)
        sale_id = uuid4()

        with seeded_repo.transaction():
            outcome = inventory.apply_movement(
                product.id, -3, MovementReason.SALE, sale_id, test_actor_id,
            )

        assert outcome.product.stock == 7
        assert outcome.movement.resulting_stock == 7
        assert outcome.movement.reference_id == sale_id
        assert outcome.movement.sequence == 2
        assert not outcome.was_clamped
        assert outcome.warnings == ()

    def test_sale_shortfall_clamped_at_zero(
        self, inventory, make_product, seeded_repo, test_actor_id, captured_logs,
    ):
        product = make_product("SOAP-01", cost="25.00", price="35.00", stock=2)

        with seeded_repo.transaction():
            outcome = inventory.apply_movement(
                product.id, -5, MovementReason.SALE, uuid4(), test_actor_id,
            )

        assert outcome.movement.delta == -2
        assert outcome.requested_delta == -5
        assert outcome.product.stock == 0
        assert outcome.was_clamped
        assert outcome.warnings == (STOCK_SHORTFALL,)
        assert captured_logs.find("stock_shortfall")[0]["applied_delta"] == -2
        assert inventory.verify_stock(product.id)

    def test_negative_stock_allowed_when_configured(
        self, seeded_repo, clock, make_product, test_actor_id,
    ):
        inventory = InventoryLedger(
            seeded_repo, clock=clock, config=InventoryConfig(allow_negative_stock=True),
        )
        product = make_product("SOAP-01", cost="25.00", price="35.00", stock=2)

        with seeded_repo.transaction():
            outcome = inventory.apply_movement(
                product.id, -5, MovementReason.SALE, uuid4(), test_actor_id,
            )

        assert outcome.product.stock == -3
        assert outcome.warnings == (STOCK_SHORTFALL,)

    def test_adjustment_below_zero_rejected(
        self, inventory, make_product, seeded_repo, test_actor_id,
    ):
        product = make_product("SOAP-01", cost="25.00", price="35.00", stock=2)

        with pytest.raises(NegativeStockError):
            inventory.apply_movement(
                product.id, -3, MovementReason.ADJUSTMENT, None, test_actor_id,
            )
        assert seeded_repo.list_stock_movements(product.id)[-1].sequence == 1

    def test_unknown_product(self, inventory, test_actor_id):
        with pytest.raises(ProductNotFoundError):
            inventory.apply_movement(uuid4(), 1, MovementReason.RECEIVING, None, test_actor_id)


class TestWeightedAverageCost:

    @pytest.mark.parametrize(
        "on_hand, cost, incoming, incoming_cost, expected",
        [
            (10, "60.00", 10, "70.00", "65.00"),
            (0, "60.00", 5, "72.50", "72.50"),
            (3, "10.00", 0, "99.00", "10.00"),
            (2, "10.00", 1, "11.00", "10.33"),
            # a back order carries no value
            (-4, "60.00", 6, "50.00", "50.00"),
        ],
    )
    def test_formula(self, on_hand, cost, incoming, incoming_cost, expected):
        result = weighted_average_cost(on_hand, Decimal(cost), incoming, Decimal(incoming_cost))
        assert result == Decimal(expected)

    def test_receipt_revalues_product(
        self, inventory, make_product, seeded_repo, test_actor_id, captured_logs,
    ):
        product = make_product("OIL-1L", cost="120.00", price="200.00", stock=6)

        with seeded_repo.transaction():
            outcome = inventory.receive_at_cost(
                product.id, 2, Decimal("128.00"), uuid4(), test_actor_id,
            )

        assert outcome.product.stock == 8
        assert outcome.product.cost == Decimal("122.00")
        assert outcome.warnings == ()
        assert seeded_repo.load_product(product.id).cost == Decimal("122.00")
        assert outcome.movement.reason is MovementReason.RECEIVING
        assert captured_logs.find("significant_cost_variance") == []

    def test_same_cost_leaves_product_untouched(
        self, inventory, make_product, seeded_repo, test_actor_id, captured_logs,
    ):
        product = make_product("OIL-1L", cost="120.00", price="200.00", stock=6)

        with seeded_repo.transaction():
            outcome = inventory.receive_at_cost(
                product.id, 4, Decimal("120.00"), uuid4(), test_actor_id,
            )

        assert outcome.product.cost == Decimal("120.00")
        assert captured_logs.find("weighted_average_cost_updated") == []

    def test_variance_threshold_is_configurable(
        self, seeded_repo, clock, make_product, test_actor_id,
    ):
        inventory = InventoryLedger(
            seeded_repo,
            clock=clock,
            config=InventoryConfig(significant_cost_variance_pct=Decimal("1")),
        )
        product = make_product("OIL-1L", cost="120.00", price="200.00", stock=6)

        with seeded_repo.transaction():
            outcome = inventory.receive_at_cost(
                product.id, 2, Decimal("128.00"), uuid4(), test_actor_id,
            )

        assert outcome.warnings == (COST_VARIANCE,)

    def test_non_positive_quantity_rejected(self, inventory, make_product, test_actor_id):
        product = make_product("OIL-1L", cost="120.00", price="200.00")

        with pytest.raises(ValueError):
            inventory.receive_at_cost(product.id, 0, Decimal("1.00"), None, test_actor_id)


class TestReplay:

    def test_replay_matches_stock_after_mixed_movements(
        self, inventory, make_product, seeded_repo, test_actor_id,
    ):
        product = make_product("OIL-1L", cost="120.00", price="200.00", stock=5)

        with seeded_repo.transaction():
            inventory.apply_movement(product.id, 20, MovementReason.RECEIVING, uuid4(), test_actor_id)
            inventory.apply_movement(product.id, -8, MovementReason.SALE, uuid4(), test_actor_id)
            inventory.apply_movement(product.id, -30, MovementReason.SALE, uuid4(), test_actor_id)
            inventory.apply_movement(product.id, 4, MovementReason.ADJUSTMENT, None, test_actor_id)

        assert inventory.get_product(product.id).stock == 4
        assert inventory.replay_stock(product.id) == 4
        sequences = [m.sequence for m in seeded_repo.list_stock_movements(product.id)]
        assert sequences == [1, 2, 3, 4, 5]


def test_low_stock_products(inventory, make_product):
    low = make_product("LOW", cost="1.00", price="2.00", stock=3, min_stock=5)
    make_product("OK", cost="1.00", price="2.00", stock=10, min_stock=5)

    assert [p.sku for p in inventory.low_stock_products()] == [low.sku]
