"""
TransactionCoordinator end-to-end against SQLite.

Every operation is one unit of work: a rejection writes nothing, a defect
or transport failure rolls back every step, and an optimistic conflict
retries the whole operation.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from fbms_kernel.domain.accounts import AccountRole
from fbms_kernel.domain.journal import IntentLine, JournalSourceType, PostingIntent
from fbms_kernel.exceptions import OptimisticLockError
from fbms_kernel.services.account_registry import AccountRegistry
from fbms_modules.procurement import POStatus, ReceivedItem
from fbms_modules.sales import PaymentMethod, SaleDraft, SaleLineDraft
from fbms_services.repository import SqlAlchemyLedgerRepository
from fbms_services.transaction_coordinator import (
    OperationStatus,
    TransactionCoordinator,
    build_transaction_coordinator,
)


def _amounts(entry):
    return {line.account_code: (line.debit, line.credit) for line in entry.lines}


@pytest.fixture
def rice(make_product):
    return make_product("RICE-25", cost="60.00", price="100.00", stock=10)


@pytest.fixture
def oil(make_product):
    return make_product("OIL-1L", cost="120.00", price="200.00", stock=10)


@pytest.fixture
def basket(rice, oil):
    return SaleDraft(
        lines=(
            SaleLineDraft(rice.id, 2, Decimal("100.00")),
            SaleLineDraft(oil.id, 1, Decimal("200.00")),
        ),
        payment_method=PaymentMethod.CASH,
    )


# =============================================================================
# complete_sale
# =============================================================================


class TestCompleteSale:

    def test_sale_moves_stock_and_posts_entry(
        self, coordinator, seeded_repo, basket, rice, oil, test_actor_id,
    ):
        completed = []

        result = coordinator.complete_sale(basket, test_actor_id, on_completed=completed.append)

        assert result.status is OperationStatus.COMPLETED
        assert result.sale.subtotal == Decimal("400.00")
        assert result.sale.tax == Decimal("48.00")
        assert result.sale.total == Decimal("448.00")
        assert _amounts(result.journal_entry) == {
            "1000": (Decimal("448.00"), Decimal("0.00")),
            "4000": (Decimal("0.00"), Decimal("400.00")),
            "2100": (Decimal("0.00"), Decimal("48.00")),
            "5000": (Decimal("240.00"), Decimal("0.00")),
            "1200": (Decimal("0.00"), Decimal("240.00")),
        }
        assert seeded_repo.load_product(rice.id).stock == 8
        assert seeded_repo.load_product(oil.id).stock == 9
        assert seeded_repo.load_sale(result.sale.id).invoice_number == result.sale.invoice_number
        assert completed == [result]

    def test_zero_tax_sale_posts_four_lines(self, coordinator, basket, test_actor_id):
        draft = SaleDraft(lines=basket.lines, tax_override=Decimal("0"))

        result = coordinator.complete_sale(draft, test_actor_id)

        assert len(result.journal_entry.lines) == 4
        assert result.sale.total == Decimal("400.00")

    def test_missing_revenue_account_still_moves_stock(
        self, seeded_repo, clock, ledger_config, basket, rice, oil, test_actor_id,
    ):
        accounts = [
            a for a in seeded_repo.load_accounts() if a.role is not AccountRole.SALES_REVENUE
        ]
        coordinator = TransactionCoordinator(
            seeded_repo,
            registry=AccountRegistry(accounts),
            clock=clock,
            settings=ledger_config.settings,
        )

        result = coordinator.complete_sale(basket, test_actor_id)

        assert result.status is OperationStatus.COMPLETED
        assert result.warnings == ("missing-accounts",)
        assert result.journal_entry is None
        assert seeded_repo.load_product(rice.id).stock == 8
        assert seeded_repo.load_product(oil.id).stock == 9
        assert seeded_repo.list_journal_entries() == []

    def test_unknown_product_line_is_skipped(
        self, coordinator, rice, test_actor_id,
    ):
        ghost = uuid4()
        draft = SaleDraft(lines=(
            SaleLineDraft(rice.id, 1, Decimal("100.00")),
            SaleLineDraft(ghost, 1, Decimal("50.00")),
        ))

        result = coordinator.complete_sale(draft, test_actor_id)

        assert result.status is OperationStatus.COMPLETED
        assert result.warnings == (f"product-not-found:{ghost}",)
        assert result.sale.subtotal == Decimal("100.00")
        assert len(result.sale.lines) == 1

    def test_shortfall_clamps_and_warns(self, coordinator, seeded_repo, rice, test_actor_id):
        draft = SaleDraft(lines=(SaleLineDraft(rice.id, 15, Decimal("100.00")),))

        result = coordinator.complete_sale(draft, test_actor_id)

        assert result.status is OperationStatus.COMPLETED
        assert result.warnings == (f"stock-shortfall:{rice.id}",)
        assert seeded_repo.load_product(rice.id).stock == 0

    def test_shortfall_costs_only_issued_stock(
        self, coordinator, seeded_repo, rice, test_actor_id,
    ):
        draft = SaleDraft(lines=(SaleLineDraft(rice.id, 15, Decimal("100.00")),))

        result = coordinator.complete_sale(draft, test_actor_id)

        # Charged for 15, but only the 10 on hand left the shelf at 60.00
        assert result.sale.subtotal == Decimal("1500.00")
        assert _amounts(result.journal_entry)["5000"] == (Decimal("600.00"), Decimal("0.00"))
        assert _amounts(result.journal_entry)["1200"] == (Decimal("0.00"), Decimal("600.00"))
        assert result.journal_entry.is_balanced
        stored = seeded_repo.load_sale(result.sale.id)
        assert (stored.lines[0].quantity, stored.lines[0].quantity_issued) == (15, 10)

    def test_reused_invoice_number_rejected_and_rolled_back(
        self, coordinator, seeded_repo, rice, test_actor_id,
    ):
        completed = []
        draft = SaleDraft(
            lines=(SaleLineDraft(rice.id, 2, Decimal("100.00")),),
            invoice_number="INV-0001",
        )

        first = coordinator.complete_sale(draft, test_actor_id)
        second = coordinator.complete_sale(draft, test_actor_id, on_completed=completed.append)

        assert first.status is OperationStatus.COMPLETED
        assert second.status is OperationStatus.REJECTED
        assert second.errors == ("duplicate-invoice",)
        assert completed == []
        assert seeded_repo.load_product(rice.id).stock == 8
        assert len(seeded_repo.list_stock_movements(rice.id)) == 2
        assert len(seeded_repo.list_journal_entries()) == 1

    def test_invalid_draft_rejected_without_side_effects(
        self, coordinator, seeded_repo, rice, test_actor_id,
    ):
        completed = []
        draft = SaleDraft(lines=(SaleLineDraft(rice.id, 0, Decimal("100.00")),))

        result = coordinator.complete_sale(draft, test_actor_id, on_completed=completed.append)

        assert result.status is OperationStatus.REJECTED
        assert result.errors == (f"invalid-quantity:{rice.id}",)
        assert completed == []
        assert seeded_repo.load_product(rice.id).stock == 10

    def test_unbalanced_posting_rolls_back_everything(
        self, coordinator, seeded_repo, basket, rice, oil, test_actor_id, captured_logs,
    ):
        def broken_intent(sale):
            return PostingIntent(
                reference=sale.invoice_number,
                source_type=JournalSourceType.SALE,
                source_id=sale.id,
                description="",
                entry_date=date(2024, 6, 3),
                lines=(
                    IntentLine.dr(AccountRole.CASH, sale.total),
                    IntentLine.cr(AccountRole.SALES_REVENUE, sale.subtotal),
                ),
            )

        with patch.object(coordinator.journal, "sale_intent", side_effect=broken_intent):
            result = coordinator.complete_sale(basket, test_actor_id)

        assert result.status is OperationStatus.FAILED
        assert result.errors == ("ledger-defect",)
        assert seeded_repo.load_product(rice.id).stock == 10
        assert seeded_repo.load_product(oil.id).stock == 10
        assert len(seeded_repo.list_stock_movements(rice.id)) == 1

        defect = captured_logs.find("ledger_defect_detected")[0]
        assert defect["level"] == "ERROR"
        assert defect["exc_code"] == "UNBALANCED_ENTRY"
        assert "traceback" in defect

    def test_transport_failure_reports_failed(
        self, coordinator, seeded_repo, basket, rice, test_actor_id,
    ):
        with patch.object(
            seeded_repo.session,
            "flush",
            side_effect=OperationalError("Connection lost", None, None),
        ):
            result = coordinator.complete_sale(basket, test_actor_id)

        assert result.status is OperationStatus.FAILED
        assert result.errors == ("transport-error",)
        assert seeded_repo.load_product(rice.id).stock == 10


# =============================================================================
# Optimistic concurrency
# =============================================================================


class _ConflictingRepository(SqlAlchemyLedgerRepository):
    """Raises OptimisticLockError on the first ``conflicts`` product saves."""

    def __init__(self, session, conflicts):
        super().__init__(session, sleep=lambda _: None)
        self.conflicts = conflicts
        self.save_attempts = 0

    def save_product(self, product, actor_id):
        self.save_attempts += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            raise OptimisticLockError("Product", str(product.id))
        return super().save_product(product, actor_id)


class TestOptimisticRetry:

    def _coordinator(self, session, clock, registry, ledger_config, conflicts):
        repo = _ConflictingRepository(session, conflicts)
        return repo, TransactionCoordinator(
            repo, registry=registry, clock=clock, settings=ledger_config.settings,
        )

    def test_conflict_retried_from_fresh_state(
        self, session, clock, registry, ledger_config, basket, rice, test_actor_id,
        captured_logs,
    ):
        repo, coordinator = self._coordinator(session, clock, registry, ledger_config, 1)

        result = coordinator.complete_sale(basket, test_actor_id)

        assert result.status is OperationStatus.COMPLETED
        # One movement for opening stock, one for the sale: no duplicate
        assert len(repo.list_stock_movements(rice.id)) == 2
        assert repo.load_product(rice.id).stock == 8
        assert len(captured_logs.find("operation_conflict_retry")) == 1

    def test_conflict_retries_exhausted(
        self, session, clock, registry, ledger_config, basket, rice, test_actor_id,
    ):
        retries = ledger_config.settings.max_conflict_retries
        repo, coordinator = self._coordinator(
            session, clock, registry, ledger_config, retries + 1,
        )

        result = coordinator.complete_sale(basket, test_actor_id)

        assert result.status is OperationStatus.FAILED
        assert result.errors == ("concurrent-modification",)
        assert repo.save_attempts == retries + 1
        assert repo.load_product(rice.id).stock == 10


# =============================================================================
# receive_purchase_order
# =============================================================================


@pytest.fixture
def canned_goods(make_product):
    return make_product("SARDINES", cost="60.00", price="25.00", stock=0)


class TestReceivePurchaseOrder:

    def test_partial_then_full_receipt(
        self, coordinator, seeded_repo, clock, make_purchase_order, canned_goods, test_actor_id,
    ):
        po = make_purchase_order([(canned_goods, 20, "60.00")])

        first = coordinator.receive_purchase_order(
            po.id, [ReceivedItem(canned_goods.id, 15)], test_actor_id,
        )

        assert first.status is OperationStatus.COMPLETED
        assert first.purchase_order.status is POStatus.PARTIALLY_RECEIVED
        assert first.purchase_order.received_date is None
        assert first.purchase_order.items[0].outstanding == 5
        assert _amounts(first.journal_entry) == {
            "1200": (Decimal("900.00"), Decimal("0.00")),
            "2000": (Decimal("0.00"), Decimal("900.00")),
        }
        assert seeded_repo.load_product(canned_goods.id).stock == 15

        clock.advance(3600)
        second = coordinator.receive_purchase_order(
            po.id, [ReceivedItem(canned_goods.id, 5)], test_actor_id,
        )

        assert second.purchase_order.status is POStatus.RECEIVED
        assert second.purchase_order.received_date is not None
        assert second.journal_entry.total == Decimal("300.00")
        assert seeded_repo.load_product(canned_goods.id).stock == 20

        transitions = seeded_repo.list_status_transitions(po.id)
        assert [(t.from_status, t.to_status) for t in transitions] == [
            (POStatus.SENT, POStatus.PARTIALLY_RECEIVED),
            (POStatus.PARTIALLY_RECEIVED, POStatus.RECEIVED),
        ]

    def test_over_receipt_has_no_side_effects(
        self, coordinator, seeded_repo, make_purchase_order, make_product, test_actor_id,
    ):
        a = make_product("A", cost="10.00", price="15.00")
        b = make_product("B", cost="20.00", price="30.00")
        po = make_purchase_order([(a, 10, "10.00"), (b, 5, "20.00")])

        result = coordinator.receive_purchase_order(
            po.id, [ReceivedItem(a.id, 10), ReceivedItem(b.id, 6)], test_actor_id,
        )

        assert result.status is OperationStatus.REJECTED
        assert result.errors == ("over-receipt",)
        assert result.rejection.product_id == b.id
        assert seeded_repo.load_product(a.id).stock == 0
        assert seeded_repo.list_stock_movements(a.id) == []
        assert seeded_repo.list_journal_entries() == []
        reloaded = seeded_repo.load_purchase_order(po.id)
        assert reloaded.status is POStatus.SENT
        assert reloaded.version == po.version
        assert [i.quantity_received for i in reloaded.items] == [0, 0]

    def test_empty_batch_twice_is_noop(
        self, coordinator, seeded_repo, make_purchase_order, canned_goods, test_actor_id,
    ):
        po = make_purchase_order([(canned_goods, 20, "60.00")])

        for _ in range(2):
            result = coordinator.receive_purchase_order(po.id, [], test_actor_id)
            assert result.status is OperationStatus.NO_OP

        assert seeded_repo.load_purchase_order(po.id).version == po.version
        assert seeded_repo.list_journal_entries() == []

    def test_unknown_purchase_order(self, coordinator, test_actor_id):
        missing = uuid4()
        result = coordinator.receive_purchase_order(missing, [], test_actor_id)
        assert result.status is OperationStatus.NOT_FOUND
        assert result.warnings == (f"purchase-order-not-found:{missing}",)

    def test_draft_order_not_ready(
        self, coordinator, make_purchase_order, canned_goods, test_actor_id,
    ):
        po = make_purchase_order([(canned_goods, 20, "60.00")], status=POStatus.DRAFT)

        result = coordinator.receive_purchase_order(
            po.id, [ReceivedItem(canned_goods.id, 1)], test_actor_id,
        )

        assert result.status is OperationStatus.REJECTED
        assert result.errors == ("not-ready-for-receiving",)

    def test_missing_payable_account_still_receives(
        self, seeded_repo, clock, ledger_config, make_purchase_order, canned_goods,
        test_actor_id,
    ):
        accounts = [
            a for a in seeded_repo.load_accounts() if a.role is not AccountRole.ACCOUNTS_PAYABLE
        ]
        coordinator = TransactionCoordinator(
            seeded_repo,
            registry=AccountRegistry(accounts),
            clock=clock,
            settings=ledger_config.settings,
        )
        po = make_purchase_order([(canned_goods, 20, "60.00")])

        result = coordinator.receive_purchase_order(
            po.id, [ReceivedItem(canned_goods.id, 20)], test_actor_id,
        )

        assert result.status is OperationStatus.COMPLETED
        assert result.warnings == ("missing-accounts",)
        assert result.purchase_order.status is POStatus.RECEIVED
        assert seeded_repo.load_product(canned_goods.id).stock == 20

    def test_receipt_moves_cost_to_weighted_average(
        self, coordinator, seeded_repo, make_purchase_order, rice, test_actor_id,
        captured_logs,
    ):
        po = make_purchase_order([(rice, 10, "70.00")])

        result = coordinator.receive_purchase_order(
            po.id, [ReceivedItem(rice.id, 10)], test_actor_id,
        )

        # 10 on hand at 60.00 plus 10 received at 70.00
        assert result.status is OperationStatus.COMPLETED
        assert result.warnings == ()
        assert seeded_repo.load_product(rice.id).cost == Decimal("65.00")
        updated = captured_logs.find("weighted_average_cost_updated")[0]
        assert (updated["old_cost"], updated["new_cost"]) == ("60.00", "65.00")

        sale = coordinator.complete_sale(
            SaleDraft(lines=(SaleLineDraft(rice.id, 1, Decimal("100.00")),)), test_actor_id,
        )
        assert _amounts(sale.journal_entry)["5000"] == (Decimal("65.00"), Decimal("0.00"))

    def test_large_cost_change_flagged(
        self, coordinator, seeded_repo, make_purchase_order, canned_goods, test_actor_id,
    ):
        po = make_purchase_order([(canned_goods, 20, "80.00")])

        result = coordinator.receive_purchase_order(
            po.id, [ReceivedItem(canned_goods.id, 20)], test_actor_id,
        )

        # Nothing on hand, so the receipt cost replaces 60.00 outright
        assert result.warnings == (f"cost-variance:{canned_goods.id}",)
        assert seeded_repo.load_product(canned_goods.id).cost == Decimal("80.00")

    def test_product_missing_at_receipt_rolls_back(
        self, coordinator, seeded_repo, make_purchase_order, make_product, test_actor_id,
    ):
        a = make_product("A", cost="10.00", price="15.00")
        b = make_product("B", cost="20.00", price="30.00")
        po = make_purchase_order([(a, 10, "10.00"), (b, 5, "20.00")])
        load_product = seeded_repo.load_product

        def b_is_gone(product_id):
            return None if product_id == b.id else load_product(product_id)

        with patch.object(seeded_repo, "load_product", side_effect=b_is_gone):
            result = coordinator.receive_purchase_order(
                po.id, [ReceivedItem(a.id, 10), ReceivedItem(b.id, 5)], test_actor_id,
            )

        assert result.status is OperationStatus.NOT_FOUND
        assert result.warnings == (f"product-not-found:{b.id}",)
        assert seeded_repo.load_product(a.id).stock == 0
        assert seeded_repo.list_stock_movements(a.id) == []
        assert seeded_repo.list_journal_entries() == []
        assert seeded_repo.load_purchase_order(po.id).status is POStatus.SENT


# =============================================================================
# transition_purchase_order
# =============================================================================


class TestTransitionPurchaseOrder:

    def test_draft_to_sent(
        self, coordinator, seeded_repo, make_purchase_order, canned_goods, test_actor_id,
    ):
        po = make_purchase_order([(canned_goods, 20, "60.00")], status=POStatus.DRAFT)

        for target in (POStatus.PENDING_APPROVAL, POStatus.APPROVED, POStatus.SENT):
            result = coordinator.transition_purchase_order(po.id, target, test_actor_id)
            assert result.status is OperationStatus.COMPLETED

        assert seeded_repo.load_purchase_order(po.id).status is POStatus.SENT
        assert len(seeded_repo.list_status_transitions(po.id)) == 3

    def test_invalid_jump_rejected(
        self, coordinator, make_purchase_order, canned_goods, test_actor_id,
    ):
        po = make_purchase_order([(canned_goods, 20, "60.00")], status=POStatus.DRAFT)

        result = coordinator.transition_purchase_order(po.id, POStatus.SENT, test_actor_id)

        assert result.status is OperationStatus.REJECTED
        assert result.errors == ("invalid-transition",)

    def test_unknown_target_status_rejected(
        self, coordinator, seeded_repo, make_purchase_order, canned_goods, test_actor_id,
    ):
        po = make_purchase_order([(canned_goods, 20, "60.00")])

        result = coordinator.transition_purchase_order(po.id, "shipped", test_actor_id)

        assert result.status is OperationStatus.REJECTED
        assert result.errors == ("invalid-transition",)
        assert seeded_repo.load_purchase_order(po.id).status is POStatus.SENT
        assert seeded_repo.list_status_transitions(po.id) == []

    def test_cancel_records_reason(
        self, coordinator, seeded_repo, make_purchase_order, canned_goods, test_actor_id,
    ):
        po = make_purchase_order([(canned_goods, 20, "60.00")])

        result = coordinator.transition_purchase_order(
            po.id, POStatus.CANCELLED, test_actor_id, reason="supplier out of stock",
        )

        assert result.purchase_order.status is POStatus.CANCELLED
        assert result.transition.reason == "supplier out of stock"


# =============================================================================
# adjust_stock and reverse_entry
# =============================================================================


class TestAdjustStock:

    def test_adjustment_posts_revaluation(self, coordinator, rice, test_actor_id):
        result = coordinator.adjust_stock(rice.id, 4, test_actor_id, note="found in storeroom")

        assert result.status is OperationStatus.COMPLETED
        assert result.product.stock == 14
        assert result.movement.note == "found in storeroom"
        assert _amounts(result.journal_entry) == {
            "1200": (Decimal("240.00"), Decimal("0.00")),
            "5200": (Decimal("0.00"), Decimal("240.00")),
        }

    def test_adjustment_below_zero_rejected(self, coordinator, seeded_repo, rice, test_actor_id):
        result = coordinator.adjust_stock(rice.id, -11, test_actor_id)

        assert result.status is OperationStatus.REJECTED
        assert result.errors == ("negative-stock",)
        assert seeded_repo.load_product(rice.id).stock == 10

    def test_zero_delta_is_noop(self, coordinator, rice, test_actor_id):
        assert coordinator.adjust_stock(rice.id, 0, test_actor_id).status is OperationStatus.NO_OP

    def test_unknown_product(self, coordinator, test_actor_id):
        assert coordinator.adjust_stock(uuid4(), 1, test_actor_id).status is OperationStatus.NOT_FOUND


class TestReverseEntry:

    def test_reverse_once(self, coordinator, basket, test_actor_id):
        sale = coordinator.complete_sale(basket, test_actor_id)

        first = coordinator.reverse_entry(sale.journal_entry.id, test_actor_id, "voided")
        second = coordinator.reverse_entry(sale.journal_entry.id, test_actor_id, "voided")

        assert first.status is OperationStatus.COMPLETED
        assert first.journal_entry.reversal_of_id == sale.journal_entry.id
        assert second.status is OperationStatus.REJECTED
        assert second.errors == ("already-reversed",)

    def test_unknown_entry(self, coordinator, test_actor_id):
        result = coordinator.reverse_entry(uuid4(), test_actor_id, "nothing")
        assert result.status is OperationStatus.NOT_FOUND


def test_built_from_config(session, seeded_repo, rice, clock, test_actor_id):
    coordinator = build_transaction_coordinator(session, clock=clock)

    result = coordinator.adjust_stock(rice.id, 3, test_actor_id, note="recount")

    assert result.succeeded
    assert _amounts(result.journal_entry)["1200"] == (Decimal("180.00"), Decimal("0.00"))
