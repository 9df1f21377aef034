"""
fbms_services.transaction_coordinator -- Atomic business operations.

Responsibility:
    Runs each business operation (complete a sale, receive a purchase
    order, change a purchase order's status, adjust stock, reverse an
    entry) as ONE unit of work over the LedgerRepository: stock movements,
    journal entries and purchase order updates commit together or not at
    all.

Architecture position:
    Services layer.  Composes the kernel JournalLedger and AccountRegistry
    with the inventory and procurement modules.  Owns the transaction
    boundary; nothing below it commits.

Invariants enforced:
    - All-or-nothing: a validation rejection writes nothing; an invariant
      violation or transport failure rolls back every step.
    - A missing account role skips the journal entry but not the stock
      movement; the result carries a ``missing-accounts`` warning.
    - Optimistic conflicts retry the WHOLE operation from fresh reads.

Failure modes (all returned, none raised):
    - REJECTED   -- validation failed; ``errors`` holds the codes.
                    A reused invoice number is rejected as
                    ``duplicate-invoice`` after rolling back.
    - NOT_FOUND  -- the purchase order, product or entry does not exist.
    - NO_OP      -- nothing to do (empty receiving batch, zero delta).
    - FAILED     -- ``concurrent-modification``, ``ledger-defect`` or
                    ``transport-error``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fbms_config import get_active_config
from fbms_config.schema import LedgerSettings
from fbms_kernel.domain.clock import Clock, SystemClock
from fbms_kernel.domain.journal import SKIP_MISSING_ACCOUNTS, JournalEntry, Skipped
from fbms_kernel.exceptions import (
    LEDGER_DEFECT_ERRORS,
    DuplicateInvoiceError,
    EntryAlreadyReversedError,
    EntryNotFoundError,
    NegativeStockError,
    OptimisticLockError,
    ProductNotFoundError,
    RepositoryTransportError,
    ReversalOfReversalError,
)
from fbms_kernel.logging_config import LogContext, get_logger
from fbms_kernel.services.account_registry import AccountRegistry
from fbms_kernel.services.journal_ledger import JournalLedger
from fbms_modules.inventory import (
    InventoryConfig,
    InventoryLedger,
    MovementReason,
    Product,
    StockMovement,
)
from fbms_modules.procurement import (
    InvalidTransition,
    NoOp,
    POStatus,
    PurchaseOrder,
    ReceivedItem,
    ReceiptPlan,
    StatusTransition,
    plan_receipt,
    plan_transition,
)
from fbms_modules.sales import (
    Sale,
    SaleDraft,
    SaleLine,
    compute_totals,
    invoice_number_for,
    validate_draft,
)
from fbms_services.repository import LedgerRepository, SqlAlchemyLedgerRepository

logger = get_logger("services.transaction_coordinator")

R = TypeVar("R")

ERROR_CONCURRENT_MODIFICATION = "concurrent-modification"
ERROR_LEDGER_DEFECT = "ledger-defect"
ERROR_TRANSPORT = "transport-error"
ERROR_NEGATIVE_STOCK = "negative-stock"
ERROR_ALREADY_REVERSED = "already-reversed"
ERROR_REVERSAL_OF_REVERSAL = "reversal-of-reversal"
ERROR_DUPLICATE_INVOICE = "duplicate-invoice"
WARNING_MISSING_ACCOUNTS = SKIP_MISSING_ACCOUNTS


class OperationStatus(str, Enum):
    COMPLETED = "completed"
    NO_OP = "no_op"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class SaleResult:
    status: OperationStatus
    sale: Sale | None = None
    journal_entry: JournalEntry | None = None
    movements: tuple[StockMovement, ...] = ()
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.COMPLETED


@dataclass(frozen=True)
class ReceiveResult:
    status: OperationStatus
    purchase_order: PurchaseOrder | None = None
    journal_entry: JournalEntry | None = None
    movements: tuple[StockMovement, ...] = ()
    transition: StatusTransition | None = None
    rejection: object | None = None
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.COMPLETED


@dataclass(frozen=True)
class TransitionResult:
    status: OperationStatus
    purchase_order: PurchaseOrder | None = None
    transition: StatusTransition | None = None
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.COMPLETED


@dataclass(frozen=True)
class AdjustResult:
    status: OperationStatus
    product: Product | None = None
    movement: StockMovement | None = None
    journal_entry: JournalEntry | None = None
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.COMPLETED


@dataclass(frozen=True)
class ReversalResult:
    status: OperationStatus
    journal_entry: JournalEntry | None = None
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.COMPLETED


def _skip_warnings(posting: JournalEntry | Skipped) -> list[str]:
    if isinstance(posting, Skipped) and posting.reason == SKIP_MISSING_ACCOUNTS:
        return [WARNING_MISSING_ACCOUNTS]
    return []


def _product_not_found(exc: ProductNotFoundError) -> str:
    # Raised mid-operation, so the unit of work has already been rolled back
    logger.warning("product_not_found", extra={"product_id": exc.product_id})
    return f"product-not-found:{exc.product_id}"


class TransactionCoordinator:
    """
    Atomic entry point for every ledger-changing operation.

    Args:
        repo: The persistence boundary; owns ``transaction()``.
        registry: Role resolution.  Built from ``repo`` when omitted.
        clock: Timestamps for movements, entries and transitions.
        settings: VAT rate, stock policy, retry limits, payment roles.
    """

    def __init__(
        self,
        repo: LedgerRepository,
        registry: AccountRegistry | None = None,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._repo = repo
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()
        self._registry = (
            registry if registry is not None else AccountRegistry.from_repository(repo)
        )
        self._journal = JournalLedger(
            self._registry,
            repo,
            clock=self._clock,
            payment_roles=self._settings.payment_roles,
        )
        self._inventory = InventoryLedger(
            repo,
            clock=self._clock,
            config=InventoryConfig(
                allow_negative_stock=self._settings.allow_negative_stock,
                default_min_stock=self._settings.default_min_stock,
                significant_cost_variance_pct=self._settings.significant_cost_variance_pct,
            ),
        )

    @property
    def journal(self) -> JournalLedger:
        return self._journal

    @property
    def inventory(self) -> InventoryLedger:
        return self._inventory

    @property
    def registry(self) -> AccountRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Unit-of-work runner
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        body: Callable[[], R],
        failed: Callable[[str], R],
    ) -> R:
        """Run ``body`` inside one repository transaction.

        Retries on optimistic conflicts; maps defects and transport
        failures to a ``failed`` result built by ``failed(code)``.
        """
        attempt = 0
        while True:
            try:
                with self._repo.transaction():
                    return body()
            except OptimisticLockError as exc:
                attempt += 1
                if attempt > self._settings.max_conflict_retries:
                    logger.error(
                        "operation_conflict_exhausted",
                        extra={
                            "operation": operation,
                            "attempts": attempt,
                            "entity_type": exc.entity_type,
                            "entity_id": exc.entity_id,
                        },
                    )
                    return failed(ERROR_CONCURRENT_MODIFICATION)
                logger.warning(
                    "operation_conflict_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "max_retries": self._settings.max_conflict_retries,
                        "entity_type": exc.entity_type,
                        "entity_id": exc.entity_id,
                    },
                )
            except LEDGER_DEFECT_ERRORS as exc:
                logger.error(
                    "ledger_defect_detected",
                    exc_info=True,
                    extra={"operation": operation, "error_code": exc.code},
                )
                return failed(ERROR_LEDGER_DEFECT)
            except RepositoryTransportError as exc:
                logger.error(
                    "operation_transport_failed",
                    extra={
                        "operation": operation,
                        "repository_operation": exc.operation,
                        "detail": exc.detail,
                    },
                )
                return failed(ERROR_TRANSPORT)

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def complete_sale(
        self,
        draft: SaleDraft,
        actor_id: UUID,
        on_completed: Callable[[SaleResult], None] | None = None,
    ) -> SaleResult:
        """
        Record a sale, issue its stock and post its journal entry.

        ``on_completed`` runs only after the transaction has committed,
        e.g. to clear the point-of-sale cart.
        """
        errors = validate_draft(draft, self._settings.vat_rate)
        if errors:
            logger.info("sale_rejected", extra={"errors": list(errors)})
            return SaleResult(OperationStatus.REJECTED, errors=errors)

        with LogContext.bind(actor_id=str(actor_id), operation="complete_sale"):
            try:
                result = self._run(
                    "complete_sale",
                    lambda: self._complete_sale(draft, actor_id),
                    lambda code: SaleResult(OperationStatus.FAILED, errors=(code,)),
                )
            except DuplicateInvoiceError as exc:
                logger.info(
                    "sale_rejected",
                    extra={
                        "errors": [ERROR_DUPLICATE_INVOICE],
                        "invoice_number": exc.invoice_number,
                    },
                )
                result = SaleResult(OperationStatus.REJECTED, errors=(ERROR_DUPLICATE_INVOICE,))
            except ProductNotFoundError as exc:
                result = SaleResult(
                    OperationStatus.NOT_FOUND, warnings=(_product_not_found(exc),),
                )
        if result.succeeded and on_completed is not None:
            on_completed(result)
        return result

    def _complete_sale(self, draft: SaleDraft, actor_id: UUID) -> SaleResult:
        now = self._clock.now()
        sale_id = uuid4()
        warnings: list[str] = []

        lines: list[SaleLine] = []
        for draft_line in draft.lines:
            product = self._repo.load_product(draft_line.product_id)
            if product is None:
                logger.warning(
                    "sale_line_product_not_found",
                    extra={"product_id": str(draft_line.product_id)},
                )
                warnings.append(f"product-not-found:{draft_line.product_id}")
                continue
            lines.append(
                SaleLine(
                    product_id=product.id,
                    sku=product.sku,
                    quantity=draft_line.quantity,
                    unit_price=draft_line.unit_price,
                    unit_cost=product.cost,
                )
            )

        if not lines:
            return SaleResult(
                OperationStatus.REJECTED, warnings=tuple(warnings), errors=("empty-sale",),
            )

        totals = compute_totals(
            lines,
            vat_rate=self._settings.vat_rate,
            discount=draft.discount,
            tax_override=draft.tax_override,
        )
        if totals.total < 0:
            return SaleResult(
                OperationStatus.REJECTED,
                warnings=tuple(warnings),
                errors=("discount-exceeds-total",),
            )

        # Issue stock first: a clamped line is costed on what left the shelf
        movements: list[StockMovement] = []
        issued_lines: list[SaleLine] = []
        for line in lines:
            outcome = self._inventory.apply_movement(
                line.product_id, -line.quantity, MovementReason.SALE, sale_id, actor_id,
            )
            movements.append(outcome.movement)
            warnings.extend(f"{w}:{line.product_id}" for w in outcome.warnings)
            issued_lines.append(replace(line, quantity_issued=-outcome.movement.delta))

        sale = Sale(
            id=sale_id,
            invoice_number=draft.invoice_number or invoice_number_for(sale_id, now),
            payment_method=draft.payment_method,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            total=totals.total,
            cashier_id=actor_id,
            created_at=now,
            lines=tuple(issued_lines),
        )
        self._repo.save_sale(sale)

        posting = self._journal.post_sale_entry(sale, actor_id)
        warnings.extend(_skip_warnings(posting))

        logger.info(
            "sale_completed",
            extra={
                "sale_id": str(sale.id),
                "invoice_number": sale.invoice_number,
                "total": str(sale.total),
                "line_count": len(lines),
                "posted": isinstance(posting, JournalEntry),
            },
        )
        return SaleResult(
            OperationStatus.COMPLETED,
            sale=sale,
            journal_entry=posting if isinstance(posting, JournalEntry) else None,
            movements=tuple(movements),
            warnings=tuple(warnings),
        )

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def receive_purchase_order(
        self,
        po_id: UUID,
        items: Iterable[ReceivedItem],
        actor_id: UUID,
    ) -> ReceiveResult:
        """Receive a batch of goods against a purchase order."""
        items = tuple(items)
        with LogContext.bind(actor_id=str(actor_id), operation="receive_purchase_order"):
            try:
                return self._run(
                    "receive_purchase_order",
                    lambda: self._receive(po_id, items, actor_id),
                    lambda code: ReceiveResult(OperationStatus.FAILED, errors=(code,)),
                )
            except ProductNotFoundError as exc:
                return ReceiveResult(
                    OperationStatus.NOT_FOUND, warnings=(_product_not_found(exc),),
                )

    def _receive(
        self, po_id: UUID, items: tuple[ReceivedItem, ...], actor_id: UUID,
    ) -> ReceiveResult:
        po = self._repo.load_purchase_order(po_id)
        if po is None:
            logger.warning("purchase_order_not_found", extra={"po_id": str(po_id)})
            return ReceiveResult(
                OperationStatus.NOT_FOUND,
                warnings=(f"purchase-order-not-found:{po_id}",),
            )

        plan = plan_receipt(po, items, self._clock.now())
        if isinstance(plan, NoOp):
            logger.info("receipt_no_op", extra={"po_id": str(po_id), "reason": plan.reason})
            return ReceiveResult(OperationStatus.NO_OP, purchase_order=po)
        if not isinstance(plan, ReceiptPlan):
            errors = plan.errors if isinstance(plan, InvalidTransition) else (plan.code,)
            return ReceiveResult(
                OperationStatus.REJECTED, purchase_order=po, rejection=plan, errors=errors,
            )

        warnings: list[str] = []
        movements: list[StockMovement] = []
        for item in plan.received_items:
            outcome = self._inventory.receive_at_cost(
                item.product_id, item.quantity, po.unit_cost_of(item.product_id), po.id, actor_id,
            )
            movements.append(outcome.movement)
            warnings.extend(f"{w}:{item.product_id}" for w in outcome.warnings)

        posting = self._journal.post_purchase_receipt_entry(po, plan.received_items, actor_id)
        warnings.extend(_skip_warnings(posting))

        self._repo.save_received_quantities(
            po.id,
            {item.product_id: item.quantity_received for item in plan.purchase_order.items},
            actor_id,
        )
        self._repo.save_purchase_order_status(
            po.id, plan.to_status, plan.purchase_order.received_date, actor_id,
        )
        transition = StatusTransition(
            id=uuid4(),
            purchase_order_id=po.id,
            from_status=plan.from_status,
            to_status=plan.to_status,
            timestamp=self._clock.now(),
            performed_by=actor_id,
            reason="goods received",
        )
        self._repo.save_status_transition(transition)

        logger.info(
            "purchase_order_received",
            extra={
                "po_id": str(po.id),
                "po_number": po.po_number,
                "from_status": plan.from_status.value,
                "to_status": plan.to_status.value,
                "batch_lines": len(plan.received_items),
                "posted": isinstance(posting, JournalEntry),
            },
        )
        return ReceiveResult(
            OperationStatus.COMPLETED,
            purchase_order=self._repo.load_purchase_order(po.id),
            journal_entry=posting if isinstance(posting, JournalEntry) else None,
            movements=tuple(movements),
            transition=transition,
            warnings=tuple(warnings),
        )

    def transition_purchase_order(
        self,
        po_id: UUID,
        target: POStatus | str,
        actor_id: UUID,
        reason: str = "",
    ) -> TransitionResult:
        """Submit, approve, send or cancel a purchase order."""
        with LogContext.bind(actor_id=str(actor_id), operation="transition_purchase_order"):
            try:
                status = POStatus(target)
            except ValueError:
                logger.info(
                    "unknown_target_status",
                    extra={"po_id": str(po_id), "target": str(target)},
                )
                return TransitionResult(
                    OperationStatus.REJECTED, errors=(InvalidTransition.code,),
                )
            return self._run(
                "transition_purchase_order",
                lambda: self._transition(po_id, status, actor_id, reason),
                lambda code: TransitionResult(OperationStatus.FAILED, errors=(code,)),
            )

    def _transition(
        self, po_id: UUID, target: POStatus, actor_id: UUID, reason: str,
    ) -> TransitionResult:
        po = self._repo.load_purchase_order(po_id)
        if po is None:
            logger.warning("purchase_order_not_found", extra={"po_id": str(po_id)})
            return TransitionResult(
                OperationStatus.NOT_FOUND,
                warnings=(f"purchase-order-not-found:{po_id}",),
            )

        plan = plan_transition(po, target, actor_id)
        if isinstance(plan, InvalidTransition):
            return TransitionResult(
                OperationStatus.REJECTED, purchase_order=po, errors=plan.errors,
            )

        self._repo.save_purchase_order_status(po.id, plan.to_status, None, actor_id)
        transition = StatusTransition(
            id=uuid4(),
            purchase_order_id=po.id,
            from_status=plan.from_status,
            to_status=plan.to_status,
            timestamp=self._clock.now(),
            performed_by=actor_id,
            reason=reason,
        )
        self._repo.save_status_transition(transition)
        logger.info(
            "purchase_order_transitioned",
            extra={
                "po_id": str(po.id),
                "from_status": plan.from_status.value,
                "to_status": plan.to_status.value,
            },
        )
        return TransitionResult(
            OperationStatus.COMPLETED,
            purchase_order=self._repo.load_purchase_order(po.id),
            transition=transition,
        )

    # ------------------------------------------------------------------
    # Stock adjustments
    # ------------------------------------------------------------------

    def adjust_stock(
        self,
        product_id: UUID,
        delta: int,
        actor_id: UUID,
        note: str = "",
    ) -> AdjustResult:
        """Manual stock correction, revalued at the product's cost."""
        with LogContext.bind(actor_id=str(actor_id), operation="adjust_stock"):
            return self._run(
                "adjust_stock",
                lambda: self._adjust(product_id, delta, actor_id, note),
                lambda code: AdjustResult(OperationStatus.FAILED, errors=(code,)),
            )

    def _adjust(self, product_id: UUID, delta: int, actor_id: UUID, note: str) -> AdjustResult:
        product = self._repo.load_product(product_id)
        if product is None:
            logger.warning("product_not_found", extra={"product_id": str(product_id)})
            return AdjustResult(
                OperationStatus.NOT_FOUND,
                warnings=(f"product-not-found:{product_id}",),
            )
        if delta == 0:
            return AdjustResult(OperationStatus.NO_OP, product=product)

        try:
            outcome = self._inventory.apply_movement(
                product_id, delta, MovementReason.ADJUSTMENT, None, actor_id, note=note,
            )
        except NegativeStockError:
            return AdjustResult(
                OperationStatus.REJECTED, product=product, errors=(ERROR_NEGATIVE_STOCK,),
            )

        posting = self._journal.post_stock_adjustment_entry(
            product, delta, product.cost, actor_id, reference_id=outcome.movement.id,
        )
        return AdjustResult(
            OperationStatus.COMPLETED,
            product=outcome.product,
            movement=outcome.movement,
            journal_entry=posting if isinstance(posting, JournalEntry) else None,
            warnings=tuple(_skip_warnings(posting)),
        )

    # ------------------------------------------------------------------
    # Reversals
    # ------------------------------------------------------------------

    def reverse_entry(self, entry_id: UUID, actor_id: UUID, reason: str) -> ReversalResult:
        """Post the reversing entry for ``entry_id``."""
        with LogContext.bind(actor_id=str(actor_id), operation="reverse_entry"):
            return self._run(
                "reverse_entry",
                lambda: self._reverse(entry_id, actor_id, reason),
                lambda code: ReversalResult(OperationStatus.FAILED, errors=(code,)),
            )

    def _reverse(self, entry_id: UUID, actor_id: UUID, reason: str) -> ReversalResult:
        try:
            reversal = self._journal.reverse_entry(entry_id, actor_id, reason)
        except EntryNotFoundError:
            return ReversalResult(
                OperationStatus.NOT_FOUND, warnings=(f"entry-not-found:{entry_id}",),
            )
        except EntryAlreadyReversedError:
            return ReversalResult(OperationStatus.REJECTED, errors=(ERROR_ALREADY_REVERSED,))
        except ReversalOfReversalError:
            return ReversalResult(
                OperationStatus.REJECTED, errors=(ERROR_REVERSAL_OF_REVERSAL,),
            )
        return ReversalResult(OperationStatus.COMPLETED, journal_entry=reversal)


def build_transaction_coordinator(
    session: Session,
    config_path: Path | None = None,
    clock: Clock | None = None,
) -> TransactionCoordinator:
    """Build a TransactionCoordinator from config (single entrypoint for production).

    Loads the configuration set via ``get_active_config``, wraps ``session``
    in a ``SqlAlchemyLedgerRepository`` with the configured read retries,
    and loads the account registry from the stored chart.

    Args:
        session: SQLAlchemy session.  Bind it to an engine created with
            ``init_engine_from_url(url, timeout_seconds=...)`` so the
            configured repository timeout applies.
        config_path: Optional override for the YAML configuration set.
        clock: Optional clock; default SystemClock.
    """
    config = get_active_config(config_path)
    settings = config.settings
    repo = SqlAlchemyLedgerRepository(
        session,
        read_retries=settings.read_retries,
        retry_backoff_seconds=settings.retry_backoff_seconds,
    )
    return TransactionCoordinator(repo, clock=clock, settings=settings)
