"""
JournalLedger -- balanced double-entry posting for business events.

Responsibility:
    Turns a sale, a purchase receipt batch or a stock adjustment into a
    ``PostingIntent`` expressed in account ROLES, resolves the roles through
    the AccountRegistry, and persists the resulting ``JournalEntry``.  Also
    creates reversing entries.

Architecture position:
    Kernel > Services.  Persists through a narrow ``JournalStore`` protocol;
    does NOT own the transaction boundary (the TransactionCoordinator does).

Invariants enforced:
    - Debits == Credits for every entry, checked by
      ``JournalEntry.assert_balanced()`` before the store sees it.
    - Every line is single-sided (JournalLine construction).
    - A posting is all-or-nothing: if any required role is unresolved the
      whole posting is skipped, never partially written.
    - An entry is reversed at most once; a reversal is never reversed.

Failure modes:
    - Skipped("missing-accounts", missing_roles): chart misconfiguration.
    - Skipped("nothing-received"): empty receiving batch.
    - Skipped("zero-value"): adjustment with no monetary effect.
    - UnbalancedEntryError / InvalidJournalLineError: programming errors.
    - EntryNotFoundError / EntryAlreadyReversedError /
      ReversalOfReversalError: reversal preconditions.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Protocol
from uuid import UUID, uuid4

from fbms_kernel.db.types import ZERO, round_money
from fbms_kernel.domain.accounts import AccountRole
from fbms_kernel.domain.clock import Clock, SystemClock
from fbms_kernel.domain.journal import (
    SKIP_MISSING_ACCOUNTS,
    SKIP_NOTHING_RECEIVED,
    SKIP_ZERO_VALUE,
    IntentLine,
    JournalEntry,
    JournalLine,
    JournalSourceType,
    PostingIntent,
    Skipped,
)
from fbms_kernel.domain.postings import (
    DEFAULT_PAYMENT_ROLES,
    PurchaseOrderPostingSource,
    ReceivedQuantity,
    SalePostingSource,
    StockAdjustmentSource,
)
from fbms_kernel.exceptions import (
    EntryAlreadyReversedError,
    EntryNotFoundError,
    ReversalOfReversalError,
)
from fbms_kernel.logging_config import LogContext, get_logger
from fbms_kernel.services.account_registry import AccountRegistry

logger = get_logger("services.journal_ledger")


class JournalStore(Protocol):
    """Persistence operations the ledger needs."""

    def save_journal_entry(self, entry: JournalEntry) -> None: ...

    def load_journal_entry(self, entry_id: UUID) -> JournalEntry | None: ...

    def find_reversal_of(self, entry_id: UUID) -> JournalEntry | None: ...


def _entry_number(entry_date: date, entry_id: UUID) -> str:
    return f"JE-{entry_date:%Y%m%d}-{entry_id.hex[:8].upper()}"


class JournalLedger:
    """
    Builds and persists balanced journal entries.

    Args:
        registry: Role-to-account resolution.
        store: Where entries are saved and looked up.
        clock: Source of posting timestamps.
        payment_roles: Payment method code -> debit role for sales.
    """

    def __init__(
        self,
        registry: AccountRegistry,
        store: JournalStore,
        clock: Clock | None = None,
        payment_roles: Mapping[str, AccountRole] | None = None,
    ):
        self._registry = registry
        self._store = store
        self._clock = clock or SystemClock()
        self._payment_roles = dict(payment_roles or DEFAULT_PAYMENT_ROLES)

    # ------------------------------------------------------------------
    # Generic posting
    # ------------------------------------------------------------------

    def post(self, intent: PostingIntent, actor_id: UUID) -> JournalEntry | Skipped:
        """Resolve an intent's roles and persist it as one entry."""
        if not intent.lines:
            return Skipped(SKIP_ZERO_VALUE)
        resolution = self._registry.resolve_many(intent.roles)
        if not resolution.is_complete:
            logger.warning(
                "journal_posting_skipped",
                extra={
                    "reason": SKIP_MISSING_ACCOUNTS,
                    "reference": intent.reference,
                    "source_type": intent.source_type.value,
                    "missing_roles": [r.value for r in resolution.missing],
                },
            )
            return Skipped(SKIP_MISSING_ACCOUNTS, resolution.missing)

        lines = []
        for number, intent_line in enumerate(intent.lines, start=1):
            account = resolution[intent_line.role]
            lines.append(
                JournalLine(
                    line_number=number,
                    account_id=account.id,
                    account_code=account.code,
                    debit=intent_line.debit,
                    credit=intent_line.credit,
                    description=intent_line.description,
                )
            )

        entry_id = uuid4()
        entry = JournalEntry(
            id=entry_id,
            entry_number=_entry_number(intent.entry_date, entry_id),
            entry_date=intent.entry_date,
            reference=intent.reference,
            source_type=intent.source_type,
            source_id=intent.source_id,
            description=intent.description,
            lines=tuple(lines),
            created_by=actor_id,
            created_at=self._clock.now(),
        )
        return self._persist(entry)

    def _persist(self, entry: JournalEntry) -> JournalEntry:
        entry.assert_balanced()
        with LogContext.bind(entry_id=str(entry.id)):
            self._store.save_journal_entry(entry)
            logger.info(
                "journal_entry_posted",
                extra={
                    "entry_number": entry.entry_number,
                    "reference": entry.reference,
                    "source_type": entry.source_type.value,
                    "line_count": len(entry.lines),
                    "total": str(entry.total),
                },
            )
        return entry

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def payment_role_for(self, payment_method_code: str) -> AccountRole:
        try:
            return self._payment_roles[payment_method_code]
        except KeyError:
            raise ValueError(
                f"No debit role configured for payment method '{payment_method_code}'"
            ) from None

    def sale_intent(self, sale: SalePostingSource) -> PostingIntent:
        """Lines for a completed sale.

        VAT, discount and COGS/Inventory lines are omitted when their
        amount is zero.
        """
        ref = sale.invoice_number
        lines = [
            IntentLine.dr(self.payment_role_for(sale.payment_method_code), sale.total, f"Sale {ref}"),
            IntentLine.cr(AccountRole.SALES_REVENUE, sale.subtotal, f"Sales revenue {ref}"),
        ]
        if sale.tax > 0:
            lines.append(IntentLine.cr(AccountRole.VAT_PAYABLE, sale.tax, f"Output VAT {ref}"))
        if sale.discount > 0:
            lines.append(IntentLine.dr(AccountRole.SALES_DISCOUNTS, sale.discount, f"Discount {ref}"))
        cost = round_money(sale.cost_of_goods_sold)
        if cost > 0:
            lines.append(IntentLine.dr(AccountRole.COGS, cost, f"Cost of goods sold {ref}"))
            lines.append(IntentLine.cr(AccountRole.INVENTORY, cost, f"Inventory issued {ref}"))
        # A fully discounted or zero-priced sale has nothing to post on that side
        lines = [line for line in lines if line.debit or line.credit]

        return PostingIntent(
            reference=ref,
            source_type=JournalSourceType.SALE,
            source_id=sale.id,
            description=f"Sale {ref}",
            entry_date=sale.created_at.date(),
            lines=tuple(lines),
        )

    def post_sale_entry(
        self, sale: SalePostingSource, actor_id: UUID | None = None,
    ) -> JournalEntry | Skipped:
        return self.post(self.sale_intent(sale), actor_id or sale.cashier_id)

    # ------------------------------------------------------------------
    # Purchase receipts
    # ------------------------------------------------------------------

    def post_purchase_receipt_entry(
        self,
        po: PurchaseOrderPostingSource,
        received_items: Iterable[ReceivedQuantity],
        actor_id: UUID,
    ) -> JournalEntry | Skipped:
        """Dr Inventory / Cr Accounts Payable for this batch only."""
        received = [item for item in received_items if item.quantity > 0]
        if not received:
            return Skipped(SKIP_NOTHING_RECEIVED)

        total = round_money(
            sum(
                (Decimal(item.quantity) * po.unit_cost_of(item.product_id) for item in received),
                ZERO,
            )
        )
        if total == 0:
            return Skipped(SKIP_ZERO_VALUE)

        ref = po.po_number
        intent = PostingIntent(
            reference=ref,
            source_type=JournalSourceType.PURCHASE_RECEIPT,
            source_id=po.id,
            description=f"Goods received on {ref}",
            entry_date=self._clock.today(),
            lines=(
                IntentLine.dr(AccountRole.INVENTORY, total, f"Inventory received {ref}"),
                IntentLine.cr(AccountRole.ACCOUNTS_PAYABLE, total, f"Payable to supplier {ref}"),
            ),
        )
        return self.post(intent, actor_id)

    # ------------------------------------------------------------------
    # Stock adjustments
    # ------------------------------------------------------------------

    def post_stock_adjustment_entry(
        self,
        product: StockAdjustmentSource,
        delta: int,
        unit_cost: Decimal,
        actor_id: UUID,
        reference_id: UUID | None = None,
    ) -> JournalEntry | Skipped:
        """Revalue inventory for a manual quantity adjustment.

        An increase debits Inventory against Inventory Adjustment; a
        decrease is the mirror image.
        """
        amount = round_money(Decimal(abs(delta)) * unit_cost)
        if amount == 0:
            return Skipped(SKIP_ZERO_VALUE)

        ref = f"ADJ-{product.sku}"
        if delta > 0:
            lines = (
                IntentLine.dr(AccountRole.INVENTORY, amount, f"Stock increase {product.sku}"),
                IntentLine.cr(AccountRole.INVENTORY_ADJUSTMENT, amount, f"Stock increase {product.sku}"),
            )
        else:
            lines = (
                IntentLine.dr(AccountRole.INVENTORY_ADJUSTMENT, amount, f"Stock decrease {product.sku}"),
                IntentLine.cr(AccountRole.INVENTORY, amount, f"Stock decrease {product.sku}"),
            )
        intent = PostingIntent(
            reference=ref,
            source_type=JournalSourceType.STOCK_ADJUSTMENT,
            source_id=reference_id or product.id,
            description=f"Stock adjustment {delta:+d} for {product.sku}",
            entry_date=self._clock.today(),
            lines=lines,
        )
        return self.post(intent, actor_id)

    # ------------------------------------------------------------------
    # Reversals
    # ------------------------------------------------------------------

    def reverse_entry(self, entry_id: UUID, actor_id: UUID, reason: str) -> JournalEntry:
        """Post a new entry that swaps every debit and credit of ``entry_id``."""
        original = self._store.load_journal_entry(entry_id)
        if original is None:
            raise EntryNotFoundError(str(entry_id))
        if original.reversal_of_id is not None:
            raise ReversalOfReversalError(str(entry_id))
        existing = self._store.find_reversal_of(entry_id)
        if existing is not None:
            raise EntryAlreadyReversedError(str(entry_id), str(existing.id))

        lines = tuple(
            JournalLine(
                line_number=line.line_number,
                account_id=line.account_id,
                account_code=line.account_code,
                debit=line.credit,
                credit=line.debit,
                description=f"Reversal: {line.description}",
            )
            for line in original.lines
        )
        reversal_id = uuid4()
        today = self._clock.today()
        reversal = JournalEntry(
            id=reversal_id,
            entry_number=_entry_number(today, reversal_id),
            entry_date=today,
            reference=f"REV-{original.reference}",
            source_type=JournalSourceType.REVERSAL,
            source_id=original.id,
            description=reason,
            lines=lines,
            created_by=actor_id,
            created_at=self._clock.now(),
            reversal_of_id=original.id,
        )
        logger.info(
            "journal_entry_reversal_requested",
            extra={"original_entry_id": str(original.id), "reason": reason},
        )
        return self._persist(reversal)

