"""
Posting sources (``fbms_kernel.domain.postings``).

Structural types for the business documents the JournalLedger knows how to
post.  The kernel never imports the sales or procurement modules; their
frozen dataclasses satisfy these protocols.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Mapping, Protocol
from uuid import UUID

from fbms_kernel.domain.accounts import AccountRole


class SalePostingSource(Protocol):
    """A completed sale, with cost captured at the time of sale."""

    @property
    def id(self) -> UUID: ...

    @property
    def invoice_number(self) -> str: ...

    @property
    def payment_method_code(self) -> str: ...

    @property
    def subtotal(self) -> Decimal: ...

    @property
    def tax(self) -> Decimal: ...

    @property
    def discount(self) -> Decimal: ...

    @property
    def total(self) -> Decimal: ...

    @property
    def cost_of_goods_sold(self) -> Decimal: ...

    @property
    def cashier_id(self) -> UUID: ...

    @property
    def created_at(self) -> datetime: ...


class PurchaseOrderPostingSource(Protocol):
    """A purchase order; only its identity and item costs are needed."""

    @property
    def id(self) -> UUID: ...

    @property
    def po_number(self) -> str: ...

    def unit_cost_of(self, product_id: UUID) -> Decimal: ...


class StockAdjustmentSource(Protocol):
    """The product whose on-hand value is being adjusted."""

    @property
    def id(self) -> UUID: ...

    @property
    def sku(self) -> str: ...


class ReceivedQuantity(Protocol):
    """One line of a receiving batch."""

    @property
    def product_id(self) -> UUID: ...

    @property
    def quantity(self) -> int: ...


# Cash and e-wallet tenders settle immediately; the rest are receivables.
DEFAULT_PAYMENT_ROLES: Mapping[str, AccountRole] = {
    "cash": AccountRole.CASH,
    "gcash": AccountRole.CASH,
    "paymaya": AccountRole.CASH,
    "bank_transfer": AccountRole.ACCOUNTS_RECEIVABLE,
    "credit_card": AccountRole.ACCOUNTS_RECEIVABLE,
    "credit": AccountRole.ACCOUNTS_RECEIVABLE,
}
