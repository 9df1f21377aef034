"""
Sales Domain Models.

A ``SaleDraft`` is what the point of sale hands over when the cashier
completes a sale; a ``Sale`` is the persisted result, with the cost of each
line captured from the inventory ledger at the moment of sale.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fbms_kernel.db.types import ZERO, round_money


class PaymentMethod(str, Enum):
    """Tender types accepted at the point of sale."""
    CASH = "cash"
    GCASH = "gcash"
    PAYMAYA = "paymaya"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    CREDIT = "credit"


@dataclass(frozen=True)
class SaleLineDraft:
    """A cart line: product, quantity and the price charged."""
    product_id: UUID
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class SaleDraft:
    """A completed cart, not yet recorded.

    ``tax_override`` replaces the computed VAT (e.g. zero for a
    VAT-exempt sale).
    """
    lines: tuple[SaleLineDraft, ...]
    payment_method: PaymentMethod = PaymentMethod.CASH
    discount: Decimal = ZERO
    tax_override: Decimal | None = None
    invoice_number: str | None = None


@dataclass(frozen=True)
class SaleLine:
    """A recorded sale line with its cost at the time of sale.

    ``quantity`` is what the customer was charged for.
    ``quantity_issued`` is what actually left the shelf; it is lower only
    when a stock shortfall was clamped, and ``None`` means "all of it".
    Cost of goods sold follows the issued quantity.
    """
    product_id: UUID
    sku: str
    quantity: int
    unit_price: Decimal
    unit_cost: Decimal
    quantity_issued: int | None = None

    @property
    def issued_quantity(self) -> int:
        return self.quantity if self.quantity_issued is None else self.quantity_issued

    @property
    def line_total(self) -> Decimal:
        return round_money(self.quantity * self.unit_price)

    @property
    def cost_total(self) -> Decimal:
        return round_money(self.issued_quantity * self.unit_cost)


@dataclass(frozen=True)
class Sale:
    """A recorded sale.  ``total == subtotal + tax - discount``."""
    id: UUID
    invoice_number: str
    payment_method: PaymentMethod
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    cashier_id: UUID
    created_at: datetime
    lines: tuple[SaleLine, ...] = field(default_factory=tuple)

    @property
    def payment_method_code(self) -> str:
        return self.payment_method.value

    @property
    def cost_of_goods_sold(self) -> Decimal:
        return round_money(sum((line.cost_total for line in self.lines), ZERO))
