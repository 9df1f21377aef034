"""
Sales helpers -- pure totals and draft validation.

Tax is VAT on the subtotal (before discount); the total is
``subtotal + tax - discount``.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from fbms_kernel.db.types import ZERO, round_money
from fbms_modules.sales.models import SaleDraft

DEFAULT_VAT_RATE = Decimal("0.12")


class PricedLine(Protocol):
    @property
    def quantity(self) -> int: ...

    @property
    def unit_price(self) -> Decimal: ...


@dataclass(frozen=True)
class SaleTotals:
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal


def compute_totals(
    lines: Iterable[PricedLine],
    vat_rate: Decimal = DEFAULT_VAT_RATE,
    discount: Decimal = ZERO,
    tax_override: Decimal | None = None,
) -> SaleTotals:
    """Subtotal, VAT, discount and total for a set of lines.

    Two units at 100 plus one at 200 with 12% VAT gives subtotal 400.00,
    tax 48.00 and total 448.00.
    """
    subtotal = round_money(
        sum((Decimal(line.quantity) * line.unit_price for line in lines), ZERO)
    )
    if tax_override is not None:
        tax = round_money(tax_override)
    else:
        tax = round_money(subtotal * vat_rate)
    discount = round_money(discount)
    return SaleTotals(
        subtotal=subtotal,
        tax=tax,
        discount=discount,
        total=round_money(subtotal + tax - discount),
    )


def validate_draft(draft: SaleDraft, vat_rate: Decimal = DEFAULT_VAT_RATE) -> tuple[str, ...]:
    """Problems that make a draft unrecordable; empty when it is valid."""
    errors: list[str] = []
    if not draft.lines:
        errors.append("empty-sale")
    for line in draft.lines:
        if line.quantity <= 0:
            errors.append(f"invalid-quantity:{line.product_id}")
        if line.unit_price < 0:
            errors.append(f"negative-price:{line.product_id}")
    if draft.discount < 0:
        errors.append("negative-discount")
    if draft.tax_override is not None and draft.tax_override < 0:
        errors.append("negative-tax")
    if not errors:
        totals = compute_totals(draft.lines, vat_rate, draft.discount, draft.tax_override)
        if totals.total < 0:
            errors.append("discount-exceeds-total")
    return tuple(errors)


def invoice_number_for(sale_id: UUID, now: datetime) -> str:
    return f"INV-{now:%Y%m%d}-{sale_id.hex[:8].upper()}"
