"""Sales Module (``fbms_modules.sales``): sale drafts, recorded sales, totals."""

from fbms_modules.sales.helpers import (
    DEFAULT_VAT_RATE,
    SaleTotals,
    compute_totals,
    invoice_number_for,
    validate_draft,
)
from fbms_modules.sales.models import (
    PaymentMethod,
    Sale,
    SaleDraft,
    SaleLine,
    SaleLineDraft,
)

__all__ = [
    "DEFAULT_VAT_RATE",
    "PaymentMethod",
    "Sale",
    "SaleDraft",
    "SaleLine",
    "SaleLineDraft",
    "SaleTotals",
    "compute_totals",
    "invoice_number_for",
    "validate_draft",
]
