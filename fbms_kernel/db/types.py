"""
Module: fbms_kernel.db.types
Responsibility: Annotated type aliases and utility functions for money and
    quantity columns.  Centralizes precision and rounding so that every model
    and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/ and
    services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the ledger.  All monetary amounts are Decimal
      quantized to centavos.  round_money() is the ONLY sanctioned rounding
      function for financial values.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Peso amount in centavos precision
Money = Annotated[Decimal, Numeric(18, 2)]

# VAT and other rates
Rate = Annotated[Decimal, Numeric(9, 6)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")
FUNCTIONAL_CURRENCY = "PHP"


def round_money(
    value: Decimal | int | str,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to centavos.

    This is the only sanctioned rounding function for financial values.

    Preconditions: value is a Decimal, int, or numeric string (never float).
    Postconditions: Returns value quantized to ``decimal_places``.

    Raises:
        TypeError: If a float is passed.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return Decimal(value).quantize(Decimal(quantize_str), rounding=rounding)


def money_from_centavos(value: int) -> Decimal:
    """
    Create a peso amount from an integer number of centavos.

    Example:
        money_from_centavos(44800) -> Decimal("448.00")
    """
    return round_money(Decimal(value) / Decimal(100))


def to_centavos(value: Decimal) -> int:
    """Convert a peso amount to integer centavos (after rounding)."""
    return int(round_money(value) * 100)
