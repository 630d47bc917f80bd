"""
Module: sourcing_kernel.db.types
Responsibility: Annotated type aliases for order, product and payment columns,
    plus the single sanctioned rounding helper for display amounts.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

No floats anywhere in monetary arithmetic.  Totals are computed exactly in
Decimal and stored as Numeric(38, 9); rounding to two places only happens
when an amount is rendered for people (contract text, notifications).
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Integer, Numeric, String, Text

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Whole-unit stock and order quantities
Quantity = Annotated[int, Integer]

# Short identifier / status strings
ShortCode = Annotated[str, String(50)]

# Human readable labels
Label = Annotated[str, String(255)]

# Long text bodies (contract terms, messages)
LongText = Annotated[str, Text]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value for display.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return Decimal(value).quantize(quantum, rounding=rounding)


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Coerce an input amount to Decimal, refusing floats.

    Raises:
        TypeError: if ``value`` is a float.
    """
    if isinstance(value, float):
        raise TypeError(f"Float amounts are not accepted: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)
