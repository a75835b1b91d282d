"""
Module: pharmacy_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for price and
    quantity columns.  Centralizes precision and rounding so that every model
    and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/ and
    services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_money() is the ONLY sanctioned rounding function for prices,
      taxes, discounts and totals (ROUND_HALF_UP to 2 places).
    - No floats for money.  to_money() rejects float input outright.

Failure modes:
    - TypeError from to_money() on float or non-numeric input.
    - decimal.InvalidOperation from to_money() on an unparsable string.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from sqlalchemy import Integer, Numeric, String


# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Percentage in the closed range 0-100 (tax rate, discount)
Percentage = Annotated[Decimal, Numeric(9, 4)]

# Whole units of stock
Quantity = Annotated[int, Integer]

# Short identifier strings (sku, codes, statuses)
ShortCode = Annotated[str, String(50)]

# Long text for notes and reasons
LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

_QUANTIZE_CACHE: dict[int, Decimal] = {}


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given decimal places.

    This is the ONLY sanctioned rounding function for money in the kernel.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    exponent = _QUANTIZE_CACHE.get(decimal_places)
    if exponent is None:
        exponent = Decimal(1).scaleb(-decimal_places)
        _QUANTIZE_CACHE[decimal_places] = exponent
    return value.quantize(exponent, rounding=rounding)


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce an incoming amount to Decimal without passing through float.

    Raises:
        TypeError: If value is a float, bool, or not a numeric type.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Monetary amounts must not be {type(value).__name__}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        return Decimal(value)
    raise TypeError(f"Unsupported monetary type: {type(value).__name__}")
