"""
Module: stock_kernel.db.types
Responsibility: Annotated column types and the sanctioned rounding helpers
    for quantities, unit costs, prices and margin percentages.
Architecture position: Kernel > DB.  May be imported by every layer,
    including the pure engines.  MUST NOT import from models/ or services/.

Invariants enforced:
    - One rounding function per kind of value.  Average costs keep
      COST_DECIMAL_PLACES, prices PRICE_DECIMAL_PLACES, margins
      MARGIN_DECIMAL_PLACES.  Engines take the places as parameters so the
      configured precision flows through unchanged.
    - No floats.  ``to_decimal`` rejects float input; every amount is built
      from str, int or Decimal.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Integer, Numeric, String

# Monetary amount (unit cost, price, totals)
Money = Annotated[Decimal, Numeric(38, 9)]

# Percentage (margin)
Percent = Annotated[Decimal, Numeric(38, 9)]

# Whole units on hand / moved
StockQuantity = Annotated[int, Integer]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]


COST_DECIMAL_PLACES = 6
PRICE_DECIMAL_PLACES = 2
MARGIN_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Decimal | int | str | None, default: Decimal | None = None) -> Decimal | None:
    """
    Coerce an input amount to Decimal.

    Raises:
        TypeError: for float input (binary floats are never accepted).
        decimal.InvalidOperation: for non-numeric strings.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        raise TypeError("Boolean is not a valid amount")
    if isinstance(value, float):
        raise TypeError(f"Float amounts are not accepted ({value!r}); pass str or Decimal")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def quantize(
    value: Decimal,
    decimal_places: int,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round ``value`` to ``decimal_places`` using ``rounding``."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)


def round_cost(value: Decimal, decimal_places: int = COST_DECIMAL_PLACES) -> Decimal:
    """Round a unit cost (weighted average, real unit cost)."""
    return quantize(value, decimal_places)


def round_price(value: Decimal, decimal_places: int = PRICE_DECIMAL_PLACES) -> Decimal:
    """Round a sale price or a money total."""
    return quantize(value, decimal_places)


def round_margin(value: Decimal, decimal_places: int = MARGIN_DECIMAL_PLACES) -> Decimal:
    """Round a margin percentage."""
    return quantize(value, decimal_places)
