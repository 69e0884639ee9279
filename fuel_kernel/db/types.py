"""
Module: fuel_kernel.db.types
Responsibility: Fixed-point precision for every quantity the ledger stores,
    plus the sanctioned conversion and rounding helpers.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  Values enter as Decimal, int or str (floats are
      converted through ``str`` so 0.1 stays 0.1) and are checked against the
      scale of their column.
    - round_money() is the ONLY sanctioned rounding function for monetary
      values: half-up to the currency minor unit.

Failure modes:
    - ValueError from to_decimal() on non-numeric or non-finite input, or on
      more fractional digits than the scale allows.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

# Fractional digits per quantity kind
MONEY_PLACES = 2
LITERS_PLACES = 3
PRICE_PLACES = 3
PERCENT_PLACES = 4
ODOMETER_PLACES = 1
CONSUMPTION_PLACES = 2

ZERO_MONEY = Decimal("0.00")
HUNDRED = Decimal("100")


def quantum(places: int) -> Decimal:
    """Smallest representable step for ``places`` fractional digits."""
    return Decimal(1).scaleb(-places)


def to_decimal(value: Any, places: int, field: str = "value") -> Decimal:
    """
    Convert ``value`` to a Decimal with exactly ``places`` fractional digits.

    Rejects values that would lose precision rather than rounding them
    silently.

    Raises:
        ValueError: non-numeric, non-finite, or too many fractional digits.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field} must be numeric, got {value!r}")
    try:
        dec = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{field} must be numeric, got {value!r}") from e
    if not dec.is_finite():
        raise ValueError(f"{field} must be finite, got {value!r}")
    quantized = dec.quantize(quantum(places), rounding=ROUND_HALF_UP)
    if quantized != dec:
        raise ValueError(
            f"{field} has more than {places} decimal places: {value!r}"
        )
    return quantized


def round_money(value: Decimal) -> Decimal:
    """Round to the currency minor unit, half-up."""
    return value.quantize(quantum(MONEY_PLACES), rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    """``amount × percent / 100`` rounded to the minor unit."""
    return round_money(amount * percent / HUNDRED)
