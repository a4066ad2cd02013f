"""
Amount Handling Module

Single-currency Decimal helpers. NEVER uses float for monetary values:
everything is converted through str() into Decimal and rounded half-up to
cents only where a value is presented or stored.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Optional

# High precision for intermediate interest calculations
getcontext().prec = 28

CENTS = Decimal('0.01')
ZERO = Decimal('0')


def to_decimal(value) -> Optional[Decimal]:
    """
    Convert a user-supplied value to Decimal.

    Returns None when the value cannot be parsed or is not finite
    (NaN, Infinity); floats go through str() to avoid binary artefacts.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    if not result.is_finite():
        return None
    return result


def quantize_amount(amount: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up"""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def has_cents_precision(amount: Decimal) -> bool:
    """
    Check the amount carries no more than 2 decimal places.

    False as well for amounts too large to hold cents within the context
    precision (28 digits), since those cannot be quantized.
    """
    try:
        return amount == amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return False


def format_amount(amount: Decimal) -> str:
    """Format for display, e.g. Decimal('100') -> '100.00'"""
    return f"{quantize_amount(amount):.2f}"
