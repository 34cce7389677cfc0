"""Fixed-point amount helpers.

Both TRX and USDT carry 6 decimal places. The ledger speaks integer base
units (sun for TRX, the contract's smallest unit for USDT); everything above
the gateway works with ``Decimal`` values and 6-place decimal strings.
"""
from decimal import Decimal, InvalidOperation

from custody.utils.exceptions import ValidationError

DECIMALS = 6
BASE_UNITS = 10 ** DECIMALS
QUANTUM = Decimal(1).scaleb(-DECIMALS)
ZERO = Decimal("0")


def parse_amount(value, field="amount"):
    """Parse a strictly positive decimal amount with at most 6 places."""
    if value is None or isinstance(value, (bool, float)):
        raise ValidationError(f"{field} must be a decimal string", {"field": field})
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a decimal string", {"field": field})
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", {"field": field})
    if amount.normalize().as_tuple().exponent < -DECIMALS:
        raise ValidationError(
            f"{field} supports at most {DECIMALS} decimal places", {"field": field}
        )
    return amount


def to_decimal(value):
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_base_units(amount):
    scaled = to_decimal(amount) * BASE_UNITS
    if scaled != scaled.to_integral_value():
        raise ValidationError(f"Amount supports at most {DECIMALS} decimal places")
    return int(scaled)


def units_to_decimal(units, decimals=DECIMALS):
    return Decimal(int(units)).scaleb(-int(decimals)).quantize(QUANTUM)


def from_base_units(units):
    return str(units_to_decimal(units))


def format_amount(amount):
    return str(to_decimal(amount).quantize(QUANTUM))
