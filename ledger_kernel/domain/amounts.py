"""
Amounts -- Decimal helpers for two-decimal monetary values.

All ledger amounts are Decimal at exactly two decimal places.  Float input is
rejected outright; rounding, where it happens at all (tax), is ROUND_HALF_UP.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ledger_kernel.exceptions import InvalidAmountError

MINOR_UNIT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Decimal | str | int) -> Decimal:
    """
    Convert ``value`` to Decimal without going through float.

    Raises:
        InvalidAmountError: for floats, non-numeric strings, NaN or infinity.
    """
    if isinstance(value, float):
        raise InvalidAmountError(str(value), "float amounts are not accepted")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(str(value), "not a number") from e
    if not result.is_finite():
        raise InvalidAmountError(str(value), "not a finite number")
    return result


def quantize_amount(value: Decimal | str | int) -> Decimal:
    """Round to two decimal places, half up."""
    return to_decimal(value).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def has_minor_unit_precision(value: Decimal) -> bool:
    """True if ``value`` has no digits beyond the second decimal place."""
    return value == value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def validate_line_amount(value: Decimal | str | int) -> Decimal:
    """
    Validate a transaction line amount and return it at two decimal places.

    Raises:
        InvalidAmountError: if the amount is not positive or has more than
            two decimal places.
    """
    amount = to_decimal(value)
    if amount <= 0:
        raise InvalidAmountError(amount, "amount must be greater than zero")
    if not has_minor_unit_precision(amount):
        raise InvalidAmountError(amount, "amount has more than two decimal places")
    return amount.quantize(MINOR_UNIT)
