"""
Tax Calculator - compute tax for a taxable amount.

Pure functions with no I/O - the tax code (rate and type) is provided as a
parameter.  Results are rounded ROUND_HALF_UP to two decimal places.

Usage:
    from decimal import Decimal
    from ledger_modules.tax.calculator import compute_tax, split_gross
    from ledger_modules.tax.models import TaxCodeInfo, TaxType

    gst = TaxCodeInfo(code="GST", name="GST 15%", rate=Decimal("0.15"),
                      tax_type=TaxType.STANDARD)
    compute_tax(gst, Decimal("100.00"))   # Decimal("15.00")
    split_gross(gst, Decimal("115.00"))   # (Decimal("100.00"), Decimal("15.00"))
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import assert_never

from ledger_kernel.domain.amounts import MINOR_UNIT, ZERO, to_decimal
from ledger_modules.tax.models import TaxCodeInfo, TaxType


def _round(amount: Decimal) -> Decimal:
    return amount.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def effective_rate(tax_code: TaxCodeInfo) -> Decimal:
    """The rate actually applied: the code's rate for STANDARD, zero otherwise."""
    match tax_code.tax_type:
        case TaxType.STANDARD:
            return tax_code.rate
        case TaxType.ZERO_RATED | TaxType.EXEMPT | TaxType.OUT_OF_SCOPE:
            return Decimal("0")
        case _:
            assert_never(tax_code.tax_type)


def compute_tax(tax_code: TaxCodeInfo, taxable_amount: Decimal | str | int) -> Decimal:
    """
    Tax on a tax-exclusive amount.

    Deterministic: the same code and amount always give the same result.
    Negative amounts (credit notes) give negative tax.

    Raises:
        InvalidAmountError: If ``taxable_amount`` is a float or not finite.
    """
    amount = to_decimal(taxable_amount)
    rate = effective_rate(tax_code)
    if rate == 0:
        return ZERO
    return _round(amount * rate)


def split_gross(tax_code: TaxCodeInfo, gross_amount: Decimal | str | int) -> tuple[Decimal, Decimal]:
    """
    Split a tax-inclusive amount into (net, tax) with ``net + tax == gross``.

    The tax is rounded; the net absorbs the rounding difference.
    """
    gross = _round(to_decimal(gross_amount))
    rate = effective_rate(tax_code)
    if rate == 0:
        return gross, ZERO
    tax = _round(gross * rate / (Decimal("1") + rate))
    return gross - tax, tax
