"""
Tax Module.

Responsibility:
    Tax codes per tenant, the pure tax calculator, taxed draft lines and
    tax-return summaries over posted ledger entries.

Architecture:
    ledger_modules -- tax arithmetic lives in ``calculator`` (pure);
    ledger writes go through ``ledger_kernel`` services.

Invariants:
    - All monetary amounts and rates use ``Decimal`` -- NEVER ``float``.
    - Tax is rounded ROUND_HALF_UP to two decimal places.
"""

from ledger_modules.tax.calculator import compute_tax, effective_rate, split_gross
from ledger_modules.tax.config import DefaultTaxCode, TaxConfig
from ledger_modules.tax.models import TaxCodeInfo, TaxSummary, TaxSummaryLine, TaxType
from ledger_modules.tax.service import TaxCodeService, TaxService

__all__ = [
    "compute_tax",
    "effective_rate",
    "split_gross",
    "DefaultTaxCode",
    "TaxConfig",
    "TaxCodeInfo",
    "TaxSummary",
    "TaxSummaryLine",
    "TaxType",
    "TaxCodeService",
    "TaxService",
]
