"""Read-only selectors over the general ledger."""

from ledger_kernel.selectors.ledger_selector import (
    AccountActivityRow,
    LedgerLine,
    LedgerSelector,
    TaxActivityRow,
)

__all__ = ["AccountActivityRow", "LedgerLine", "LedgerSelector", "TaxActivityRow"]
