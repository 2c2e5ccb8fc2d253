"""
Ledger Kernel - multi-tenant double-entry posting core.

An append-only general ledger with:
- Balanced, all-or-nothing posting
- Exactly-once ledger entry generation per transaction line
- Period lock enforcement
- Full and partial reversals bounded by the original amounts
- Audit events written in the same unit of work as the ledger change
"""

__version__ = "0.1.0"
