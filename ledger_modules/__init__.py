"""
Ledger Modules.

Domain modules built on top of the ledger kernel:

- Tax: tax codes, the pure tax calculator, taxed draft lines and tax
  summaries over posted entries.
- Reporting: trial balance, profit and loss and balance sheet.

Modules read and write through kernel services; they never write ledger
entries themselves.
"""
