"""
ledger_services -- Package init and public API.

Responsibility:
    The caller-facing facade.  ``LedgerOrchestrator`` owns the unit of work
    for each operation; ``LedgerServices`` wires kernel and module services
    for one session; ``bootstrap_ledger`` prepares logging and the database
    from settings.

Architecture position:
    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        ledger_services/ -> ledger_modules/ (allowed)
        ledger_services/ -> ledger_kernel/  (allowed)
        ledger_modules/  -> ledger_services/ (FORBIDDEN)
        ledger_kernel/   -> ledger_services/ (FORBIDDEN)
"""

from ledger_services.bootstrap import bootstrap_ledger
from ledger_services.orchestrator import LedgerOrchestrator, LedgerServices

__all__ = [
    "LedgerOrchestrator",
    "LedgerServices",
    "bootstrap_ledger",
]
