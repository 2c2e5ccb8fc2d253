"""
ledger_services.bootstrap -- process startup from settings.

Turns a ``LedgerSettings`` into a ready ``LedgerOrchestrator``:

    1. configure structured logging at ``logging.level``
    2. initialize the engine from ``database.*``
    3. create kernel and module tables
    4. register the immutability listeners

Usage:
    ledger = bootstrap_ledger(get_active_config())
"""

from __future__ import annotations

from ledger_config.schema import LedgerSettings
from ledger_kernel.db.engine import get_session_factory, init_engine_from_url
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import Clock
from ledger_kernel.logging_config import configure_logging, get_logger
from ledger_modules._orm_registry import create_all_tables
from ledger_services.orchestrator import LedgerOrchestrator

logger = get_logger("services.bootstrap")


def bootstrap_ledger(
    settings: LedgerSettings | None = None,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> LedgerOrchestrator:
    """Initialize logging and the database, and return an orchestrator."""
    settings = settings or LedgerSettings()

    # first call wins; the engine's own configure_logging() is then a no-op
    configure_logging(level=settings.logging.level)

    db = settings.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    if create_schema:
        create_all_tables()
    register_immutability_listeners()

    logger.info(
        "ledger_bootstrapped",
        extra={
            "config_checksum": settings.checksum,
            "reversal_date_policy": settings.reversal.date_policy,
            "schema_created": create_schema,
        },
    )
    return LedgerOrchestrator(get_session_factory(), settings, clock)
