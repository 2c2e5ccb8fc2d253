"""
Module ORM Registry (``ledger_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` contains its table definition before tables are created.
``ledger_kernel.db.engine.create_tables()`` only knows the kernel models;
``create_all_tables()`` here is the entry point for a complete schema.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from sibling ``ledger_modules``
packages and from ``ledger_kernel.db.engine`` (modules -> kernel only).
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``ledger_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    import ledger_kernel.models  # noqa: F401
    import ledger_modules.tax.orm  # noqa: F401


def create_all_tables() -> None:
    """Create kernel and module tables.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from ledger_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables()
