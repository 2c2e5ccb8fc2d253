"""
Engine and unit-of-work helpers.

One engine and session factory per process, created by
``init_engine_from_url``.  PostgreSQL runs READ COMMITTED and relies on the
explicit ``FOR UPDATE`` / ``FOR SHARE`` locks taken by the posting path.
SQLite (development and tests) compiles those locks away; the version
counter on transactions is the guard there.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _sqlite_engine(database_url: str, echo: bool) -> Engine:
    url = make_url(database_url)
    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        # one shared connection, otherwise every checkout sees an empty database
        kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, echo=echo, **kwargs)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the process-wide engine and session factory.

    Calling it again replaces both; the previous engine is not disposed (see
    ``reset_engine``).  Pool arguments apply to server databases only.

    Sessions do not expire on commit, so DTOs built inside a unit of work stay
    readable after it closes.
    """
    global _engine, _SessionFactory

    dialect = make_url(database_url).get_backend_name()
    if dialect == "sqlite":
        _engine = _sqlite_engine(database_url, echo)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": dialect, "pool_size": pool_size, "echo": echo},
    )
    return _engine


_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    The process-wide session factory.

    Hand this to ``LedgerOrchestrator`` or to worker threads; each call of
    the factory opens an independent session and connection.
    """
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    """A new session from the process-wide factory; the caller closes it."""
    return get_session_factory()()


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    One unit of work: commit on success, rollback and re-raise on failure.

    Services inside the scope only flush, so a rejected posting leaves no
    ledger entries, status change or audit event behind.

    Usage:
        with session_scope(factory) as session:
            PostingService(session, clock, auditor).post(tenant_id, tx_id, actor_id)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
        logger.debug("unit_of_work_committed")
    except Exception as exc:
        session.rollback()
        logger.info(
            "unit_of_work_rolled_back",
            extra={"error_type": type(exc).__name__, "error_code": getattr(exc, "code", None)},
        )
        raise
    finally:
        session.close()


def _kernel_metadata():
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401  (registers every kernel table)

    return Base.metadata


def create_tables() -> None:
    """Create the kernel tables. Module tables: ledger_modules._orm_registry."""
    metadata = _kernel_metadata()
    metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(metadata.tables)})


def drop_tables() -> None:
    """Drop every registered table. Tests only."""
    _kernel_metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the factory, so the next init starts clean."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


def _dispose_at_exit() -> None:
    if _engine is not None:
        _engine.dispose()


atexit.register(_dispose_at_exit)
