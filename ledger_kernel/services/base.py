"""
BaseService -- abstract base for all kernel services.

Every concrete service receives a SQLAlchemy ``Session`` from its caller and
persists changes with ``session.flush()``, never ``session.commit()``.  The
caller (LedgerOrchestrator, session_scope(), or the test harness) owns the
commit/rollback boundary, so a posting, its ledger entries and its audit
event are committed together or not at all.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide report queries; those belong in
          ``ledger_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
