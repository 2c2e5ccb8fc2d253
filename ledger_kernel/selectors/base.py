"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    Selectors NEVER create, modify, or delete data.

Invariants enforced:
    - Read-only access: no session.add/delete/flush/commit.
    - Selectors return frozen dataclasses, not ORM instances.
    - All balances are derived from LedgerEntry rows; nothing is stored.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Abstract base class for all selectors."""

    def __init__(self, session: Session):
        self.session = session
