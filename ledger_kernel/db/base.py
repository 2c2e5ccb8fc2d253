"""
Module: ledger_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent column
    types, the tenant column, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  ALL model files import from here.  This
    module MUST NOT import from models/, services/, selectors/, or domain/.

Invariants enforced:
    - UUID primary keys generated with uuid4.
    - Monetary precision: Decimal maps to Numeric(19, 2).  Amounts are stored
      at exactly two decimal places; NEVER use float for money.
    - Every row belongs to exactly one tenant (TenantScoped.tenant_id).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.types import TypeDecorator

MONEY = Numeric(19, 2)
RATE = Numeric(7, 4)


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Converts between Python UUID objects and their 36-character string
    representation on bind and on load.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class StrEnumType(TypeDecorator):
    """
    ``str`` Enum stored as its value in a String column.

    Loads come back as enum members, so ``status.value`` works on rows read
    back from the database.
    """

    impl = String(20)
    cache_ok = True

    def __init__(self, enum_cls, length: int = 20):
        super().__init__(length)
        self.enum_cls = enum_cls

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls(value)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(19, 2).
        - datetime maps to DateTime(timezone=True).
        - date maps to Date.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: MONEY,
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TenantScoped:
    """Mixin adding the indexed, required ``tenant_id`` column."""

    @declared_attr
    def tenant_id(cls) -> Mapped[PyUUID]:
        return mapped_column(UUIDString(), nullable=False, index=True)


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    created_at/updated_at/updated_by_id are audit metadata, not financial
    data, so they may change even on otherwise-immutable records (see
    db/immutability.py).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


# Re-export UUID for convenience
UUID = PyUUID
