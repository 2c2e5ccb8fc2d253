"""
Tax ORM Persistence Models (``ledger_modules.tax.orm``).

Responsibility:
    SQLAlchemy ORM model persisting tenant tax codes.  Mirrors
    ``TaxCodeInfo`` and provides ``to_dto()``.

Architecture position:
    **Modules layer** -- persistence companion to the pure DTO models.
    Inherits from ``TrackedBase`` (kernel DB base) which provides id,
    created_at, updated_at, created_by_id and updated_by_id.

Invariants enforced:
    - ``code`` is unique per tenant (uq_tax_code_tenant_code).
    - ``rate`` is Numeric(7, 4) -- NEVER float.
    - Ledger lines reference tax codes by code string, not by FK, so a
      deactivated code never invalidates history.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import RATE, StrEnumType, TenantScoped, TrackedBase
from ledger_modules.tax.models import TaxCodeInfo, TaxType


class TaxCodeModel(TenantScoped, TrackedBase):
    """
    ORM model for ``TaxCodeInfo``.

    Guarantees:
        - ``tax_type`` stores the TaxType enum value string.
        - ``report_box`` groups codes on the tax return.
    """

    __tablename__ = "tax_codes"

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    tax_type: Mapped[TaxType] = mapped_column(StrEnumType(TaxType, length=20), nullable=False)
    report_box: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_tax_code_tenant_code"),
        Index("idx_tax_code_active", "tenant_id", "is_active"),
    )

    def to_dto(self) -> TaxCodeInfo:
        return TaxCodeInfo.from_model(self)

    def __repr__(self) -> str:
        return f"<TaxCode {self.code} {self.rate}>"
