"""
Tax Domain Models.

Responsibility:
    Frozen dataclass DTOs for tax codes and tax summaries, and the closed
    ``TaxType`` enum that drives the calculator.

Architecture:
    ledger_modules -- pure data containers with no I/O.  ``from_model`` is
    the ORM-to-DTO boundary and is only called from the service layer.

Invariants:
    - All models are ``frozen=True`` (immutable after construction).
    - All monetary fields and rates use ``Decimal`` -- NEVER ``float``.
    - ``rate`` is a fraction (0.15 for 15 %), stored at four decimal places.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from ledger_modules.tax.orm import TaxCodeModel


class TaxType(str, Enum):
    """How a tax code treats the taxable amount."""

    STANDARD = "standard"  # rate applies
    ZERO_RATED = "zero_rated"  # taxable supply at 0 %
    EXEMPT = "exempt"
    OUT_OF_SCOPE = "out_of_scope"  # wages, non-business


@dataclass(frozen=True)
class TaxCodeInfo:
    """Read-only view of a tenant's tax code."""

    code: str
    name: str
    rate: Decimal
    tax_type: TaxType
    report_box: str | None = None
    is_active: bool = True
    id: UUID | None = None
    tenant_id: UUID | None = None

    @property
    def rate_percent(self) -> Decimal:
        """Rate as percentage (e.g., 15 for 15%)."""
        return self.rate * Decimal("100")

    @classmethod
    def from_model(cls, model: TaxCodeModel) -> TaxCodeInfo:
        return cls(
            code=model.code,
            name=model.name,
            rate=model.rate,
            tax_type=TaxType(model.tax_type),
            report_box=model.report_box,
            is_active=model.is_active,
            id=model.id,
            tenant_id=model.tenant_id,
        )


@dataclass(frozen=True)
class TaxSummaryLine:
    """
    Posted activity of one tax code over a date range.

    Credits on tax-coded lines are the output (sales) base, debits the input
    (purchases) base.  Credit notes and reversals reduce the opposite side.
    """

    tax_code: str
    name: str
    tax_type: TaxType
    rate: Decimal
    report_box: str | None
    input_base: Decimal
    output_base: Decimal
    input_tax: Decimal
    output_tax: Decimal
    entry_count: int

    @property
    def net_base(self) -> Decimal:
        return self.output_base - self.input_base

    @property
    def net_tax(self) -> Decimal:
        """Tax payable (positive) or refundable (negative) for this code."""
        return self.output_tax - self.input_tax


@dataclass(frozen=True)
class TaxSummary:
    """Tax-return view of posted entries, reproducible for any date range."""

    start_date: date
    end_date: date
    lines: tuple[TaxSummaryLine, ...]

    @property
    def total_output_tax(self) -> Decimal:
        return sum((l.output_tax for l in self.lines), Decimal("0.00"))

    @property
    def total_input_tax(self) -> Decimal:
        return sum((l.input_tax for l in self.lines), Decimal("0.00"))

    @property
    def net_tax_payable(self) -> Decimal:
        return self.total_output_tax - self.total_input_tax

    def by_report_box(self) -> dict[str | None, Decimal]:
        """Net base per report box; codes without a box are grouped under None."""
        boxes: dict[str | None, Decimal] = {}
        for line in self.lines:
            boxes[line.report_box] = boxes.get(line.report_box, Decimal("0.00")) + line.net_base
        return boxes
