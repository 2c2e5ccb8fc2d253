"""
Tax Configuration Schema.

Defines the tax codes seeded for a new tenant.  Actual values are loaded
from the ledger configuration (``tax.default_codes``) at runtime.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from ledger_kernel.logging_config import get_logger
from ledger_modules.tax.models import TaxType

logger = get_logger("modules.tax.config")


@dataclass
class DefaultTaxCode:
    """One tax code to create during tenant setup."""

    code: str
    name: str
    rate: Decimal
    tax_type: TaxType
    report_box: str | None = None

    def __post_init__(self):
        if not self.code or not self.code.strip():
            raise ValueError("code cannot be empty")
        # YAML gives floats for unquoted rates; str() keeps the written digits
        self.rate = Decimal(str(self.rate))
        if not Decimal("0") <= self.rate <= Decimal("1"):
            raise ValueError(f"rate for {self.code} must be a fraction between 0 and 1")
        self.tax_type = TaxType(self.tax_type)


def _nz_gst_codes() -> tuple[DefaultTaxCode, ...]:
    return (
        DefaultTaxCode("GST", "GST 15%", Decimal("0.15"), TaxType.STANDARD),
        DefaultTaxCode("ZERO", "Zero Rated", Decimal("0"), TaxType.ZERO_RATED),
        DefaultTaxCode("EXEMPT", "Exempt", Decimal("0"), TaxType.EXEMPT),
        DefaultTaxCode("N/A", "No GST", Decimal("0"), TaxType.OUT_OF_SCOPE),
    )


@dataclass
class TaxConfig:
    """
    Configuration schema for the tax module.

    Field defaults are the New Zealand GST codes:

        config = TaxConfig.from_dict({
            "default_codes": [
                {"code": "VAT20", "name": "VAT 20%", "rate": "0.20",
                 "tax_type": "standard", "report_box": "1"},
            ],
        })
    """

    default_codes: tuple[DefaultTaxCode, ...] = field(default_factory=_nz_gst_codes)

    def __post_init__(self):
        codes = [c.code for c in self.default_codes]
        if len(set(codes)) != len(codes):
            raise ValueError(f"default_codes contains duplicate codes: {codes}")

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary."""
        data = dict(data)
        if "default_codes" in data:
            data["default_codes"] = tuple(
                c if isinstance(c, DefaultTaxCode) else DefaultTaxCode(**c)
                for c in data["default_codes"]
            )
        logger.info(
            "tax_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
