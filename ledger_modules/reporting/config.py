"""
Reporting Configuration Schema.

Controls which accounts appear on reports and how the synthetic current
earnings line on the balance sheet is labelled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self

from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.reporting.config")


@dataclass
class ReportingConfig:
    """
    Configuration schema for the reporting module.
    """

    # Whether to include visible accounts whose balance is zero
    include_zero_balances: bool = False

    # Deactivated accounts keep their history; hiding them can unbalance reports
    include_inactive: bool = True

    # Label of the net-income-to-date line added to balance sheet equity
    current_earnings_label: str = "Current Earnings"

    def __post_init__(self):
        if not self.current_earnings_label or not self.current_earnings_label.strip():
            raise ValueError("current_earnings_label cannot be empty")

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary."""
        logger.info(
            "reporting_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
