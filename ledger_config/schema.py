"""
Ledger settings schema.

Typed, frozen views of the merged YAML configuration.  The loader parses
``defaults.yaml`` plus any override file into these types; module-level
sections reuse the module config classes (``TaxConfig``,
``ReportingConfig``) so there is one definition per concern.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ledger_modules.reporting.config import ReportingConfig
from ledger_modules.tax.config import TaxConfig

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
VALID_DATE_POLICIES = {"original_date", "current_date"}


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///:memory:"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800

    def __post_init__(self):
        if not self.url:
            raise ValueError("database.url cannot be empty")
        if self.pool_size < 1:
            raise ValueError("database.pool_size must be at least 1")
        if self.max_overflow < 0:
            raise ValueError("database.max_overflow cannot be negative")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"

    def __post_init__(self):
        if self.level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f"logging.level must be one of {sorted(VALID_LOG_LEVELS)}")
        object.__setattr__(self, "level", self.level.upper())


@dataclass(frozen=True)
class ReversalSettings:
    """Default date of a reversal when the caller does not pass one."""

    date_policy: str = "original_date"

    def __post_init__(self):
        if self.date_policy not in VALID_DATE_POLICIES:
            raise ValueError(
                f"reversal.date_policy must be one of {sorted(VALID_DATE_POLICIES)}, "
                f"got {self.date_policy!r}"
            )


@dataclass(frozen=True)
class LedgerSettings:
    """The complete runtime configuration, as returned by get_active_config()."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    reversal: ReversalSettings = field(default_factory=ReversalSettings)
    tax: TaxConfig = field(default_factory=TaxConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    source_files: tuple[str, ...] = ()
    checksum: str = ""
