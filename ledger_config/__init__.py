"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive plain settings objects from
    their caller; they never read files or environment variables.

Architecture position:
    Configuration -- sits above ``ledger_kernel`` and ``ledger_modules``.
    The kernel MUST NEVER import from ``ledger_config``.

Resolution order (later wins):
    1. ``ledger_config/defaults.yaml`` shipped with the package.
    2. The YAML file passed as ``path``, else the one named by the
       ``LEDGER_CONFIG_FILE`` environment variable.
    3. ``DATABASE_URL`` for ``database.url``.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.

Audit relevance:
    Every call emits a ``LEDGER_CONFIG_TRACE`` log entry with the source
    files and the checksum of the merged configuration.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import deep_merge, load_yaml_file, parse_settings
from ledger_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    ReversalSettings,
)

_logger = logging.getLogger("ledger_kernel.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"
CONFIG_FILE_ENV = "LEDGER_CONFIG_FILE"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> LedgerSettings:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned settings have passed schema validation.
        - A ``LEDGER_CONFIG_TRACE`` log entry is emitted on every call.

    Non-goals:
        - Does NOT cache; callers hold the returned settings.

    Raises:
        FileNotFoundError: If the override file does not exist.
        ValueError: If configuration validation fails.
        KeyError: If the configuration has an unknown section.
    """
    data = load_yaml_file(DEFAULTS_FILE)
    sources = [str(DEFAULTS_FILE)]

    override = path if path is not None else os.environ.get(CONFIG_FILE_ENV)
    if override:
        data = deep_merge(data, load_yaml_file(Path(override)))
        sources.append(str(override))

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        data = deep_merge(data, {"database": {"url": database_url}})
        sources.append(f"env:{DATABASE_URL_ENV}")

    settings = parse_settings(data, tuple(sources))

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "source_files": list(settings.source_files),
            "checksum": settings.checksum,
            "reversal_date_policy": settings.reversal.date_policy,
            "default_tax_code_count": len(settings.tax.default_codes),
        },
    )
    return settings


__all__ = [
    "get_active_config",
    "LedgerSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "ReversalSettings",
]
