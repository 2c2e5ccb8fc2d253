"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads YAML files, merges overrides onto the shipped defaults and parses the
result into the typed ``ledger_config.schema`` dataclasses.  Callers use
``ledger_config.get_active_config()``; this module is its machinery.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; unknown sections and keys are rejected, not ignored.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the merged
  configuration for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Top level not a mapping  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    ReversalSettings,
)
from ledger_modules.reporting.config import ReportingConfig
from ledger_modules.tax.config import TaxConfig

_SECTIONS = ("database", "logging", "reversal", "tax", "reporting")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` onto ``base``; nested mappings merge, everything else replaces."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Section {name!r} must be a mapping")
    return value


def parse_settings(
    data: dict[str, Any],
    source_files: tuple[str, ...] = (),
) -> LedgerSettings:
    """
    Parse a merged configuration dict into ``LedgerSettings``.

    Raises:
        KeyError: Unknown top-level section.
        ValueError: Invalid values (from the dataclass validators), or an
            unknown key inside a section.
    """
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise KeyError(f"Unknown configuration sections: {sorted(unknown)}")

    try:
        return LedgerSettings(
            database=DatabaseSettings(**_section(data, "database")),
            logging=LoggingSettings(**_section(data, "logging")),
            reversal=ReversalSettings(**_section(data, "reversal")),
            tax=TaxConfig.from_dict(_section(data, "tax")),
            reporting=ReportingConfig.from_dict(_section(data, "reporting")),
            source_files=source_files,
            checksum=compute_checksum(data),
        )
    except TypeError as e:
        # dataclass constructors reject unexpected keyword arguments this way
        raise ValueError(f"Invalid configuration: {e}") from e


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
