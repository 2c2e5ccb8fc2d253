"""
Deterministic hashing utilities.

Audit event details are stored alongside a SHA-256 digest of their canonical
JSON form so that later tampering with the stored payload is detectable.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Normalized so that 10.00 and 10.0 hash identically
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, whitespace is removed, and Decimal, datetime, date and
    UUID values are converted to strings.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict | None) -> str:
    """Return the hex SHA-256 digest of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload or {})
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def to_json_safe(payload: dict | None) -> dict | None:
    """Round-trip ``payload`` through canonical JSON so it can be stored in a JSON column."""
    if payload is None:
        return None
    return json.loads(canonicalize_json(payload))
