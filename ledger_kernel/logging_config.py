"""
Structured JSON logging for the ledger kernel.

Every record is one JSON object per line.  Request-scoped fields
(``correlation_id``, ``tenant_id``, ``actor_id``, ``transaction_id``) are
carried in context variables, so a posting started under
``LogContext.bind(...)`` tags every record it emits, in threads and tasks
alike.  ``LedgerKernelError`` subclasses contribute their ``code`` and
structured attributes as ``exc_*`` fields.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_kernel.exceptions import LedgerKernelError

LOGGER_NAMESPACE = "ledger_kernel"

CONTEXT_FIELDS: tuple[str, ...] = ("correlation_id", "tenant_id", "actor_id", "transaction_id")

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"ledger_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Set context fields; ``None`` values are left untouched.

        Raises:
            KeyError: for a name outside ``CONTEXT_FIELDS``.
        """
        for name, value in fields.items():
            if name not in _context:
                raise KeyError(f"Unknown log context field: {name}")
            if value is not None:
                _context[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {name: var.get() for name, var in _context.items() if var.get() is not None}

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Set fields for the duration of a block, then restore the previous values.

        Values are stringified, so UUIDs can be passed as-is.  ``None`` and
        unknown names are skipped, letting callers forward optional ids.
        """
        tokens = [
            (_context[name], _context[name].set(str(value)))
            for name, value in fields.items()
            if value is not None and name in _context
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# LogRecord attributes that are never structured payload
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, LedgerKernelError):
        fields["exc_code"] = exc.code
        fields.update(
            (f"exc_{name}", value)
            for name, value in vars(exc).items()
            if not name.startswith("_")
        )
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``ledger_kernel`` namespace, e.g. ``services.posting``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_installed: list[logging.Handler] = []
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``ledger_kernel`` logger.

    Only the first call in a process has an effect, so library code may call
    it unconditionally and the application's own call (made first) wins.
    Records do not propagate to the root logger.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    namespace = logging.getLogger(LOGGER_NAMESPACE)
    namespace.setLevel(level.upper() if isinstance(level, str) else level)
    namespace.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    namespace.addHandler(target)
    _installed.append(target)


def reset_logging() -> None:
    """Remove the handlers configure_logging() added and allow it to run again. For tests."""
    global _configured
    with _lock:
        _configured = False
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    while _installed:
        namespace.removeHandler(_installed.pop())
    namespace.setLevel(logging.WARNING)
