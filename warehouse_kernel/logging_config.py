"""
Structured logging for the warehouse.

Each record is written as one JSON object per line::

    {"ts": "2026-02-01T12:00:00+00:00", "level": "INFO",
     "logger": "warehouse_kernel.services.sales", "message": "apply_sale_consumed",
     "run_id": "...", "sale_id": "...", "qty": 3, "unfilled": 0}

The message is a snake_case event name and the payload travels in
``extra``.  Run-scoped identifiers (run, sale, lot) are bound through
``LogContext`` and stamped onto every record emitted while bound.  Raised
``WarehouseKernelError`` instances contribute their ``code`` and public
attributes as ``exc_*`` keys.

All loggers live under the ``warehouse_kernel`` namespace, which does not
propagate to the root logger.
"""

__all__ = [
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
from enum import Enum
from typing import Any

CONTEXT_FIELDS: tuple[str, ...] = ("correlation_id", "run_id", "actor_id", "sale_id", "lot_id")

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"warehouse_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """ContextVar-backed fields shared by every record of a run."""

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set the given fields; None leaves a field unchanged."""
        unknown = set(fields) - set(_context)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        for name, value in fields.items():
            if value is not None:
                _context[name].set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name, var in _context.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _context.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Bind fields for the duration of a block, then restore them.

        Unknown names and None values are ignored.
        """
        tokens = [
            (_context[name], _context[name].set(str(value)))
            for name, value in fields.items()
            if name in _context and value is not None
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# LogRecord attributes that are never copied into the payload.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for key, value in vars(exc).items():
        if not key.startswith("_") and key not in ("args", "code"):
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


_NAMESPACE = "warehouse_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger for a component, e.g. ``get_logger("services.sales")``."""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install the JSON handler on the namespace logger.  Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    namespace = logging.getLogger(_NAMESPACE)
    namespace.setLevel(level)
    namespace.propagate = False

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    namespace.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging`` to run again (tests)."""
    global _configured
    with _lock:
        _configured = False
    namespace = logging.getLogger(_NAMESPACE)
    namespace.handlers.clear()
    namespace.setLevel(logging.WARNING)
