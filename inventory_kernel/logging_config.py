"""
Structured JSON logging for the inventory kernel.

Every record is one JSON object per line.  The orchestrator binds the
scope of each unit of work (correlation id, operation name, actor and the
item, lot or ledger entry it targets) through LogContext, and the
formatter stamps those fields onto every record emitted inside the scope.
"""

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

_LOGGER_PREFIX = "inventory_kernel"

# Fields InventoryOrchestrator binds per unit of work.
CONTEXT_FIELDS = (
    "correlation_id",
    "operation",
    "actor_id",
    "item_id",
    "lot_id",
    "transaction_id",
)

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"inventory_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Unit-of-work scope fields, safe across threads and tasks."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set known fields; None values and unknown names are ignored."""
        for name, value in fields.items():
            if value is not None and name in _context:
                _context[name].set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Set fields for the duration of the block, then restore them."""
        tokens = [
            (_context[name], _context[name].set(value))
            for name, value in fields.items()
            if value is not None and name in _context
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    # UUID, Decimal and anything else unknown to json
    return str(obj)


_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """One JSON line per record: base fields, scope fields, then ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED:
                payload.setdefault(key, value)

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload.update(_exception_fields(exc))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    # Kernel errors carry a ``code`` and their context as public attributes.
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``inventory_kernel`` namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the kernel logger.  Only the first call has effect."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging.  Used by the test suite."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
