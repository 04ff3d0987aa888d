"""
Structured JSON logging for the billing kernel.

Every record under the ``billing_kernel`` logger hierarchy is written as one
JSON object per line:

    {"ts": "...", "level": "INFO", "logger": "billing_kernel.services.document",
     "message": "document_created", "correlation_id": "...", "actor_id": "...",
     "document_id": "...", "document_no": "12", ...}

Key order is envelope, then bound request context, then the record's
``extra`` fields, then exception fields.  Messages are snake_case event
names; the data travels in ``extra``.

Request-scoped fields (correlation id, actor, period, party, document) are
held in context variables, so concurrent requests and worker threads each
see their own values.  The API middleware binds them per request.
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

_ROOT_LOGGER = "billing_kernel"

# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = ("correlation_id", "actor_id", "period_id", "party", "document_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"billing_log_{field}", default=None)
    for field in _CONTEXT_FIELDS
}


def _context_var(field: str) -> ContextVar[str | None]:
    try:
        return _context_vars[field]
    except KeyError:
        raise TypeError(f"unknown log context field {field!r}") from None


class LogContext:
    """
    Request-scoped fields stamped on every log record.

    Values are stored as strings, so UUIDs and PartyRefs can be passed
    directly.  ``None`` means "leave unchanged".
    """

    FIELDS = _CONTEXT_FIELDS

    @classmethod
    def set(cls, **fields: object) -> None:
        for field, value in fields.items():
            var = _context_var(field)
            if value is not None:
                var.set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        bound = {}
        for field, var in _context_vars.items():
            value = var.get()
            if value is not None:
                bound[field] = value
        return bound

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: object) -> Iterator[type["LogContext"]]:
        """Bind fields for the duration of a block; the outer values come back on exit."""
        tokens = []
        for field, value in fields.items():
            var = _context_var(field)
            if value is not None:
                tokens.append((var, var.set(str(value))))
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else arrived through ``extra``
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}

# BillingKernelError class attributes worth surfacing
_ERROR_CLASS_ATTRS = ("code", "kind", "status_code")


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # UUID, Decimal, PartyRef
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    for attr in _ERROR_CLASS_ATTRS:
        if hasattr(exc, attr):
            fields[f"exc_{attr}"] = getattr(exc, attr)
    for attr, value in vars(exc).items():
        if not attr.startswith("_"):
            fields.setdefault(f"exc_{attr}", value)
    return fields


class StructuredFormatter(logging.Formatter):
    """Renders a record as a single JSON line."""

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

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the billing_kernel hierarchy, e.g. ``get_logger("services.payment")``."""
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one structured handler to the billing_kernel logger.

    Only the first call has an effect until reset_logging().  ``level``
    accepts a name such as ``"DEBUG"`` so it can come straight from
    BillingSettings.log_level.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

        if isinstance(level, str):
            level = level.upper()

        kernel_logger = logging.getLogger(_ROOT_LOGGER)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False

        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        kernel_logger.addHandler(target)


def reset_logging() -> None:
    """Drop the kernel's handlers and allow reconfiguration.  Tests only."""
    global _configured
    with _lock:
        _configured = False
        kernel_logger = logging.getLogger(_ROOT_LOGGER)
        kernel_logger.handlers.clear()
        kernel_logger.setLevel(logging.WARNING)
