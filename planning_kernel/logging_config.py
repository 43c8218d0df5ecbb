"""
Structured logging for the planning packages.

Every logger handed out by :func:`get_logger` lives under the
``planning_kernel`` namespace and, once :func:`configure_logging` has run,
writes one JSON object per line::

    {"ts": "...", "level": "INFO", "logger": "planning_kernel.modules.budget_request",
     "message": "item_added", "request_id": "...", "actor_id": "...", "line_number": 4}

Request-scoped identifiers (``request_id``, ``actor_id`` and friends) are
carried in :class:`LogContext` rather than passed to every call; the service
layer binds them once per operation.  Context values take precedence over a
same-named ``extra`` key.
"""

from __future__ import annotations

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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TextIO
from uuid import UUID

LOGGER_NAMESPACE = "planning_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "request_id",
    "producer",
    "trace_id",
)

_context: ContextVar[Mapping[str, str]] = ContextVar("planning_log_context", default={})


class LogContext:
    """Request-scoped fields attached to every record emitted in this context."""

    @staticmethod
    def _merged(fields: dict[str, Any]) -> dict[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        current = dict(_context.get())
        current.update({k: str(v) for k, v in fields.items() if v is not None})
        return current

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Update fields in place; ``None`` leaves a field unchanged."""
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type[LogContext]]:
        """Set fields for the duration of a ``with`` block, then restore."""
        token = _context.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _context.reset(token)


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return repr(value)


# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """Render a record, its context and its extras as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = LogContext.get_all()
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in context and key not in payload:
                payload[key] = value
        payload.update(context)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default, ensure_ascii=False)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # PlanningError subclasses keep their structured data as attributes
        for name, value in vars(exc).items():
            if not name.startswith("_"):
                fields[f"exc_{name}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    """Return ``planning_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_state_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Install the JSON handler on the namespace logger.

    Only the first call has an effect; call :func:`reset_logging` to
    configure again.
    """
    global _installed_handler
    with _state_lock:
        if _installed_handler is not None:
            return
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.setLevel(level)
        namespace.propagate = False
        namespace.addHandler(target)
        _installed_handler = target


def reset_logging() -> None:
    """Remove the installed handler. Tests only."""
    global _installed_handler
    with _state_lock:
        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.handlers.clear()
        namespace.setLevel(logging.WARNING)
        _installed_handler = None
