"""
Module: docengine.logging_config
Responsibility: JSON-lines logging for every engine module.

Each record becomes one JSON object with ``ts``, ``level``, ``logger`` and
``message``, followed by the request-scoped fields held in ``LogContext``,
the record's ``extra`` fields and, for records logged with ``exc_info``,
the ``exc_*`` fields of the exception.  Typed engine errors contribute
their ``code`` and structured attributes, so a log consumer never has to
parse a message string.

Usage:
    logger = get_logger("services.sequence_allocator")
    logger.info("sequence_allocated", extra={"document_type": "quote", "value": 3})

    with LogContext.bind(entry_id=str(entry.id)):
        ...
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
from types import MappingProxyType
from typing import Any, TextIO
from uuid import UUID

LOGGER_NAMESPACE = "docengine"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "document_type",
    "document_id",
    "entry_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})

# One immutable mapping per context; replacing it never leaks into siblings
_context: ContextVar[Mapping[str, str]] = ContextVar("docengine_log_context", default=_EMPTY)


class LogContext:
    """Request-scoped fields added to every record logged in this context."""

    @staticmethod
    def _merged(fields: Mapping[str, Any]) -> Mapping[str, str]:
        current = dict(_context.get())
        for name, value in fields.items():
            if name in CONTEXT_FIELDS and value is not None:
                current[name] = str(value)
        return MappingProxyType(current)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Add or replace fields.  ``None`` values and unknown names are ignored."""
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

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
    if isinstance(value, Mapping):
        return dict(value)
    return repr(value)


# Attributes every LogRecord carries; anything else came from ``extra``
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = self._header(record)
        payload.update(LogContext.get_all())
        payload.update(self._extra(record, payload))
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception(record))
        return json.dumps(payload, default=_json_default)

    @staticmethod
    def _header(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

    @staticmethod
    def _extra(record: logging.LogRecord, taken: Mapping[str, Any]) -> dict[str, Any]:
        return {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES and key not in taken
        }

    def _exception(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
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
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger ``docengine.<name>``; configuration is inherited from the namespace root."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configure_lock = threading.Lock()
_configured = False
_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one structured handler to the ``docengine`` logger.

    Only the first call has an effect until ``reset_logging()`` runs.  The
    namespace does not propagate to the root logger, so host applications
    keep their own handlers untouched.
    """
    global _configured, _installed
    with _configure_lock:
        if _configured:
            return
        _configured = True

        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())

        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.setLevel(level)
        namespace.propagate = False
        namespace.addHandler(handler)
        _installed = handler


def reset_logging() -> None:
    """Drop the handler installed by ``configure_logging`` (tests only)."""
    global _configured, _installed
    with _configure_lock:
        _configured = False
        namespace = logging.getLogger(LOGGER_NAMESPACE)
        if _installed is not None:
            namespace.removeHandler(_installed)
            _installed = None
        namespace.setLevel(logging.WARNING)
