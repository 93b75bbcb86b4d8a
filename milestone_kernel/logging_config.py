"""
Structured JSON logging for the milestone kernel.

Every record under the ``milestone_kernel`` logger is written as one JSON
line.  Governance context bound with ``LogContext.bind`` (the acting voter,
the project and the milestone being worked on) is stamped onto each line,
and kernel exceptions contribute their error code and structured fields.
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
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "milestone_kernel"

CONTEXT_FIELDS = ("actor_id", "project_id", "milestone_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"milestone_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Context-local governance fields, safe across threads and tasks."""

    @staticmethod
    def get_all() -> dict[str, str]:
        """The currently bound fields, omitting unset ones."""
        bound = {name: var.get() for name, var in _context_vars.items()}
        return {name: value for name, value in bound.items() if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Bind fields for the duration of the block, restoring them on exit.

        Values are stringified so callers can pass UUIDs directly.  ``None``
        leaves a field as it was.

        Raises:
            ValueError: if a field name is not one of CONTEXT_FIELDS.
        """
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
        tokens = [
            (_context_vars[name], _context_vars[name].set(str(value)))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in payload
        )

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            for key, value in vars(exc).items():
                if not key.startswith("_") and key != "code":
                    payload[f"exc_{key}"] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """A child of the ``milestone_kernel`` logger."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``milestone_kernel`` logger.

    Only the first call takes effect; later calls (the engine calls this on
    every initialization) are no-ops until ``reset_logging``.  Without a
    handler, lines go to stderr.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    target = handler or logging.StreamHandler(sys.stderr)
    target.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(target)


def reset_logging() -> None:
    """Drop the kernel's handlers and allow reconfiguration.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
