"""
Logging for the brickworks kernel.

Every kernel logger lives under the ``brickworks_kernel`` namespace and
writes one record per line.  Records carry the request-scoped fields held
in LogContext (correlation, tenant, actor, aggregate, operation), so a
single correlation id ties together the log lines and the events written
by one operation.

Two output shapes:
    - StructuredFormatter: one JSON object per line (production default).
    - KeyValueFormatter: ``ts LEVEL logger message key=value ...`` for
      local runs where ``logging.json`` is false in the configuration set.

Context fields always win over same-named ``extra`` keys.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "KeyValueFormatter",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
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
from typing import Any
from uuid import UUID

LOGGER_NAMESPACE = "brickworks_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "tenant_id",
    "actor_id",
    "aggregate_type",
    "aggregate_id",
    "operation",
)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"brickworks_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _CONTEXT_VARS[name]
    except KeyError:
        raise TypeError(f"Unknown log context field: {name}") from None


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    Prefer ``bind`` inside services so the previous values come back when the
    operation ends; ``set`` and ``clear`` are for entry points and tests.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set the given fields.  None values are ignored."""
        for name, value in fields.items():
            var = _context_var(name)
            if value is not None:
                var.set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        """The fields currently set, in CONTEXT_FIELDS order."""
        return {
            name: value
            for name in CONTEXT_FIELDS
            if (value := _CONTEXT_VARS[name].get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = []
        for name, value in fields.items():
            var = _context_var(name)
            if value is not None:
                tokens.append((var, var.set(str(value))))
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    return str(value)


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Header, context and ``extra`` fields of a record, context first."""
    fields: dict[str, Any] = {
        "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
        **LogContext.get_all(),
    }
    for key, value in vars(record).items():
        if key not in _RECORD_ATTRIBUTES:
            fields.setdefault(key, value)
    return fields


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """
    Flatten an exception into ``exc_*`` fields.

    Kernel errors expose their structured data as public attributes
    (``available``, ``requested``, ``current_status`` ...), which are
    copied alongside the error code.
    """
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for key, value in vars(exc).items():
        if key.startswith("_") or key in ("args", "code"):
            continue
        fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(record)
        if record.exc_info and record.exc_info[1] is not None:
            fields.update(_exception_fields(record.exc_info[1]))
            fields["traceback"] = self.formatException(record.exc_info)
        return json.dumps(fields, default=_json_default)


class KeyValueFormatter(logging.Formatter):
    """Human-readable single line; context and extras as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(record)
        head = "{ts} {level:<7} {logger} {message}".format(**fields)
        rest = " ".join(
            f"{key}={_json_default(value) if not isinstance(value, (str, int, float)) else value}"
            for key, value in fields.items()
            if key not in ("ts", "level", "logger", "message")
        )
        line = f"{head} {rest}" if rest else head
        if record.exc_info and record.exc_info[1] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """Logger ``brickworks_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
    json_output: bool = True,
) -> None:
    """
    Attach a single handler to the kernel namespace.

    Idempotent: only the first call in a process has any effect until
    ``reset_logging`` is called.  The namespace does not propagate to the
    root logger, so host applications see kernel records only through this
    handler.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if isinstance(level, str):
        level = level.upper()
    kernel_logger = logging.getLogger(LOGGER_NAMESPACE)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter() if json_output else KeyValueFormatter())
    kernel_logger.addHandler(target)


def reset_logging() -> None:
    """Drop the kernel handler and allow configure_logging to run again.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(LOGGER_NAMESPACE)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
