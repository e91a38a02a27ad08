"""
Structured JSON logging for purge jobs.

Every record under the ``purge_kernel`` logger is written as one JSON object
per line.  Job-scoped identifiers (``job_id``, ``actor_id``, ``chunk_index``,
``correlation_id``) are carried in a context variable and stamped onto every
record emitted while they are bound, so the runner binds them once and the
source, executor and reporter log without passing them around::

    with LogContext.bind(job_id=job_id):
        with LogContext.bind(chunk_index=3):
            logger.info("chunk_processed", extra={"failed": 2})

    {"ts": "...", "level": "INFO", "logger": "purge_kernel.batch.runner",
     "message": "chunk_processed", "job_id": "...", "chunk_index": "3",
     "failed": 2}

Exceptions logged with ``logger.exception`` add ``exc_type``,
``exc_message``, ``exc_code`` and one ``exc_<attr>`` per public attribute of
the exception, so a SourceError shows up with ``exc_source`` and
``exc_reason``.
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
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

LOGGER_NAMESPACE = "purge_kernel"

CONTEXT_FIELDS = frozenset({"job_id", "correlation_id", "actor_id", "chunk_index"})

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("purge_log_context", default=_EMPTY)


def _merged(fields: dict[str, object]) -> Mapping[str, str]:
    unknown = set(fields) - CONTEXT_FIELDS
    if unknown:
        raise KeyError(f"Unknown log context field(s): {sorted(unknown)}")
    current = dict(_context.get())
    current.update({k: str(v) for k, v in fields.items() if v is not None})
    return MappingProxyType(current)


class LogContext:
    """Job-scoped log fields, safe across threads and asyncio tasks."""

    @staticmethod
    def set(**fields: object) -> None:
        """Set fields for the rest of the current context; None values are ignored.

        Raises:
            KeyError: For a field outside CONTEXT_FIELDS.
        """
        _context.set(_merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    def bind(**fields: object) -> "_Binding":
        """Set fields inside a ``with`` block, restoring the outer values after."""
        return _Binding(fields)


class _Binding:
    def __init__(self, fields: dict[str, object]):
        self._fields = fields
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(_merged(self._fields))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        _context.reset(self._token)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else came in through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
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
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_setup_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Logger ``purge_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def _installed(logger: logging.Logger) -> bool:
    return any(getattr(h, "_purge_structured", False) for h in logger.handlers)


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach the JSON handler to the ``purge_kernel`` logger.

    Only the first call has an effect; later calls (including the one made by
    ``init_engine_from_url``) leave the existing setup alone.
    """
    root = logging.getLogger(LOGGER_NAMESPACE)
    with _setup_lock:
        if _installed(root):
            return
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        target._purge_structured = True  # type: ignore[attr-defined]
        root.addHandler(target)
        root.setLevel(level)
        root.propagate = False


def reset_logging() -> None:
    """Remove all handlers and restore defaults. FOR TESTING ONLY."""
    root = logging.getLogger(LOGGER_NAMESPACE)
    with _setup_lock:
        for h in list(root.handlers):
            root.removeHandler(h)
        root.setLevel(logging.WARNING)
        root.propagate = True
