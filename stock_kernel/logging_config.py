"""
Structured logging for the stock kernel.

Every logger lives under the ``stock_kernel`` namespace (``get_logger``)
and writes one record per line.  Records carry:

- the envelope: ``ts``, ``level``, ``logger``, ``message``;
- the bound context (``LogContext``): who is acting, at which terminal,
  and which item / batch / usage entry the work concerns;
- whatever the call site passed in ``extra``;
- for errors, the exception type and the structured attributes of
  ``StockEngineError`` subclasses (``exc_item_id``, ``exc_line_index``...).

``configure_logging`` is idempotent; ``reset_logging`` exists for tests.
"""

__all__ = [
    "LOG_FORMATS",
    "StructuredFormatter",
    "TextFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Mapping
from contextvars import ContextVar
from datetime import UTC, date, datetime
from types import MappingProxyType
from typing import Any

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_EMPTY: Mapping[str, str] = MappingProxyType({})

_context: ContextVar[Mapping[str, str]] = ContextVar("stock_log_context", default=_EMPTY)


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    Only the names in ``FIELDS`` are accepted; unknown names passed to
    ``bind`` are ignored so call sites can pass loosely.
    """

    FIELDS = (
        "correlation_id",
        "actor_id",
        "terminal_id",
        "item_id",
        "batch_id",
        "entry_id",
    )

    @classmethod
    def _merged(cls, values: Mapping[str, Any]) -> Mapping[str, str]:
        current = dict(_context.get())
        current.update(
            (name, str(val))
            for name, val in values.items()
            if name in cls.FIELDS and val is not None
        )
        return MappingProxyType(current)

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        terminal_id: str | None = None,
        item_id: str | None = None,
        batch_id: str | None = None,
        entry_id: str | None = None,
    ) -> None:
        """Set context fields.  Only non-None values are updated."""
        _context.set(cls._merged({
            "correlation_id": correlation_id,
            "actor_id": actor_id,
            "terminal_id": terminal_id,
            "item_id": item_id,
            "batch_id": batch_id,
            "entry_id": entry_id,
        }))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """All bound fields, in declaration order."""
        bound = _context.get()
        return {name: bound[name] for name in cls.FIELDS if name in bound}

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    def bind(cls, **kwargs: str | None) -> "_BoundContext":
        """Context manager: add fields on entry, restore the previous set on exit."""
        return _BoundContext(kwargs)


class _BoundContext:

    def __init__(self, values: Mapping[str, Any]):
        self._values = values
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(LogContext._merged(self._values))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        _context.reset(self._token)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _jsonable(obj: Any) -> str:
    """UUIDs and Decimals as strings, dates in ISO form."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


def _record_fields(record: logging.LogRecord, include_traceback: bool) -> dict[str, Any]:
    """Envelope, bound context, ``extra`` and exception fields of ``record``."""
    fields: dict[str, Any] = {
        "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    fields.update(LogContext.get_all())
    for key, val in vars(record).items():
        if key not in _STDLIB_KEYS and key not in fields:
            fields[key] = val

    if record.exc_info and record.exc_info[1] is not None:
        exc = record.exc_info[1]
        fields["exc_type"] = type(exc).__name__
        fields["exc_message"] = str(exc)
        if hasattr(exc, "code"):
            fields["exc_code"] = exc.code
        for key, val in vars(exc).items():
            if not key.startswith("_") and key not in ("args", "code"):
                fields[f"exc_{key}"] = val
        if include_traceback:
            fields["traceback"] = logging.Formatter().formatException(record.exc_info)
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(_record_fields(record, include_traceback=True), default=_jsonable)


class TextFormatter(logging.Formatter):
    """
    ``ts LEVEL logger message key=value ...`` for an operator's console.

    Same fields as the JSON form; the traceback follows on its own lines.
    """

    _ENVELOPE = ("ts", "level", "logger", "message")

    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(record, include_traceback=False)
        head = " ".join(str(fields[k]) for k in self._ENVELOPE)
        tail = " ".join(
            f"{key}={_jsonable(val)}"
            for key, val in fields.items()
            if key not in self._ENVELOPE
        )
        line = f"{head} {tail}" if tail else head
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


LOG_FORMATS: dict[str, type[logging.Formatter]] = {
    "json": StructuredFormatter,
    "text": TextFormatter,
}


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "stock_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger under the stock_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    fmt: str = "json",
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one handler to the ``stock_kernel`` logger.

    Only the first call has an effect.  Records do not propagate to the
    root logger.

    Raises:
        ValueError: ``fmt`` is not one of ``LOG_FORMATS``.
    """
    global _configured
    if fmt not in LOG_FORMATS:
        raise ValueError(f"log format must be one of {sorted(LOG_FORMATS)}, got '{fmt}'")
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(LOG_FORMATS[fmt]())
    kernel_logger.addHandler(h)


def reset_logging() -> None:
    """Undo ``configure_logging``.  FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
