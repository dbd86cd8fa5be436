"""
stock_engines.tracer -- Engine invocation tracer emitting STOCK_ENGINE_TRACE.

Responsibility:
    Provide a lightweight decorator (``@traced_engine``) that wraps pure
    engine invocations with structured trace logging.  The trace captures
    engine_name, engine_version, input_fingerprint (deterministic SHA-256
    hash of selected inputs), and duration_ms.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; uses the ``stock_kernel.engines.tracer``
    logger so it is routed by the kernel's logging configuration.

Invariants enforced:
    - Fingerprints are deterministic: dict keys are sorted, dates and
      decimals render through ``str``/``isoformat``, enums by value,
      dataclasses by their field values.
    - The decorator never mutates inputs.

Failure modes:
    - Fingerprint fields missing from kwargs are recorded as "null".
    - An engine that raises still emits a trace (``outcome="error"``) and
      the exception propagates unchanged.

Usage:
    from stock_engines.tracer import traced_engine

    @traced_engine("stock_classifier", "1.0", fingerprint_fields=("current_stock",))
    def classify(*, current_stock, minimum_stock):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping, Sized
from datetime import date
from enum import Enum
from typing import Any

_logger = logging.getLogger("stock_kernel.engines.tracer")

TRACE_TYPE = "STOCK_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Stable text for one fingerprint input."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, str):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        # DateWindow, ExpiryWindows: fingerprint by field values, not repr.
        return _canonicalize(
            {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        )
    if isinstance(value, Mapping):
        pairs = sorted((str(k), _canonicalize(v)) for k, v in value.items())
        return "{" + ",".join(f"{k}:{v}" for k, v in pairs) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """16-char SHA-256 prefix over the selected keyword arguments."""
    canonical = "|".join(
        f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def _result_size(result: Any) -> int | None:
    if isinstance(result, (str, bytes)) or not isinstance(result, Sized):
        return None
    return len(result)


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits STOCK_ENGINE_TRACE for pure engine invocations.

    A successful call logs at INFO with ``outcome="ok"`` and, for list or
    dict results, ``result_size``.  A call that raises logs at WARNING
    with ``outcome="error"`` and the exception type, then re-raises.

    Args:
        engine_name: Engine identifier (e.g., "expiry_monitor").
        engine_version: Engine version (e.g., "1.0").
        fingerprint_fields: Keyword argument names to include in the
            input fingerprint hash.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            trace: dict[str, Any] = {
                "trace_type": TRACE_TYPE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": (
                    compute_input_fingerprint(fingerprint_fields, kwargs)
                    if fingerprint_fields
                    else ""
                ),
                "function": func.__qualname__,
            }
            t0 = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                trace["duration_ms"] = round((time.monotonic() - t0) * 1000, 2)
                _logger.warning(
                    TRACE_TYPE,
                    extra={**trace, "outcome": "error", "error_type": type(exc).__name__},
                )
                raise
            trace["duration_ms"] = round((time.monotonic() - t0) * 1000, 2)
            _logger.info(
                TRACE_TYPE,
                extra={**trace, "outcome": "ok", "result_size": _result_size(result)},
            )
            return result

        return wrapper

    return decorator
