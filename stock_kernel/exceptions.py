"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Terminal and report UIs render errors for clinic staff.  They must never
parse message strings to decide what went wrong.  Every failure therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, display-safe)
  3. Carries structured DATA (offending field, item, batch, line)

Example - WRONG way to handle errors:
    try:
        service.log_usage(day, lines)
    except Exception as e:
        if "Insufficient" in str(e):      # FRAGILE - message might change
            show_banner(...)

Example - RIGHT way:
    try:
        service.log_usage(day, lines)
    except InsufficientStockError as e:
        show_banner(code=e.code, item=e.item_id, line=e.line_index)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from StockEngineError:

    StockEngineError (base)
    |
    +-- ValidationError              malformed or missing input
    +-- NotFoundError                unknown item / batch / entry id
    +-- InsufficientStockError       debit exceeds available stock
    +-- InvalidStateError            disposal / workflow transition refused
    +-- FutureDateError              usage dated after "today"
    +-- ImmutabilityViolationError   attempt to rewrite ledger history

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|----------------------------------------------------
VALIDATION_ERROR        | Non-positive quantity, missing expiry, duplicate
                        | batch number, unknown catalog field values
NOT_FOUND               | Item, batch or usage entry does not exist
INSUFFICIENT_STOCK      | Aggregate (or explicit batch) stock too low
INVALID_STATE           | Target a non-expired batch, wrong workflow state
FUTURE_DATE             | Usage date is after the clock's today
IMMUTABILITY_VIOLATION  | Update/delete of usage history or frozen batch field

===============================================================================
LINE ATTRIBUTION
===============================================================================

A multi-line usage entry fails as a whole.  The usage ledger stamps
``line_index`` (zero-based) on whichever error aborted the entry so the
caller can point at the offending row.  ``as_dict()`` renders the code,
message and every structured attribute for a display boundary.
"""

from typing import Any


class StockEngineError(Exception):
    """
    Base exception for all stock engine errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_ENGINE_ERROR"
    line_index: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Structured rendering for display/API boundaries."""
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if key.startswith("_"):
                continue
            payload[key] = value
        if self.line_index is not None:
            payload["line_index"] = self.line_index
        return payload


class ValidationError(StockEngineError):
    """Malformed or missing input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, value: Any = None):
        self.field = field
        self.reason = reason
        self.value = value
        super().__init__(f"Invalid {field}: {reason}")


class NotFoundError(StockEngineError):
    """Referenced item, batch or entry does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str, reason: str = ""):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        message = f"{entity_type} not found: {entity_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InsufficientStockError(StockEngineError):
    """Requested debit exceeds the stock that remains."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        requested: int,
        available: int,
        batch_id: str | None = None,
    ):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        self.batch_id = batch_id
        target = f"batch {batch_id}" if batch_id else f"item {item_id}"
        super().__init__(
            f"Insufficient stock for {target}: "
            f"requested {requested}, available {available}"
        )


class InvalidStateError(StockEngineError):
    """Action is not permitted in the current state."""

    code: str = "INVALID_STATE"

    def __init__(self, state: str, action: str, reason: str):
        self.state = state
        self.action = action
        self.reason = reason
        super().__init__(f"Cannot {action} in state '{state}': {reason}")


class FutureDateError(StockEngineError):
    """Usage was dated after the clock's current day."""

    code: str = "FUTURE_DATE"

    def __init__(self, usage_date: Any, today: Any):
        self.usage_date = str(usage_date)
        self.today = str(today)
        super().__init__(
            f"Usage date {usage_date} is after today ({today})"
        )


class ImmutabilityViolationError(StockEngineError):
    """
    Attempted to modify or delete an immutable record.

    Usage entries, their lines and debits, and disposal records are
    append-only.  A batch's identity, item, expiry date and unit cost are
    frozen once received.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
