"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The usage ledger is the only source of truth for consumption history and
analytics, and disposal records are the only trace of a batch after it is
destroyed.  Neither may be rewritten: corrections are new entries.

A received batch is physical stock with a printed expiry date and invoice
cost.  Only its remaining quantity may move, and only inside
[0, quantity_received].

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements are emitted:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

A failing check aborts the flush; the owning transaction rolls back.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Rule
------------------|-------------------------------------------------------
UsageEntry        | Never updated or deleted
UsageLine         | Never updated or deleted
UsageDebit        | Never updated or deleted
DisposalRecord    | Never updated or deleted
Batch             | Frozen fields never change; remaining stays in range.
                  | DELETE is allowed (disposal archives it first).

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

BATCH_FROZEN_FIELDS = frozenset({
    "id",
    "batch_number",
    "item_id",
    "quantity_received",
    "expiry_date",
    "received_date",
    "unit_cost",
})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_batch_update(mapper, connection, target):
    """Allow only quantity_remaining (and free-text fields) to change."""
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in BATCH_FROZEN_FIELDS and attr.history.has_changes():
            _blocked(
                "Batch",
                str(target.id),
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a received batch",
                field=attr.key,
            )

    remaining = target.quantity_remaining
    if remaining < 0 or remaining > target.quantity_received:
        _blocked(
            "Batch",
            str(target.id),
            "UPDATE",
            f"quantity_remaining {remaining} outside [0, {target.quantity_received}]",
            field="quantity_remaining",
        )


def _append_only(entity_type: str):
    """Build update and delete listeners that always block."""

    def _on_update(mapper, connection, target):
        _blocked(
            entity_type,
            str(target.id),
            "UPDATE",
            f"{entity_type} records are immutable and cannot be modified",
        )

    def _on_delete(mapper, connection, target):
        _blocked(
            entity_type,
            str(target.id),
            "DELETE",
            f"{entity_type} records are immutable and cannot be deleted",
        )

    return _on_update, _on_delete


_usage_entry_update, _usage_entry_delete = _append_only("UsageEntry")
_usage_line_update, _usage_line_delete = _append_only("UsageLine")
_usage_debit_update, _usage_debit_delete = _append_only("UsageDebit")
_disposal_update, _disposal_delete = _append_only("DisposalRecord")


def _listener_table():
    from stock_kernel.models.batch import Batch
    from stock_kernel.models.disposal import DisposalRecord
    from stock_kernel.models.usage import UsageDebit, UsageEntry, UsageLine

    return (
        (Batch, "before_update", _check_batch_update),
        (UsageEntry, "before_update", _usage_entry_update),
        (UsageEntry, "before_delete", _usage_entry_delete),
        (UsageLine, "before_update", _usage_line_update),
        (UsageLine, "before_delete", _usage_line_delete),
        (UsageDebit, "before_update", _usage_debit_update),
        (UsageDebit, "before_delete", _usage_debit_delete),
        (DisposalRecord, "before_update", _disposal_update),
        (DisposalRecord, "before_delete", _disposal_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, fn in _listener_table():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately rewrite history.
    """
    for target, event_name, fn in _listener_table():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
