"""
UsageLedger -- append-only record of stock consumption.

Responsibility:
    Turns a dated list of usage lines into one immutable UsageEntry,
    debiting each line through the BatchLedger and recording exactly
    which batches every line drew from.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only.  All-or-nothing
    behaviour comes from the caller's transaction: the facade rolls back
    every debit of the entry when any line fails.

Invariants enforced:
    - An entry has at least one line and every quantity is a positive
      integer.
    - usage_date is never after the clock's today.
    - For each line, the recorded debits sum to the line quantity.
    - Entries are never updated or deleted (db/immutability.py).

Failure modes:
    - ValidationError: no lines, malformed line, missing date.
    - FutureDateError: usage_date after today.
    - InsufficientStockError / NotFoundError from the batch ledger.
    Every line-level error is stamped with ``line_index`` before it
    propagates.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import UsageEntryInfo, UsageLineSpec
from stock_kernel.exceptions import (
    FutureDateError,
    NotFoundError,
    StockEngineError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.usage import UsageDebit, UsageEntry, UsageLine
from stock_kernel.services.base import BaseService
from stock_kernel.services.batch_ledger import BatchLedger

logger = get_logger("services.usage_ledger")

_FRESH = {"populate_existing": True}

LineInput = UsageLineSpec | Mapping[str, Any]


def normalize_lines(items: Sequence[LineInput] | None) -> list[UsageLineSpec]:
    """
    Validate raw usage lines.

    Raises:
        ValidationError: empty input, or a malformed line (with line_index).
    """
    if not items:
        raise ValidationError("items", "at least one usage line is required")
    specs: list[UsageLineSpec] = []
    for index, raw in enumerate(items):
        try:
            spec = raw if isinstance(raw, UsageLineSpec) else UsageLineSpec.from_mapping(raw)
        except ValidationError as exc:
            exc.line_index = index
            raise
        specs.append(spec)
    return specs


def normalize_usage_date(usage_date: date | None) -> date:
    if usage_date is None:
        raise ValidationError("usage_date", "must be provided")
    if isinstance(usage_date, datetime):
        return usage_date.date()
    if not isinstance(usage_date, date):
        raise ValidationError("usage_date", "must be a date", usage_date)
    return usage_date


class UsageLedger(BaseService[UsageEntry]):
    """
    Usage ledger service.

    Contract:
        The caller holds the item locks for every item named in the lines
        and owns the transaction.

    Non-goals:
        - No update or delete.  Corrections are new entries.
    """

    def __init__(
        self,
        session: Session,
        batch_ledger: BatchLedger,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._batches = batch_ledger
        self._clock = clock or SystemClock()

    def log_usage(
        self,
        usage_date: date,
        items: Sequence[LineInput],
        notes: str | None = None,
    ) -> UsageEntryInfo:
        day = normalize_usage_date(usage_date)
        specs = normalize_lines(items)

        today = self._clock.today()
        if day > today:
            raise FutureDateError(day, today)

        entry = UsageEntry(
            usage_date=day,
            notes=notes,
            recorded_at=self._clock.now_utc(),
        )
        self.session.add(entry)
        self.session.flush()

        for index, spec in enumerate(specs):
            try:
                allocations = self._batches.debit(
                    spec.item_id, spec.quantity, spec.batch_id
                )
            except StockEngineError as exc:
                exc.line_index = index
                logger.warning(
                    "usage_line_failed",
                    extra={
                        "entry_id": str(entry.id),
                        "line_index": index,
                        "item_id": spec.item_id,
                        "quantity": spec.quantity,
                        "error_code": exc.code,
                    },
                )
                raise

            self.session.add(
                UsageLine(
                    entry_id=entry.id,
                    line_index=index,
                    item_id=spec.item_id,
                    quantity=spec.quantity,
                    batch_id=spec.batch_id,
                )
            )
            for sequence, allocation in enumerate(allocations):
                self.session.add(
                    UsageDebit(
                        entry_id=entry.id,
                        line_index=index,
                        sequence=sequence,
                        item_id=spec.item_id,
                        batch_id=allocation.batch_id,
                        quantity=allocation.quantity,
                    )
                )

        self.session.flush()
        self.session.refresh(entry)

        logger.info(
            "usage_logged",
            extra={
                "entry_id": str(entry.id),
                "usage_date": day.isoformat(),
                "line_count": len(specs),
                "total_quantity": sum(s.quantity for s in specs),
            },
        )
        return UsageEntryInfo.from_model(entry)

    def get_entry(self, entry_id: UUID) -> UsageEntryInfo:
        entry = self.session.get(UsageEntry, entry_id)
        if entry is None:
            raise NotFoundError("UsageEntry", str(entry_id))
        return UsageEntryInfo.from_model(entry)

    def entries_between(self, start: date, end: date) -> list[UsageEntryInfo]:
        """Entries dated in ``[start, end]``, oldest first."""
        stmt = (
            select(UsageEntry)
            .where(UsageEntry.usage_date >= start, UsageEntry.usage_date <= end)
            .order_by(UsageEntry.usage_date, UsageEntry.recorded_at)
        )
        rows = self.session.execute(stmt, execution_options=_FRESH).scalars()
        return [UsageEntryInfo.from_model(e) for e in rows]
