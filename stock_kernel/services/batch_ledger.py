"""
BatchLedger -- receive, debit and remove batches of stock.

Responsibility:
    Owns every mutation of the ``batches`` table: receiving a new batch,
    debiting stock earliest-expiry-first (or from an explicit batch), and
    removing a batch into a disposal record.  Aggregate stock is always
    recomputed from live batches.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes only; the service
    facade in ``stock_services`` owns commit/rollback and holds the
    per-item lock around every call that mutates.

Invariants enforced:
    - 0 <= quantity_remaining <= quantity_received for every batch.
    - A debit never leaves a partial allocation: the aggregate check
      happens before any batch is touched.
    - Earliest expiry is drained first; ties fall back to received date,
      then batch number, so the order is total and repeatable.
    - batch_number is never reused, even after disposal.

Failure modes:
    - ValidationError: non-positive quantity, missing expiry, negative
      unit cost, missing/duplicate batch number, unknown or inactive
      item on receive.
    - NotFoundError: unknown item on debit, unknown/foreign/short explicit
      batch (checked before the aggregate, so a removed or foreign batch
      is always NotFoundError), unknown batch on removal (including a
      second removal).
    - InsufficientStockError: aggregate stock below the requested quantity.

Audit relevance:
    Every mutation logs a structured event.  Removal archives the batch
    snapshot into a DisposalRecord in the same flush as the delete.
"""

from __future__ import annotations

import time
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import BatchInfo, DebitAllocation, DisposalRecordInfo
from stock_kernel.exceptions import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import Batch
from stock_kernel.models.disposal import DisposalRecord
from stock_kernel.models.item import InventoryItem
from stock_kernel.services.base import BaseService

logger = get_logger("services.batch_ledger")

# Re-read rows already in the identity map; another session may have
# committed since this one last loaded them.
_FRESH = {"populate_existing": True}

DISPOSAL_REASON_EXPIRED = "expired"


def _require_positive_int(field: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, "must be a whole number", value)
    if value <= 0:
        raise ValidationError(field, "must be positive", value)
    return value


def _coerce_unit_cost(value) -> Decimal:
    try:
        cost = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("unit_cost", "not a number", value) from None
    if cost < 0:
        raise ValidationError("unit_cost", "must not be negative", value)
    return cost


class BatchLedger(BaseService[Batch]):
    """
    Batch-level stock ledger.

    Contract:
        Callers that mutate hold the item's lock from
        ``ItemLockRegistry`` and own the transaction.

    Guarantees:
        - ``aggregate_stock`` equals the sum of quantity_remaining over the
          item's live batches at the caller's snapshot.
        - ``debit`` returns allocations whose quantities sum to the request.

    Non-goals:
        - Does NOT judge expiry before removal; the disposal workflow does.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _item(self, item_id: str) -> InventoryItem | None:
        return self.session.execute(
            select(InventoryItem).where(InventoryItem.item_id == item_id)
        ).scalar_one_or_none()

    def _require_item(self, item_id: str) -> InventoryItem:
        item = self._item(item_id)
        if item is None:
            raise NotFoundError("InventoryItem", item_id)
        return item

    def _locked_batches(self, item_id: str) -> list[Batch]:
        """Live batches of the item, row-locked, in debit order."""
        stmt = (
            select(Batch)
            .where(Batch.item_id == item_id)
            .order_by(Batch.expiry_date, Batch.received_date, Batch.batch_number)
            .with_for_update()
        )
        return list(self.session.execute(stmt, execution_options=_FRESH).scalars())

    def _batch_number_taken(self, batch_number: str) -> bool:
        live = self.session.execute(
            select(Batch.id).where(Batch.batch_number == batch_number)
        ).first()
        if live is not None:
            return True
        disposed = self.session.execute(
            select(DisposalRecord.id).where(DisposalRecord.batch_number == batch_number)
        ).first()
        return disposed is not None

    def get_batch(self, batch_id: UUID) -> BatchInfo:
        batch = self.session.get(Batch, batch_id, populate_existing=True)
        if batch is None:
            raise NotFoundError("Batch", str(batch_id))
        return BatchInfo.from_model(batch)

    def batches_for_item(self, item_id: str) -> list[BatchInfo]:
        """Live batches (exhausted included) in debit order."""
        stmt = (
            select(Batch)
            .where(Batch.item_id == item_id)
            .order_by(Batch.expiry_date, Batch.received_date, Batch.batch_number)
        )
        rows = self.session.execute(stmt, execution_options=_FRESH).scalars()
        return [BatchInfo.from_model(b) for b in rows]

    def aggregate_stock(self, item_id: str) -> int:
        self._require_item(item_id)
        total = self.session.execute(
            select(func.coalesce(func.sum(Batch.quantity_remaining), 0)).where(
                Batch.item_id == item_id
            )
        ).scalar_one()
        return int(total)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_batch(
        self,
        item_id: str,
        quantity_received: int,
        expiry_date: date | None,
        batch_number: str,
        lot_number: str | None = None,
        unit_cost: Decimal | str | int | None = None,
        supplier: str | None = None,
        received_date: date | None = None,
        storage_location: str | None = None,
        notes: str | None = None,
    ) -> BatchInfo:
        """
        Receive a new batch.  Batches are never merged.

        Postconditions:
            quantity_remaining == quantity_received and aggregate stock
            grows by exactly quantity_received.
        """
        _require_positive_int("quantity_received", quantity_received)
        if expiry_date is None:
            raise ValidationError("expiry_date", "must be provided")
        if isinstance(expiry_date, datetime):
            expiry_date = expiry_date.date()
        elif not isinstance(expiry_date, date):
            raise ValidationError("expiry_date", "must be a date", expiry_date)
        if not batch_number or not str(batch_number).strip():
            raise ValidationError("batch_number", "must be provided")
        batch_number = str(batch_number).strip()

        item = self._item(item_id)
        if item is None:
            raise ValidationError("item_id", "unknown item", item_id)
        if not item.is_active:
            raise ValidationError("item_id", "item is inactive", item_id)

        cost = _coerce_unit_cost(item.unit_cost if unit_cost is None else unit_cost)

        if self._batch_number_taken(batch_number):
            raise ValidationError("batch_number", "already exists", batch_number)

        batch = Batch(
            batch_number=batch_number,
            lot_number=lot_number,
            item_id=item_id,
            quantity_received=quantity_received,
            quantity_remaining=quantity_received,
            expiry_date=expiry_date,
            received_date=received_date or self._clock.today(),
            unit_cost=cost,
            supplier=supplier,
            storage_location=storage_location,
            notes=notes,
        )
        self.session.add(batch)
        self.session.flush()

        logger.info(
            "batch_added",
            extra={
                "item_id": item_id,
                "batch_id": str(batch.id),
                "batch_number": batch_number,
                "quantity_received": quantity_received,
                "expiry_date": expiry_date.isoformat(),
            },
        )
        return BatchInfo.from_model(batch)

    def debit(
        self,
        item_id: str,
        quantity: int,
        batch_id: UUID | None = None,
    ) -> list[DebitAllocation]:
        """
        Take ``quantity`` units of ``item_id`` out of stock.

        Without ``batch_id`` the item's non-exhausted batches are drained
        greedily in earliest-expiry order.  With ``batch_id`` the whole
        quantity comes from that batch.

        Returns:
            (batch_id, quantity) allocations in the order applied.
        """
        t0 = time.monotonic()
        _require_positive_int("quantity", quantity)
        self._require_item(item_id)

        batches = self._locked_batches(item_id)
        if batch_id is not None:
            allocations = self._debit_explicit(item_id, quantity, batch_id, batches)
        else:
            available = sum(b.quantity_remaining for b in batches)
            if available < quantity:
                logger.warning(
                    "debit_insufficient_stock",
                    extra={"item_id": item_id, "requested": quantity, "available": available},
                )
                raise InsufficientStockError(item_id, quantity, available)
            allocations = self._debit_earliest_expiry(quantity, batches)

        self.session.flush()

        logger.info(
            "stock_debited",
            extra={
                "item_id": item_id,
                "quantity": quantity,
                "explicit_batch": batch_id is not None,
                "allocations": [
                    {"batch_id": str(a.batch_id), "quantity": a.quantity}
                    for a in allocations
                ],
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return allocations

    def _debit_explicit(
        self,
        item_id: str,
        quantity: int,
        batch_id: UUID,
        batches: list[Batch],
    ) -> list[DebitAllocation]:
        batch = next((b for b in batches if b.id == batch_id), None)
        if batch is None:
            owner = self.session.get(Batch, batch_id)
            reason = "belongs to another item" if owner is not None else ""
            raise NotFoundError("Batch", str(batch_id), reason)
        if batch.quantity_remaining < quantity:
            raise NotFoundError(
                "Batch",
                str(batch_id),
                f"only {batch.quantity_remaining} remaining, {quantity} requested",
            )
        batch.quantity_remaining -= quantity
        return [DebitAllocation(batch_id=batch.id, quantity=quantity)]

    @staticmethod
    def _debit_earliest_expiry(
        quantity: int, batches: list[Batch]
    ) -> list[DebitAllocation]:
        allocations: list[DebitAllocation] = []
        remaining = quantity
        for batch in batches:
            if remaining == 0:
                break
            if batch.quantity_remaining == 0:
                continue
            take = min(remaining, batch.quantity_remaining)
            batch.quantity_remaining -= take
            remaining -= take
            allocations.append(DebitAllocation(batch_id=batch.id, quantity=take))
        return allocations

    def remove_batch(
        self,
        batch_id: UUID,
        disposed_by: str | None = None,
    ) -> DisposalRecordInfo:
        """
        Delete a batch and archive it as a DisposalRecord.

        One-shot: a second call for the same id raises NotFoundError.
        """
        batch = self.session.execute(
            select(Batch)
            .where(Batch.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise NotFoundError("Batch", str(batch_id))

        info = BatchInfo.from_model(batch)
        record = DisposalRecord(
            batch_id=info.batch_id,
            item_id=info.item_id,
            batch_number=info.batch_number,
            quantity_disposed=info.quantity_remaining,
            batch_snapshot=info.snapshot(),
            disposed_at=self._clock.now_utc(),
            reason=DISPOSAL_REASON_EXPIRED,
            disposed_by=disposed_by,
        )
        self.session.add(record)
        self.session.delete(batch)
        self.session.flush()

        logger.info(
            "batch_removed",
            extra={
                "item_id": info.item_id,
                "batch_id": str(info.batch_id),
                "batch_number": info.batch_number,
                "quantity_disposed": info.quantity_remaining,
            },
        )
        return DisposalRecordInfo.from_model(record)
