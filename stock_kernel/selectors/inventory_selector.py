"""
Module: stock_kernel.selectors.inventory_selector
Responsibility: Read-only queries over catalog items, live batches and
    disposal records.  Feeds the expiry monitor and the analytics snapshot.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Returns frozen DTOs only.
    - "Live" means present in ``batches``; disposed batches are gone from
      that table, so no status filter is needed.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import select

from stock_kernel.domain.dtos import BatchInfo, DisposalRecordInfo, ItemInfo, ItemType
from stock_kernel.models.batch import Batch
from stock_kernel.models.disposal import DisposalRecord
from stock_kernel.models.item import InventoryItem
from stock_kernel.selectors.base import BaseSelector

_FRESH = {"populate_existing": True}


class InventorySelector(BaseSelector[Batch]):
    """Catalog and batch read model."""

    def items(
        self,
        item_type: ItemType | None = None,
        include_inactive: bool = False,
    ) -> list[ItemInfo]:
        stmt = select(InventoryItem).order_by(InventoryItem.item_id)
        if not include_inactive:
            stmt = stmt.where(InventoryItem.is_active.is_(True))
        if item_type is not None:
            stmt = stmt.where(InventoryItem.item_type == ItemType(item_type).value)
        rows = self.session.execute(stmt, execution_options=_FRESH).scalars()
        return [ItemInfo.from_model(m) for m in rows]

    def batches(
        self,
        item_type: ItemType | None = None,
        include_exhausted: bool = True,
    ) -> list[BatchInfo]:
        """Live batches ordered by expiry, received date, batch number."""
        stmt = select(Batch).order_by(
            Batch.expiry_date, Batch.received_date, Batch.batch_number
        )
        if item_type is not None:
            stmt = stmt.join(InventoryItem, InventoryItem.item_id == Batch.item_id).where(
                InventoryItem.item_type == ItemType(item_type).value
            )
        if not include_exhausted:
            stmt = stmt.where(Batch.quantity_remaining > 0)
        rows = self.session.execute(stmt, execution_options=_FRESH).scalars()
        return [BatchInfo.from_model(b) for b in rows]

    def batches_expiring_between(self, start: date, end: date) -> list[BatchInfo]:
        """Live batches with ``start <= expiry_date <= end``, ascending."""
        stmt = (
            select(Batch)
            .where(Batch.expiry_date >= start, Batch.expiry_date <= end)
            .order_by(Batch.expiry_date, Batch.received_date, Batch.batch_number)
        )
        rows = self.session.execute(stmt, execution_options=_FRESH).scalars()
        return [BatchInfo.from_model(b) for b in rows]

    def batches_expired_before(self, day: date) -> list[BatchInfo]:
        """Live batches with ``expiry_date < day``, ascending."""
        stmt = (
            select(Batch)
            .where(Batch.expiry_date < day)
            .order_by(Batch.expiry_date, Batch.received_date, Batch.batch_number)
        )
        rows = self.session.execute(stmt, execution_options=_FRESH).scalars()
        return [BatchInfo.from_model(b) for b in rows]

    def find_batch(self, batch_id) -> BatchInfo | None:
        batch = self.session.get(Batch, batch_id, populate_existing=True)
        return BatchInfo.from_model(batch) if batch is not None else None

    def disposal_records(self, item_id: str | None = None) -> list[DisposalRecordInfo]:
        stmt = select(DisposalRecord).order_by(DisposalRecord.disposed_at)
        if item_id is not None:
            stmt = stmt.where(DisposalRecord.item_id == item_id)
        rows = self.session.execute(stmt, execution_options=_FRESH).scalars()
        return [DisposalRecordInfo.from_model(r) for r in rows]
