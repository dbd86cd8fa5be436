"""
Module: stock_kernel.models.batch
Responsibility: ORM persistence for received batches.  A batch is one receipt
    of stock with its own expiry date, cost and provenance.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    B1 -- quantity_received > 0.
    B2 -- 0 <= quantity_remaining <= quantity_received (CHECK constraints and
          the ORM listener in db/immutability.py).
    B3 -- batch_number is unique among live batches; the ledger also checks
          disposal records so a number is never reused.
    B4 -- item_id, batch_number, quantity_received, expiry_date, received_date
          and unit_cost are frozen after INSERT.  Only quantity_remaining moves.

Failure modes:
    - IntegrityError on duplicate batch_number or a CHECK violation.
    - ImmutabilityViolationError on an attempt to change a frozen field.

Audit relevance:
    Exhausted batches (remaining 0) stay until disposed, so the receipt
    history of an item remains visible.  A disposed batch is deleted and
    archived as a DisposalRecord.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class Batch(Base):
    """
    Persistent storage for one received batch.

    Guarantees:
        - (item_id, expiry_date, received_date) index supports
          earliest-expiry-first selection.

    Non-goals:
        - Aggregate stock is NOT stored; it is the sum of quantity_remaining.
    """

    __tablename__ = "batches"

    __table_args__ = (
        CheckConstraint("quantity_received > 0", name="ck_batch_received_positive"),
        CheckConstraint("quantity_remaining >= 0", name="ck_batch_remaining_nonneg"),
        CheckConstraint(
            "quantity_remaining <= quantity_received",
            name="ck_batch_remaining_le_received",
        ),
        CheckConstraint("unit_cost >= 0", name="ck_batch_unit_cost"),
        Index("idx_batch_item_expiry", "item_id", "expiry_date", "received_date"),
        Index("idx_batch_expiry", "expiry_date"),
    )

    batch_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    lot_number: Mapped[str | None] = mapped_column(String(100))
    item_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("inventory_items.item_id"), nullable=False
    )
    quantity_received: Mapped[int] = mapped_column(nullable=False)
    quantity_remaining: Mapped[int] = mapped_column(nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    received_date: Mapped[date] = mapped_column(Date, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    supplier: Mapped[str | None] = mapped_column(String(200))
    storage_location: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Batch {self.batch_number} item={self.item_id} "
            f"{self.quantity_remaining}/{self.quantity_received} exp={self.expiry_date}>"
        )
