"""
Module: stock_kernel.models.disposal
Responsibility: ORM persistence for disposal records -- the archive left
    behind when an expired batch is removed from the ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only (db/immutability.py).
    - batch_number is unique, so a disposed number cannot be received again.
    - batch_snapshot holds the full batch as it stood at disposal.

Audit relevance:
    Disposal is irreversible.  The record is the only trace of the batch
    after removal.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class DisposalRecord(Base):
    """Archive of one removed batch."""

    __tablename__ = "disposal_records"

    __table_args__ = (
        Index("idx_disposal_item", "item_id"),
        Index("idx_disposal_disposed_at", "disposed_at"),
    )

    batch_id: Mapped[UUID] = mapped_column(UUIDString(), unique=True, nullable=False)
    item_id: Mapped[str] = mapped_column(String(50), nullable=False)
    batch_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    quantity_disposed: Mapped[int] = mapped_column(nullable=False)
    batch_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    disposed_at: Mapped[datetime] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False, default="expired")
    disposed_by: Mapped[str | None] = mapped_column(String(100))

    def __repr__(self) -> str:
        return f"<DisposalRecord batch={self.batch_number} qty={self.quantity_disposed}>"
