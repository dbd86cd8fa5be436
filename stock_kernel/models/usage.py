"""
Module: stock_kernel.models.usage
Responsibility: ORM persistence for the usage ledger: one UsageEntry per
    consumption event, its requested lines, and the per-batch debits the
    batch ledger applied for each line.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    U1 -- Entries, lines and debits are append-only (db/immutability.py).
    U2 -- For every line, the debits with that line_index sum to the line's
          quantity (written together in one flush by the usage ledger).
    U3 -- debit batch_id is a plain column, not a foreign key: batches are
          deleted on disposal but usage history must survive.

Audit relevance:
    The usage ledger is the only source for usage analytics.  Corrections
    are new entries; nothing is rewritten.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, UUIDString


class UsageEntry(Base):
    """One consumption event, dated by the operator."""

    __tablename__ = "usage_entries"

    __table_args__ = (Index("idx_usage_entry_date", "usage_date"),)

    usage_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    lines: Mapped[list[UsageLine]] = relationship(
        back_populates="entry",
        order_by="UsageLine.line_index",
        lazy="selectin",
    )
    debits: Mapped[list[UsageDebit]] = relationship(
        back_populates="entry",
        order_by="(UsageDebit.line_index, UsageDebit.sequence)",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<UsageEntry {self.id} date={self.usage_date} lines={len(self.lines)}>"


class UsageLine(Base):
    """A requested line of a usage entry."""

    __tablename__ = "usage_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_usage_line_quantity"),
        Index("idx_usage_line_item", "item_id"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("usage_entries.id"), nullable=False
    )
    line_index: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("inventory_items.item_id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(nullable=False)
    batch_id: Mapped[UUID | None] = mapped_column(UUIDString())

    entry: Mapped[UsageEntry] = relationship(back_populates="lines")


class UsageDebit(Base):
    """A slice of a line debited from one batch."""

    __tablename__ = "usage_debits"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_usage_debit_quantity"),
        Index("idx_usage_debit_batch", "batch_id"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("usage_entries.id"), nullable=False
    )
    line_index: Mapped[int] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[str] = mapped_column(String(50), nullable=False)
    batch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)

    entry: Mapped[UsageEntry] = relationship(back_populates="debits")
