"""
Module: stock_kernel.models.item
Responsibility: ORM persistence for catalog items (vaccines, medications,
    medical supplies).  Every batch references exactly one item.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - item_id (the catalog code, e.g. "BCG") is unique.
    - minimum_stock >= 0 and unit_cost >= 0 (CHECK constraints).

Failure modes:
    - IntegrityError on duplicate item_id.

Audit relevance:
    Items are read-mostly reference data.  They are never deleted while
    batches or usage history reference them.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class InventoryItem(TrackedBase):
    """
    Catalog entry.

    Contract:
        ``item_id`` is the business key every other table references.
        ``item_type`` holds an ``ItemType`` value.

    Non-goals:
        - Stock is NOT stored here; it is derived from live batches.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        CheckConstraint("minimum_stock >= 0", name="ck_item_minimum_stock"),
        CheckConstraint("unit_cost >= 0", name="ck_item_unit_cost"),
        Index("idx_item_type_category", "item_type", "category"),
    )

    item_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_of_measure: Mapped[str] = mapped_column(String(30), nullable=False, default="unit")
    minimum_stock: Mapped[int] = mapped_column(nullable=False, default=0)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    manufacturer: Mapped[str | None] = mapped_column(String(200))
    dosage_form: Mapped[str | None] = mapped_column(String(100))
    storage_temperature: Mapped[str | None] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<InventoryItem {self.item_id} ({self.item_type}/{self.category})>"
