"""
CatalogService -- register and look up catalog items.

Responsibility:
    Writes InventoryItem rows on behalf of catalog administration and
    answers existence checks for the ledgers.  Items are never deleted:
    batches and usage history reference them, so retiring an item only
    clears ``is_active``.

Architecture position:
    Kernel > Services.  Flush-only, like every kernel service.

Failure modes:
    - ValidationError: blank id/name/category, unknown item type,
      negative minimum stock or unit cost, duplicate item id.
    - NotFoundError: unknown item id on lookup or deactivation.
    - InvalidStateError: deactivating an item that is already inactive.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from sqlalchemy import select

from stock_kernel.domain.dtos import ItemInfo, ItemType
from stock_kernel.exceptions import InvalidStateError, NotFoundError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.item import InventoryItem
from stock_kernel.services.base import BaseService

logger = get_logger("services.catalog")


class CatalogService(BaseService[InventoryItem]):
    """Catalog administration over ``inventory_items``."""

    def register_item(
        self,
        item_id: str,
        name: str,
        item_type: ItemType | str,
        category: str,
        minimum_stock: int = 0,
        unit_cost: Decimal | str | int = Decimal("0"),
        unit_of_measure: str = "unit",
        manufacturer: str | None = None,
        dosage_form: str | None = None,
        storage_temperature: str | None = None,
    ) -> ItemInfo:
        for field, value in (("item_id", item_id), ("name", name), ("category", category)):
            if not value or not str(value).strip():
                raise ValidationError(field, "must be provided")
        try:
            kind = ItemType(item_type)
        except ValueError:
            raise ValidationError("item_type", "unknown item type", item_type) from None
        if isinstance(minimum_stock, bool) or not isinstance(minimum_stock, int):
            raise ValidationError("minimum_stock", "must be a whole number", minimum_stock)
        if minimum_stock < 0:
            raise ValidationError("minimum_stock", "must not be negative", minimum_stock)
        try:
            cost = Decimal(str(unit_cost))
        except (InvalidOperation, ValueError):
            raise ValidationError("unit_cost", "not a number", unit_cost) from None
        if cost < 0:
            raise ValidationError("unit_cost", "must not be negative", unit_cost)

        if self.find(item_id) is not None:
            raise ValidationError("item_id", "already registered", item_id)

        model = InventoryItem(
            item_id=item_id,
            name=name,
            item_type=kind.value,
            category=category,
            unit_of_measure=unit_of_measure,
            minimum_stock=minimum_stock,
            unit_cost=cost,
            manufacturer=manufacturer,
            dosage_form=dosage_form,
            storage_temperature=storage_temperature,
            is_active=True,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "item_registered",
            extra={"item_id": item_id, "item_type": kind.value, "category": category},
        )
        return ItemInfo.from_model(model)

    def deactivate_item(self, item_id: str) -> ItemInfo:
        """Retire an item from the catalog.  Remaining batches stay usable."""
        model = self.find(item_id)
        if model is None:
            raise NotFoundError("InventoryItem", item_id)
        if not model.is_active:
            raise InvalidStateError(
                "inactive", "deactivate", f"item {item_id} is already inactive"
            )

        model.is_active = False
        self.session.flush()

        logger.info("item_deactivated", extra={"item_id": item_id})
        return ItemInfo.from_model(model)

    def find(self, item_id: str) -> InventoryItem | None:
        return self.session.execute(
            select(InventoryItem).where(InventoryItem.item_id == item_id)
        ).scalar_one_or_none()

    def get_item(self, item_id: str) -> ItemInfo:
        model = self.find(item_id)
        if model is None:
            raise NotFoundError("InventoryItem", item_id)
        return ItemInfo.from_model(model)
