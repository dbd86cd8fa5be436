"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow between the ledgers,
    the pure engines and the service facade: catalog items, batches,
    usage lines/entries, debit allocations and disposal records.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods exist as boundary converters but are
    only invoked from services and selectors (never from engine logic).

Invariants enforced:
    - Services and selectors return DTOs, never live ORM instances.
    - ``BatchInfo`` satisfies ``0 <= quantity_remaining <= quantity_received``.
    - ``UsageLineSpec.quantity`` is a positive integer.

Failure modes:
    - ValidationError from ``UsageLineSpec`` for non-positive or non-integer
      quantities.

Audit relevance:
    ``DisposalRecordInfo.batch_snapshot`` preserves the batch exactly as it
    stood at disposal, after the batch row itself is gone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

from stock_kernel.exceptions import ValidationError

if TYPE_CHECKING:
    from stock_kernel.models.batch import Batch as BatchModel
    from stock_kernel.models.disposal import DisposalRecord as DisposalRecordModel
    from stock_kernel.models.item import InventoryItem as InventoryItemModel
    from stock_kernel.models.usage import UsageEntry as UsageEntryModel


class ItemType(str, Enum):
    """Catalog families tracked by the clinic."""

    VACCINE = "vaccine"
    MEDICATION = "medication"
    SUPPLY = "supply"


class StockHealth(str, Enum):
    """Ratio-based health of an item's aggregate stock."""

    CRITICAL = "critical"
    LOW = "low"
    MEDIUM = "medium"
    GOOD = "good"


class AvailabilityStatus(str, Enum):
    """Catalog status label shown next to an item."""

    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    AVAILABLE = "available"


class ExpiryRisk(str, Enum):
    """Date-only expiry classification of a batch."""

    EXPIRED = "expired"
    CRITICAL_7D = "critical_7d"
    WARNING_30D = "warning_30d"
    OK = "ok"


class TrendBucket(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True)
class ItemInfo:
    """Read-only view of a catalog item."""

    item_id: str
    name: str
    item_type: ItemType
    category: str
    unit_of_measure: str
    minimum_stock: int
    unit_cost: Decimal
    manufacturer: str | None = None
    dosage_form: str | None = None
    storage_temperature: str | None = None
    is_active: bool = True

    @classmethod
    def from_model(cls, model: InventoryItemModel) -> ItemInfo:
        return cls(
            item_id=model.item_id,
            name=model.name,
            item_type=ItemType(model.item_type),
            category=model.category,
            unit_of_measure=model.unit_of_measure,
            minimum_stock=model.minimum_stock,
            unit_cost=Decimal(model.unit_cost),
            manufacturer=model.manufacturer,
            dosage_form=model.dosage_form,
            storage_temperature=model.storage_temperature,
            is_active=model.is_active,
        )


@dataclass(frozen=True)
class BatchInfo:
    """
    Read-only view of one received batch.

    Guarantees:
        - ``0 <= quantity_remaining <= quantity_received``.
        - Derived figures are computed, never stored.
    """

    batch_id: UUID
    batch_number: str
    item_id: str
    quantity_received: int
    quantity_remaining: int
    expiry_date: date
    received_date: date
    unit_cost: Decimal
    lot_number: str | None = None
    supplier: str | None = None
    storage_location: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.quantity_remaining <= self.quantity_received:
            raise ValueError(
                f"Batch {self.batch_number}: remaining {self.quantity_remaining} "
                f"outside [0, {self.quantity_received}]"
            )

    @property
    def quantity_used(self) -> int:
        return self.quantity_received - self.quantity_remaining

    @property
    def usage_percentage(self) -> int:
        """Share of the receipt already consumed, rounded half-up."""
        pct = Decimal(self.quantity_used * 100) / Decimal(self.quantity_received)
        return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @property
    def is_exhausted(self) -> bool:
        return self.quantity_remaining == 0

    @property
    def remaining_value(self) -> Decimal:
        return self.unit_cost * self.quantity_remaining

    def days_until_expiry(self, today: date) -> int:
        return (self.expiry_date - today).days

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe dict used to archive the batch on disposal."""
        return {
            "batch_id": str(self.batch_id),
            "batch_number": self.batch_number,
            "item_id": self.item_id,
            "lot_number": self.lot_number,
            "quantity_received": self.quantity_received,
            "quantity_remaining": self.quantity_remaining,
            "expiry_date": self.expiry_date.isoformat(),
            "received_date": self.received_date.isoformat(),
            "unit_cost": str(self.unit_cost),
            "supplier": self.supplier,
            "storage_location": self.storage_location,
            "notes": self.notes,
        }

    @classmethod
    def from_model(cls, model: BatchModel) -> BatchInfo:
        return cls(
            batch_id=model.id,
            batch_number=model.batch_number,
            item_id=model.item_id,
            quantity_received=model.quantity_received,
            quantity_remaining=model.quantity_remaining,
            expiry_date=model.expiry_date,
            received_date=model.received_date,
            unit_cost=Decimal(model.unit_cost),
            lot_number=model.lot_number,
            supplier=model.supplier,
            storage_location=model.storage_location,
            notes=model.notes,
        )


@dataclass(frozen=True)
class DebitAllocation:
    """One slice of a debit applied to a single batch."""

    batch_id: UUID
    quantity: int


@dataclass(frozen=True)
class UsageLineSpec:
    """A requested usage line: consume ``quantity`` of ``item_id``."""

    item_id: str
    quantity: int
    batch_id: UUID | None = None

    def __post_init__(self) -> None:
        if not self.item_id:
            raise ValidationError("item_id", "must be provided")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValidationError(
                "quantity", "must be a whole number", self.quantity
            )
        if self.quantity <= 0:
            raise ValidationError("quantity", "must be positive", self.quantity)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> UsageLineSpec:
        """Build from a ``{item_id, quantity, batch_id?}`` mapping."""
        if "item_id" not in data:
            raise ValidationError("item_id", "must be provided")
        if "quantity" not in data:
            raise ValidationError("quantity", "must be provided")
        batch_id = data.get("batch_id")
        if batch_id is not None and not isinstance(batch_id, UUID):
            try:
                batch_id = UUID(str(batch_id))
            except ValueError:
                raise ValidationError("batch_id", "not a valid identifier", batch_id)
        return cls(item_id=data["item_id"], quantity=data["quantity"], batch_id=batch_id)


@dataclass(frozen=True)
class UsageDebitInfo:
    line_index: int
    item_id: str
    batch_id: UUID
    quantity: int


@dataclass(frozen=True)
class UsageEntryInfo:
    """Immutable record of one consumption event."""

    entry_id: UUID
    usage_date: date
    lines: tuple[UsageLineSpec, ...]
    debits: tuple[UsageDebitInfo, ...]
    recorded_at: datetime
    notes: str | None = None

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    def quantity_for(self, item_id: str) -> int:
        return sum(line.quantity for line in self.lines if line.item_id == item_id)

    @classmethod
    def from_model(cls, model: UsageEntryModel) -> UsageEntryInfo:
        lines = tuple(
            UsageLineSpec(item_id=l.item_id, quantity=l.quantity, batch_id=l.batch_id)
            for l in sorted(model.lines, key=lambda l: l.line_index)
        )
        debits = tuple(
            UsageDebitInfo(
                line_index=d.line_index,
                item_id=d.item_id,
                batch_id=d.batch_id,
                quantity=d.quantity,
            )
            for d in sorted(model.debits, key=lambda d: (d.line_index, d.sequence))
        )
        return cls(
            entry_id=model.id,
            usage_date=model.usage_date,
            lines=lines,
            debits=debits,
            recorded_at=model.recorded_at,
            notes=model.notes,
        )


@dataclass(frozen=True)
class DisposalRecordInfo:
    """Archive of a batch removed as expired."""

    disposal_id: UUID
    batch_id: UUID
    item_id: str
    batch_number: str
    quantity_disposed: int
    disposed_at: datetime
    reason: str
    batch_snapshot: Mapping[str, Any] = field(default_factory=dict)
    disposed_by: str | None = None

    @classmethod
    def from_model(cls, model: DisposalRecordModel) -> DisposalRecordInfo:
        return cls(
            disposal_id=model.id,
            batch_id=model.batch_id,
            item_id=model.item_id,
            batch_number=model.batch_number,
            quantity_disposed=model.quantity_disposed,
            disposed_at=model.disposed_at,
            reason=model.reason,
            batch_snapshot=MappingProxyType(dict(model.batch_snapshot or {})),
            disposed_by=model.disposed_by,
        )
