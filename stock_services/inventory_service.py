"""
Inventory Service (``stock_services.inventory_service``).

Responsibility
--------------
Command/query facade over the kernel ledgers.  Every mutating call runs
as one database transaction while holding the per-item locks of every
item it touches; reads go straight to selectors and pure engines.

Architecture
------------
Layer: **Services** -- stateful orchestration wrapper.

1. ``CatalogService`` for item registration.
2. ``BatchLedger`` for receive / debit / remove.
3. ``UsageLedger`` for multi-line usage entries.
4. ``stock_engines`` for stock health and expiry classification.

Invariants
----------
- Each public command owns its transaction boundary: commit on success,
  rollback on any exception, then re-raise.  Kernel services only flush.
- Item locks are held from the first read of the command until after
  commit/rollback, so a stock check can never be invalidated by a
  concurrent debit or disposal on the same item.
- A usage entry is all-or-nothing: a failing line rolls back every debit
  of the entry and the raised error carries ``line_index``.

Failure Modes
-------------
- Typed ``StockEngineError`` subclasses from the ledgers propagate
  unchanged after rollback.
- Database errors propagate after rollback.

Usage::

    service = InventoryService(session, clock=clock, config=config)
    service.register_item("BCG", "BCG vaccine", ItemType.VACCINE, "Routine", minimum_stock=10)
    batch = service.add_batch("BCG", 20, expiry_date=today + timedelta(days=5), batch_number="B-1")
    service.log_usage(today, [{"item_id": "BCG", "quantity": 15}])
    service.aggregate_stock("BCG")      # 5
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from stock_config.schema import EngineConfig
from stock_engines.expiry import (
    ExpiryWindows,
    bucket_by_risk,
    classify_expiry,
    days_until_expiry,
)
from stock_engines.stock_classifier import StockLevel, availability_status, classify
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    BatchInfo,
    DebitAllocation,
    DisposalRecordInfo,
    ExpiryRisk,
    ItemInfo,
    ItemType,
    StockHealth,
    UsageEntryInfo,
)
from stock_kernel.exceptions import NotFoundError, ValidationError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.services.batch_ledger import BatchLedger
from stock_kernel.services.catalog_service import CatalogService
from stock_kernel.services.item_locks import ItemLockRegistry, default_lock_registry
from stock_kernel.services.usage_ledger import LineInput, UsageLedger, normalize_lines

logger = get_logger("services.inventory")

T = TypeVar("T")


class InventoryService:
    """
    Orchestrates stock operations through the kernel ledgers.

    Contract
    --------
    Accepts a session owned by the caller's unit of work (one per thread
    or request).  Commands commit that session; the caller must not hold
    uncommitted work in it.

    Guarantees
    ----------
    - ``aggregate_stock`` always equals the sum of remaining quantity
      over the item's live batches.
    - No command leaves a partially applied change behind.

    Non-goals
    ---------
    - Does NOT decide whether a batch may be disposed; that is
      ``DisposalWorkflow``'s job.  ``dispose_batch`` trusts the caller.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        lock_registry: ItemLockRegistry | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or EngineConfig.with_defaults()
        self._locks = lock_registry or default_lock_registry()
        self._windows = ExpiryWindows(
            critical_days=self._config.critical_window_days,
            warning_days=self._config.warning_window_days,
        )

        self._catalog = CatalogService(session)
        self._batches = BatchLedger(session, self._clock)
        self._usage = UsageLedger(session, self._batches, self._clock)
        self._selector = InventorySelector(session)

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def session(self) -> Session:
        return self._session

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    def _command(self, name: str, item_ids: Iterable[str], action: Callable[[], T]) -> T:
        with self._locks.hold(item_ids) as held:
            try:
                result = action()
                self._session.commit()
            except Exception as exc:
                self._session.rollback()
                logger.warning(
                    "inventory_command_rolled_back",
                    extra={
                        "command": name,
                        "item_ids": list(held),
                        "error_type": type(exc).__name__,
                        "error_code": getattr(exc, "code", None),
                        "line_index": getattr(exc, "line_index", None),
                    },
                )
                raise
        return result

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

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
        return self._command(
            "register_item",
            [item_id],
            lambda: self._catalog.register_item(
                item_id=item_id,
                name=name,
                item_type=item_type,
                category=category,
                minimum_stock=minimum_stock,
                unit_cost=unit_cost,
                unit_of_measure=unit_of_measure,
                manufacturer=manufacturer,
                dosage_form=dosage_form,
                storage_temperature=storage_temperature,
            ),
        )

    def get_item(self, item_id: str) -> ItemInfo:
        return self._catalog.get_item(item_id)

    def deactivate_item(self, item_id: str) -> ItemInfo:
        with LogContext.bind(item_id=item_id):
            return self._command(
                "deactivate_item",
                [item_id],
                lambda: self._catalog.deactivate_item(item_id),
            )

    def list_items(
        self,
        item_type: ItemType | None = None,
        include_inactive: bool = False,
    ) -> list[ItemInfo]:
        return self._selector.items(item_type, include_inactive=include_inactive)

    # ------------------------------------------------------------------
    # Batch ledger commands
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
        with LogContext.bind(item_id=item_id):
            return self._command(
                "add_batch",
                [item_id],
                lambda: self._batches.add_batch(
                    item_id=item_id,
                    quantity_received=quantity_received,
                    expiry_date=expiry_date,
                    batch_number=batch_number,
                    lot_number=lot_number,
                    unit_cost=unit_cost,
                    supplier=supplier,
                    received_date=received_date,
                    storage_location=storage_location,
                    notes=notes,
                ),
            )

    def debit(
        self,
        item_id: str,
        quantity: int,
        batch_id: UUID | None = None,
    ) -> list[DebitAllocation]:
        """Stand-alone debit outside a usage entry (e.g. stock correction)."""
        with LogContext.bind(item_id=item_id):
            return self._command(
                "debit",
                [item_id],
                lambda: self._batches.debit(item_id, quantity, batch_id),
            )

    def dispose_batch(
        self,
        batch_id: UUID,
        disposed_by: str | None = None,
    ) -> DisposalRecordInfo:
        """
        Remove a batch and archive it.

        Raises:
            NotFoundError: the batch does not exist (or was already removed).
        """
        batch = self._selector.find_batch(batch_id)
        if batch is None:
            raise NotFoundError("Batch", str(batch_id))
        with LogContext.bind(item_id=batch.item_id, batch_id=str(batch_id)):
            return self._command(
                "dispose_batch",
                [batch.item_id],
                lambda: self._batches.remove_batch(batch_id, disposed_by=disposed_by),
            )

    # ------------------------------------------------------------------
    # Usage ledger
    # ------------------------------------------------------------------

    def log_usage(
        self,
        usage_date: date,
        items: Sequence[LineInput],
        notes: str | None = None,
    ) -> UsageEntryInfo:
        """
        Record one usage entry, debiting every line or none of them.

        Raises:
            ValidationError: empty or malformed lines.
            FutureDateError: usage_date after today.
            InsufficientStockError / NotFoundError: with ``line_index`` of
                the failing line; no debit of the entry is kept.
        """
        specs = normalize_lines(items)
        return self._command(
            "log_usage",
            [s.item_id for s in specs],
            lambda: self._usage.log_usage(usage_date, specs, notes),
        )

    def get_usage_entry(self, entry_id: UUID) -> UsageEntryInfo:
        return self._usage.get_entry(entry_id)

    def usage_between(self, start: date, end: date) -> list[UsageEntryInfo]:
        if end < start:
            raise ValidationError("end", "must not be before start", end)
        return self._usage.entries_between(start, end)

    # ------------------------------------------------------------------
    # Stock queries
    # ------------------------------------------------------------------

    def aggregate_stock(self, item_id: str) -> int:
        return self._batches.aggregate_stock(item_id)

    def get_batch(self, batch_id: UUID) -> BatchInfo:
        return self._batches.get_batch(batch_id)

    def batches_for_item(self, item_id: str) -> list[BatchInfo]:
        self._catalog.get_item(item_id)
        return self._batches.batches_for_item(item_id)

    def classify_stock(self, item_id: str) -> StockHealth:
        item = self._catalog.get_item(item_id)
        return classify(self.aggregate_stock(item_id), item.minimum_stock)

    def stock_level(self, item_id: str) -> StockLevel:
        item = self._catalog.get_item(item_id)
        current = self.aggregate_stock(item_id)
        return StockLevel(
            item_id=item_id,
            current_stock=current,
            minimum_stock=item.minimum_stock,
            health=classify(current, item.minimum_stock),
            availability=availability_status(current, item.minimum_stock),
        )

    def disposal_records(self, item_id: str | None = None) -> list[DisposalRecordInfo]:
        return self._selector.disposal_records(item_id)

    # ------------------------------------------------------------------
    # Expiry monitor
    # ------------------------------------------------------------------

    def classify_expiry(self, batch_id: UUID) -> ExpiryRisk:
        batch = self.get_batch(batch_id)
        return classify_expiry(batch.expiry_date, self._clock.today(), self._windows)

    def days_until_expiry(self, batch_id: UUID) -> int:
        batch = self.get_batch(batch_id)
        return days_until_expiry(batch.expiry_date, self._clock.today())

    def list_expiring(self, window_days: int | None = None) -> list[BatchInfo]:
        """Live batches expiring in ``[today, today + window_days]``, soonest first."""
        days = self._config.expiring_window_days if window_days is None else window_days
        if isinstance(days, bool) or not isinstance(days, int) or days < 0:
            raise ValidationError("window_days", "must be a non-negative whole number", days)
        today = self._clock.today()
        return self._selector.batches_expiring_between(today, today + timedelta(days=days))

    def list_expired(self) -> list[BatchInfo]:
        return self._selector.batches_expired_before(self._clock.today())

    def expiry_buckets(self, item_type: ItemType | None = None) -> dict[ExpiryRisk, list[BatchInfo]]:
        return bucket_by_risk(
            batches=self._selector.batches(item_type),
            today=self._clock.today(),
            windows=self._windows,
        )

    def expiring_items(self, window_days: int | None = None) -> list[ItemInfo]:
        """Items owning at least one batch in the expiring window."""
        item_ids = {b.item_id for b in self.list_expiring(window_days)}
        return [i for i in self._selector.items(include_inactive=True) if i.item_id in item_ids]

    def describe_batch(self, batch_id: UUID) -> dict[str, Any]:
        """Batch with its derived figures, as shown on a batch detail view."""
        batch = self.get_batch(batch_id)
        today = self._clock.today()
        return {
            **batch.snapshot(),
            "quantity_used": batch.quantity_used,
            "usage_percentage": batch.usage_percentage,
            "days_until_expiry": batch.days_until_expiry(today),
            "expiry_risk": classify_expiry(batch.expiry_date, today, self._windows).value,
            "is_exhausted": batch.is_exhausted,
        }
