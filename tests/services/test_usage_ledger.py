"""
Tests for the usage ledger.

Covers:
- Single and multi-line entries and their recorded debits
- All-or-nothing rollback with the failing line identified
- Date validation (future dates, missing dates)
- Line validation
- Reads
"""

from datetime import datetime, timedelta

import pytest

from stock_kernel.domain.dtos import UsageLineSpec
from stock_kernel.exceptions import (
    FutureDateError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)


class TestLogUsage:

    def test_single_line(self, service, make_item, make_batch, clock):
        make_item("BCG")
        batch = make_batch("BCG", 20)

        entry = service.log_usage(clock.today(), [{"item_id": "BCG", "quantity": 3}], notes="clinic day")

        assert entry.usage_date == clock.today()
        assert entry.notes == "clinic day"
        assert [(line.item_id, line.quantity) for line in entry.lines] == [("BCG", 3)]
        assert [(d.batch_id, d.quantity) for d in entry.debits] == [(batch.batch_id, 3)]
        assert service.aggregate_stock("BCG") == 17

    def test_line_spanning_batches_records_each_debit(self, service, make_item, make_batch, clock):
        make_item("BCG")
        first = make_batch("BCG", 2, expires_in=3)
        second = make_batch("BCG", 10, expires_in=40)

        entry = service.log_usage(clock.today(), [UsageLineSpec(item_id="BCG", quantity=5)])

        assert [(d.line_index, d.batch_id, d.quantity) for d in entry.debits] == [
            (0, first.batch_id, 2),
            (0, second.batch_id, 3),
        ]
        assert sum(d.quantity for d in entry.debits) == entry.lines[0].quantity

    def test_multi_line_entry(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_item("PCM")
        make_batch("BCG", 10)
        make_batch("PCM", 10)

        entry = service.log_usage(
            clock.today(),
            [{"item_id": "BCG", "quantity": 1}, {"item_id": "PCM", "quantity": 4}],
        )

        assert entry.total_quantity == 5
        assert entry.quantity_for("PCM") == 4
        assert service.aggregate_stock("BCG") == 9
        assert service.aggregate_stock("PCM") == 6

    def test_same_item_on_two_lines(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 5)

        service.log_usage(
            clock.today(),
            [{"item_id": "BCG", "quantity": 2}, {"item_id": "BCG", "quantity": 3}],
        )

        assert service.aggregate_stock("BCG") == 0

    def test_explicit_batch_line(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 5, expires_in=5)
        late = make_batch("BCG", 5, expires_in=50)

        entry = service.log_usage(
            clock.today(),
            [{"item_id": "BCG", "quantity": 2, "batch_id": str(late.batch_id)}],
        )

        assert entry.lines[0].batch_id == late.batch_id
        assert service.get_batch(late.batch_id).quantity_remaining == 3

    def test_past_date_accepted(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 5)
        entry = service.log_usage(clock.today() - timedelta(days=40), [{"item_id": "BCG", "quantity": 1}])
        assert entry.usage_date == clock.today() - timedelta(days=40)

    def test_datetime_usage_date_truncated(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 5)
        entry = service.log_usage(
            datetime(2024, 3, 15, 8, 0), [{"item_id": "BCG", "quantity": 1}]
        )
        assert entry.usage_date == clock.today()

    def test_logged_event(self, service, make_item, make_batch, clock, captured_logs):
        make_item("BCG")
        make_batch("BCG", 5)
        entry = service.log_usage(clock.today(), [{"item_id": "BCG", "quantity": 2}])

        event = [r for r in captured_logs() if r["message"] == "usage_logged"][-1]
        assert event["entry_id"] == str(entry.entry_id)
        assert event["total_quantity"] == 2


class TestAtomicity:

    def test_second_line_short_rolls_back_first(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_item("PCM")
        make_batch("BCG", 10)
        make_batch("PCM", 2)

        with pytest.raises(InsufficientStockError) as exc_info:
            service.log_usage(
                clock.today(),
                [{"item_id": "BCG", "quantity": 4}, {"item_id": "PCM", "quantity": 3}],
            )

        assert exc_info.value.line_index == 1
        assert exc_info.value.item_id == "PCM"
        assert service.aggregate_stock("BCG") == 10
        assert service.aggregate_stock("PCM") == 2
        assert service.usage_between(clock.today(), clock.today()) == []

    def test_unknown_item_on_a_line(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 10)

        with pytest.raises(NotFoundError) as exc_info:
            service.log_usage(
                clock.today(),
                [{"item_id": "BCG", "quantity": 1}, {"item_id": "GHOST", "quantity": 1}],
            )

        assert exc_info.value.line_index == 1
        assert service.aggregate_stock("BCG") == 10

    def test_line_pinned_to_disposed_batch(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 3)
        gone = make_batch("BCG", 5, expires_in=-1)
        service.dispose_batch(gone.batch_id)

        with pytest.raises(NotFoundError) as exc_info:
            service.log_usage(
                clock.today(),
                [{"item_id": "BCG", "quantity": 5, "batch_id": str(gone.batch_id)}],
            )

        assert exc_info.value.line_index == 0
        assert service.aggregate_stock("BCG") == 3

    def test_error_payload_carries_line(self, service, make_item, clock):
        make_item("BCG")
        with pytest.raises(InsufficientStockError) as exc_info:
            service.log_usage(clock.today(), [{"item_id": "BCG", "quantity": 1}])

        payload = exc_info.value.as_dict()
        assert payload["code"] == "INSUFFICIENT_STOCK"
        assert payload["line_index"] == 0

    def test_rollback_is_logged(self, service, make_item, clock, captured_logs):
        make_item("BCG")
        with pytest.raises(InsufficientStockError):
            service.log_usage(clock.today(), [{"item_id": "BCG", "quantity": 1}])

        events = [r for r in captured_logs() if r["message"] == "inventory_command_rolled_back"]
        assert events[-1]["command"] == "log_usage"
        assert events[-1]["line_index"] == 0


class TestValidation:

    def test_future_date_rejected(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 5)
        with pytest.raises(FutureDateError):
            service.log_usage(clock.today() + timedelta(days=1), [{"item_id": "BCG", "quantity": 1}])
        assert service.aggregate_stock("BCG") == 5

    def test_today_is_not_future(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 5)
        service.log_usage(clock.today(), [{"item_id": "BCG", "quantity": 1}])

    def test_missing_date(self, service, make_item):
        make_item("BCG")
        with pytest.raises(ValidationError) as exc_info:
            service.log_usage(None, [{"item_id": "BCG", "quantity": 1}])
        assert exc_info.value.field == "usage_date"

    @pytest.mark.parametrize("items", [[], None])
    def test_empty_items(self, service, clock, items):
        with pytest.raises(ValidationError) as exc_info:
            service.log_usage(clock.today(), items)
        assert exc_info.value.field == "items"

    def test_bad_quantity_identifies_line(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 5)
        with pytest.raises(ValidationError) as exc_info:
            service.log_usage(
                clock.today(),
                [{"item_id": "BCG", "quantity": 1}, {"item_id": "BCG", "quantity": 0}],
            )
        assert exc_info.value.line_index == 1
        assert exc_info.value.field == "quantity"
        assert service.aggregate_stock("BCG") == 5


class TestReads:

    def test_get_entry(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 5)
        entry = service.log_usage(clock.today(), [{"item_id": "BCG", "quantity": 1}])

        fetched = service.get_usage_entry(entry.entry_id)

        assert fetched.entry_id == entry.entry_id
        assert fetched.lines == entry.lines

    def test_entries_between_inclusive(self, service, make_item, make_batch, clock):
        make_item("BCG")
        make_batch("BCG", 10)
        for offset in (0, 1, 5):
            service.log_usage(clock.today() - timedelta(days=offset), [{"item_id": "BCG", "quantity": 1}])

        entries = service.usage_between(clock.today() - timedelta(days=1), clock.today())

        assert len(entries) == 2
        assert entries[0].usage_date < entries[1].usage_date

    def test_inverted_range(self, service, clock):
        with pytest.raises(ValidationError):
            service.usage_between(clock.today(), clock.today() - timedelta(days=1))
