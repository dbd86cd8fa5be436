"""Tests for runtime wiring from an EngineConfig."""

from datetime import UTC, date, datetime, timedelta

import pytest
from sqlalchemy import select

from stock_config.schema import EngineConfig
from stock_kernel.db.engine import reset_engine, session_scope
from stock_kernel.domain.clock import DeterministicClock, SimulatedClock
from stock_kernel.models import InventoryItem
from stock_services.inventory_service import InventoryService
from stock_services.runtime import start_runtime


@pytest.fixture
def runtime_config(tmp_path):
    return EngineConfig.from_dict({
        "database_url": f"sqlite:///{tmp_path / 'runtime.db'}",
        "simulated_date": "2024-07-01",
        "disposal_countdown_seconds": 2,
    })


@pytest.fixture
def runtime(runtime_config):
    base = DeterministicClock(datetime(2024, 3, 15, 9, 30, tzinfo=UTC))
    rt = start_runtime(runtime_config, base_clock=base)
    yield rt
    reset_engine()


class TestStartRuntime:

    def test_clock_follows_simulated_date(self, runtime):
        assert isinstance(runtime.clock, SimulatedClock)
        assert runtime.clock.today() == date(2024, 7, 1)

    def test_services_share_clock_and_config(self, runtime):
        session = runtime.session()
        try:
            inventory = runtime.inventory(session)
            workflow = runtime.disposal(session)

            assert inventory.clock is runtime.clock
            assert workflow.countdown_seconds == 2
        finally:
            session.close()

    def test_end_to_end_receive_and_report(self, runtime):
        session = runtime.session()
        try:
            inventory = runtime.inventory(session)
            inventory.register_item("BCG", "BCG vaccine", "vaccine", "Routine", minimum_stock=5)
            inventory.add_batch("BCG", 8, runtime.clock.today() + timedelta(days=3), "BCG-1")

            summary = runtime.analytics(session).inventory_summary()

            assert summary.total_units == 8
            assert summary.expiring_batches == 1
        finally:
            session.close()

    def test_started_event_logged(self, runtime_config, captured_logs):
        start_runtime(runtime_config, base_clock=DeterministicClock())
        try:
            event = [r for r in captured_logs() if r["message"] == "runtime_started"][-1]
            assert event["dialect"] == "sqlite"
            assert event["simulated_date"] == "2024-07-01"
        finally:
            reset_engine()


class TestSessionScope:

    def test_commits_on_success(self, db_engine, clock):
        with session_scope() as session:
            InventoryService(session, clock=clock).register_item("BCG", "BCG", "vaccine", "Routine")

        with session_scope() as session:
            assert session.execute(select(InventoryItem.item_id)).scalars().all() == ["BCG"]

    def test_rolls_back_and_reraises(self, db_engine):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(InventoryItem(item_id="OPV", name="OPV", item_type="vaccine", category="Routine"))
                session.flush()
                raise RuntimeError("abort")

        with session_scope() as session:
            assert session.execute(select(InventoryItem.item_id)).scalars().all() == []
