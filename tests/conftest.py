"""
Pytest fixtures for the stock engine test suite.

Provides:
- A fresh database per test (SQLite in memory by default)
- A deterministic clock pinned to 2024-03-15 (a Friday)
- Service facades wired to that clock
- Item / batch factories
- Captured structured logs

Environment Variables:
- DATABASE_URL: connection URL for the test database.  Defaults to an
  in-memory SQLite database.  Point it at PostgreSQL to run the suite
  against the production dialect.
"""

import itertools
import json
import logging
import os
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from stock_config.schema import EngineConfig
from stock_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.dtos import ItemType
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_kernel.services.item_locks import ItemLockRegistry
from stock_services.analytics_service import AnalyticsService
from stock_services.inventory_service import InventoryService

TODAY = date(2024, 3, 15)

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as waiting on item or database locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture stock_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.add_batch(...)
            logs = captured_logs()
            assert any(r["message"] == "batch_added" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


def _build_database(database_url: str, **engine_kwargs):
    eng = init_engine_from_url(database_url, **engine_kwargs)
    drop_tables()
    create_tables()
    register_immutability_listeners()
    return eng


def _teardown_database() -> None:
    try:
        drop_tables()
    finally:
        reset_engine()


@pytest.fixture
def db_engine():
    """Engine with freshly created tables, dropped again after the test."""
    eng = _build_database(get_database_url())
    yield eng
    _teardown_database()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """A session on the per-test database.  Service commands commit it."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def threaded_session_factory(tmp_path):
    """
    Session factory for tests that run work on several threads.

    Uses a file-backed SQLite database so every thread gets its own
    connection (an in-memory database is a single shared connection).
    """
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'stock.db'}"
    _build_database(url, pool_size=20, max_overflow=10)
    yield get_session_factory()
    _teardown_database()


# =============================================================================
# Clock / config / services
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 3, 15, 9, 30, tzinfo=UTC))


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig.with_defaults()


@pytest.fixture
def lock_registry() -> ItemLockRegistry:
    return ItemLockRegistry()


@pytest.fixture
def service(session, clock, config, lock_registry) -> InventoryService:
    return InventoryService(session, clock=clock, config=config, lock_registry=lock_registry)


@pytest.fixture
def analytics(session, clock, config) -> AnalyticsService:
    return AnalyticsService(session, clock=clock, config=config)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def make_item(service):
    """Register a catalog item with sensible defaults."""

    def _make(
        item_id: str = "VAX-BCG",
        minimum_stock: int = 10,
        item_type: ItemType = ItemType.VACCINE,
        category: str = "Routine",
        unit_cost: Decimal | str = Decimal("2.50"),
        name: str | None = None,
    ):
        return service.register_item(
            item_id=item_id,
            name=name or f"{item_id} name",
            item_type=item_type,
            category=category,
            minimum_stock=minimum_stock,
            unit_cost=unit_cost,
        )

    return _make


@pytest.fixture
def make_batch(service, clock):
    """Receive a batch expiring ``expires_in`` days after the clock's today."""
    counter = itertools.count(1)

    def _make(
        item_id: str,
        quantity: int,
        expires_in: int = 90,
        batch_number: str | None = None,
        **kwargs,
    ):
        return service.add_batch(
            item_id=item_id,
            quantity_received=quantity,
            expiry_date=clock.today() + timedelta(days=expires_in),
            batch_number=batch_number or f"{item_id}-B{next(counter):03d}",
            **kwargs,
        )

    return _make
