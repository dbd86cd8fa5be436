"""
Runtime wiring (``stock_services.runtime``).

Responsibility:
    Turns an ``EngineConfig`` into a ready process: logging configured at
    the configured level, database engine and tables created, immutability
    listeners registered, and the clock every service should share.

Architecture position:
    Services -- composition root.  Hosts (a web app, a CLI, a test) call
    ``start_runtime()`` once and then build one service facade per
    session/unit of work.

Failure modes:
    - FileNotFoundError / ValueError from ``get_active_config()`` when no
      config is passed and the packaged set is unusable.
    - SQLAlchemy errors if the database is unreachable.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from stock_config import build_clock, get_active_config
from stock_config.schema import EngineConfig
from stock_kernel.db.engine import create_tables, get_session, init_engine_from_url
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.clock import Clock
from stock_kernel.logging_config import configure_logging, get_logger
from stock_services.analytics_service import AnalyticsService
from stock_services.disposal_workflow import DisposalWorkflow
from stock_services.inventory_service import InventoryService

logger = get_logger("services.runtime")


@dataclass(frozen=True)
class StockRuntime:
    """Process-wide handles shared by every service facade."""

    config: EngineConfig
    clock: Clock
    engine: Engine

    def session(self) -> Session:
        return get_session()

    def inventory(self, session: Session) -> InventoryService:
        return InventoryService(session, clock=self.clock, config=self.config)

    def analytics(self, session: Session) -> AnalyticsService:
        return AnalyticsService(session, clock=self.clock, config=self.config)

    def disposal(self, session: Session, **kwargs) -> DisposalWorkflow:
        return DisposalWorkflow(self.inventory(session), **kwargs)


def start_runtime(
    config: EngineConfig | None = None,
    base_clock: Clock | None = None,
) -> StockRuntime:
    """Initialise logging, database and clock from ``config`` (default: packaged set)."""
    config = config or get_active_config()
    configure_logging(level=config.log_level.upper(), fmt=config.log_format)

    engine = init_engine_from_url(config.database_url)
    create_tables()
    register_immutability_listeners()

    clock = build_clock(config, base_clock)
    logger.info(
        "runtime_started",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "dialect": engine.dialect.name,
            "simulated_date": config.simulated_date,
        },
    )
    return StockRuntime(config=config, clock=clock, engine=engine)
