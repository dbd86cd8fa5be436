"""
Engine Configuration Schema (``stock_config.schema``).

Defines the structure and defaults for the stock engine's runtime
settings.  Values come from a YAML configuration set loaded by
``stock_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import date
from typing import Any, Self

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
VALID_LOG_FORMATS = {"json", "text"}


@dataclass(frozen=True)
class EngineConfig:
    """
    Runtime configuration for the stock engine.

    Field defaults mirror the clinic application's observed behaviour:
    a five-second disposal countdown, a seven-day critical expiry window,
    and a thirty-day warning / "expiring soon" window.

    ``simulated_date`` pins the operator clock to a calendar day; leave it
    unset in production.
    """

    config_id: str = "default"
    version: int = 1
    database_url: str = "sqlite:///clinic_stock.db"
    log_level: str = "INFO"
    log_format: str = "json"

    # Disposal workflow
    disposal_countdown_seconds: float = 5

    # Expiry monitor
    critical_window_days: int = 7
    warning_window_days: int = 30
    expiring_window_days: int = 30

    # Analytics
    top_usage_limit: int = 10
    top_suppliers_limit: int = 5

    # Clock
    simulated_date: date | None = None

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url must be provided")
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got '{self.log_level}'"
            )
        if self.log_format not in VALID_LOG_FORMATS:
            raise ValueError(
                f"log_format must be one of {sorted(VALID_LOG_FORMATS)}, got '{self.log_format}'"
            )
        if self.disposal_countdown_seconds <= 0:
            raise ValueError("disposal_countdown_seconds must be positive")
        if self.critical_window_days < 0:
            raise ValueError("critical_window_days cannot be negative")
        if self.warning_window_days < self.critical_window_days:
            raise ValueError(
                f"warning_window_days ({self.warning_window_days}) cannot be less than "
                f"critical_window_days ({self.critical_window_days})"
            )
        if self.expiring_window_days < 0:
            raise ValueError("expiring_window_days cannot be negative")
        if self.top_usage_limit <= 0:
            raise ValueError("top_usage_limit must be positive")
        if self.top_suppliers_limit <= 0:
            raise ValueError("top_suppliers_limit must be positive")

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build from a parsed mapping.  Unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown engine config keys: {sorted(unknown)}")
        values = dict(data)
        raw_date = values.get("simulated_date")
        if isinstance(raw_date, str):
            values["simulated_date"] = date.fromisoformat(raw_date)
        elif raw_date is not None and not isinstance(raw_date, date):
            raise ValueError(f"Cannot parse simulated_date from {raw_date!r}")
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
