"""
stock_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``, plus ``build_clock()`` which turns the
    configured simulated date (if any) into the Clock every service
    receives.

Architecture position:
    Configuration -- sits above ``stock_kernel`` and below
    ``stock_services``.  The kernel MUST NEVER import from ``stock_config``.

Failure modes:
    - ``FileNotFoundError`` -- configuration file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCK_CONFIG_TRACE`` log entry with the config id, version, source
    path and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from stock_config.loader import compute_checksum, load_yaml_file, parse_engine_config
from stock_config.schema import EngineConfig
from stock_kernel.domain.clock import Clock, SimulatedClock, SystemClock

_logger = logging.getLogger("stock_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file does not describe a valid EngineConfig.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)
    config = parse_engine_config(data)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "config_path": str(path),
            "checksum": compute_checksum(data),
            "simulated_date": config.simulated_date,
        },
    )
    return config


def build_clock(config: EngineConfig, base: Clock | None = None) -> Clock:
    """SimulatedClock when a simulated date is configured, else the base clock."""
    base_clock = base or SystemClock()
    if config.simulated_date is not None:
        return SimulatedClock(config.simulated_date, base=base_clock)
    return base_clock


__all__ = [
    "EngineConfig",
    "build_clock",
    "get_active_config",
]
