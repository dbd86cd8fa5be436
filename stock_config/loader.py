"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``EngineConfig`` dataclass.  Build/test tooling: runtime callers go
through ``stock_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Top level not a mapping, unknown keys, bad values -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import EngineConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML is empty).
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")
    return data


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Parse the ``engine`` section (or a flat mapping) into ``EngineConfig``.

    The file may carry ``config_id`` / ``version`` at the top level next to
    an ``engine:`` block.
    """
    section = dict(data.get("engine", data))
    for key in ("config_id", "version"):
        if key in data and key not in section:
            section[key] = data[key]
    section.pop("engine", None)
    return EngineConfig.from_dict(section)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
