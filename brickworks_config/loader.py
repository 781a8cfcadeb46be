"""
Configuration Loader (``brickworks_config.loader``).

Responsibility
--------------
Loads a configuration set's YAML file and parses it into typed
``brickworks_config.schema`` dataclasses.  Build/test tooling: runtime
callers go through ``brickworks_config.get_active_config()``.

Invariants enforced
-------------------
* No silent defaults for required fields: a missing key raises
  ``KeyError``.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from brickworks_config.schema import (
    DatabaseDef,
    LoggingDef,
    PlantConfiguration,
    PoolDef,
    StageDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_database(data: dict[str, Any]) -> DatabaseDef:
    return DatabaseDef(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 5)),
        max_overflow=int(data.get("max_overflow", 10)),
    )


def parse_logging(data: dict[str, Any]) -> LoggingDef:
    return LoggingDef(
        level=str(data.get("level", "INFO")).upper(),
        json=bool(data.get("json", True)),
    )


def parse_pool(key: str, data: dict[str, Any]) -> PoolDef:
    """Parse a PoolDef from its mapping entry under ``pools:``."""
    return PoolDef(
        key=key,
        aggregate_type=data["aggregate_type"],
        event_prefix=data["event_prefix"],
        availability_view=data["availability_view"],
        label=data["label"],
        unit=data.get("unit", "t"),
        required_status=data.get("required_status"),
        roles=tuple(data.get("roles", ())),
    )


def parse_stage(key: str, data: dict[str, Any]) -> StageDef:
    """Parse a StageDef from its mapping entry under ``stages:``."""
    return StageDef(
        key=key,
        aggregate_type=data["aggregate_type"],
        event_prefix=data["event_prefix"],
        noun=data["noun"],
        label=data["label"],
        input_pool=data["input_pool"],
        unit=data.get("unit", "t"),
        roles=tuple(data.get("roles", ())),
    )


def parse_configuration(data: dict[str, Any]) -> PlantConfiguration:
    """
    Parse a whole configuration set.

    The checksum is computed over the raw mapping, so two files that parse
    to the same data share a checksum regardless of formatting.
    """
    return PlantConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        name=data.get("name", data["config_id"]),
        database=parse_database(data["database"]),
        logging=parse_logging(data.get("logging", {})),
        pools=tuple(parse_pool(k, v) for k, v in (data.get("pools") or {}).items()),
        stages=tuple(parse_stage(k, v) for k, v in (data.get("stages") or {}).items()),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> PlantConfiguration:
    return parse_configuration(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
