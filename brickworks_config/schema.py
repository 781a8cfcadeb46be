"""
PlantConfiguration schema.

Defines the human-authored, reviewable source artifact for plant
configuration.  YAML is parsed into these types by the loader, checked by
the validator, and turned into kernel StageDefinition / PoolDefinition
objects by the bridges.

Key distinction:
  PlantConfiguration  = source artifact (human-authored, versioned)
  CompiledPlantConfig = runtime artifact (validated, kernel-ready, frozen)
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseDef:
    """Connection settings for the relational store."""

    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingDef:
    level: str = "INFO"
    json: bool = True


# ---------------------------------------------------------------------------
# Production model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PoolDef:
    """A resource pool stages draw from (stockpiles, upstream batch output)."""

    key: str
    aggregate_type: str
    event_prefix: str
    availability_view: str
    label: str
    unit: str = "t"
    required_status: str | None = None
    roles: tuple[str, ...] = ()


@dataclass(frozen=True)
class StageDef:
    """A batch-shaped production stage."""

    key: str
    aggregate_type: str
    event_prefix: str
    noun: str
    label: str
    input_pool: str
    unit: str = "t"
    roles: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlantConfiguration:
    """Root of a configuration set, as authored."""

    config_id: str
    version: int
    name: str
    database: DatabaseDef
    logging: LoggingDef
    pools: tuple[PoolDef, ...] = ()
    stages: tuple[StageDef, ...] = ()
    checksum: str = ""
