"""
Plant configuration compiler.

Turns a validated PlantConfiguration into a CompiledPlantConfig: the
frozen runtime artifact holding kernel-ready stage and pool definitions.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from brickworks_config.bridges import build_pool_registry, build_stage_registry
from brickworks_config.schema import DatabaseDef, LoggingDef, PlantConfiguration
from brickworks_kernel.domain.stages import PoolDefinition, StageDefinition


@dataclass(frozen=True)
class CompiledPlantConfig:
    """
    Runtime configuration.

    Contract:
        ``stages`` and ``pools`` are read-only mappings keyed by definition
        key; every stage's ``input_pool`` is a key of ``pools``.
    """

    config_id: str
    version: int
    checksum: str
    database: DatabaseDef
    logging: LoggingDef
    stages: Mapping[str, StageDefinition]
    pools: Mapping[str, PoolDefinition]

    def pool_for(self, stage_key: str) -> PoolDefinition:
        """The pool the given stage draws components from."""
        return self.pools[self.stages[stage_key].input_pool]


def compile_plant_config(
    config: PlantConfiguration,
    database: DatabaseDef | None = None,
) -> CompiledPlantConfig:
    """Compile ``config``; ``database`` replaces the authored settings when given."""
    return CompiledPlantConfig(
        config_id=config.config_id,
        version=config.version,
        checksum=config.checksum,
        database=database or config.database,
        logging=config.logging,
        stages=build_stage_registry(config),
        pools=build_pool_registry(config),
    )
