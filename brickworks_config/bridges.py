"""
Config -> Kernel Bridges.

Functions that convert parsed configuration into kernel inputs.  They live
in brickworks_config (the producer) because the kernel never imports
brickworks_config.

Usage:
    from brickworks_config import get_active_config

    config = get_active_config()
    service = BatchLifecycleService(
        session, config.stages["mixing"], config.pool_for("mixing"), clock,
    )
"""

from __future__ import annotations

from types import MappingProxyType

from brickworks_config.schema import PlantConfiguration, PoolDef, StageDef
from brickworks_kernel.domain.stages import PoolDefinition, StageDefinition


def build_pool_definition(pool: PoolDef) -> PoolDefinition:
    return PoolDefinition(
        key=pool.key,
        aggregate_type=pool.aggregate_type,
        event_prefix=pool.event_prefix,
        availability_view=pool.availability_view,
        label=pool.label,
        unit=pool.unit,
        required_status=pool.required_status,
        allowed_roles=frozenset(pool.roles),
    )


def build_stage_definition(stage: StageDef) -> StageDefinition:
    return StageDefinition(
        key=stage.key,
        aggregate_type=stage.aggregate_type,
        event_prefix=stage.event_prefix,
        noun=stage.noun,
        label=stage.label,
        input_pool=stage.input_pool,
        unit=stage.unit,
        allowed_roles=frozenset(stage.roles),
    )


def build_pool_registry(config: PlantConfiguration) -> MappingProxyType:
    """Read-only mapping of pool key -> PoolDefinition, in declaration order."""
    return MappingProxyType({p.key: build_pool_definition(p) for p in config.pools})


def build_stage_registry(config: PlantConfiguration) -> MappingProxyType:
    """Read-only mapping of stage key -> StageDefinition, in declaration order."""
    return MappingProxyType({s.key: build_stage_definition(s) for s in config.stages})
