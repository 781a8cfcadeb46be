"""Services for the brickworks kernel (write side)."""

from brickworks_kernel.services.actions import ActionResult, PlantActions, run_action
from brickworks_kernel.services.actor_service import ProfileActorResolver
from brickworks_kernel.services.availability import AvailabilityChecker, PoolBalance
from brickworks_kernel.services.batch_lifecycle import BatchLifecycleService, LifecycleResult
from brickworks_kernel.services.entity_accessor import AggregateInfo, EntityAccessor
from brickworks_kernel.services.event_log import EventLogWriter, EventRecord, NewEvent
from brickworks_kernel.services.mining_service import MiningResult, MiningService, ShiftInfo, VehicleInfo
from brickworks_kernel.services.stockpile_service import StockpileResult, StockpileService

__all__ = [
    "ActionResult",
    "AggregateInfo",
    "AvailabilityChecker",
    "BatchLifecycleService",
    "EntityAccessor",
    "EventLogWriter",
    "EventRecord",
    "LifecycleResult",
    "MiningResult",
    "MiningService",
    "NewEvent",
    "PlantActions",
    "PoolBalance",
    "ProfileActorResolver",
    "ShiftInfo",
    "StockpileResult",
    "StockpileService",
    "VehicleInfo",
    "run_action",
]
