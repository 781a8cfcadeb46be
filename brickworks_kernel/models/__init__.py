"""Domain models for the brickworks kernel."""

from brickworks_kernel.models.batch import (
    BatchStatus,
    CrushRun,
    DryLoad,
    ExtrusionRun,
    KilnBatch,
    MixBatch,
    ProductionBatchMixin,
)
from brickworks_kernel.models.event import DomainEvent
from brickworks_kernel.models.mining import MiningShift, MiningVehicle, ShiftStatus, VehicleStatus
from brickworks_kernel.models.profile import Profile
from brickworks_kernel.models.stockpile import Stockpile, StockpileStatus

# aggregate_type -> model; the only place aggregate kinds are mapped to tables
AGGREGATE_MODELS: dict[str, type] = {
    "stockpile": Stockpile,
    "mix_batch": MixBatch,
    "crush_run": CrushRun,
    "extrusion_run": ExtrusionRun,
    "dry_load": DryLoad,
    "kiln_batch": KilnBatch,
}

__all__ = [
    "AGGREGATE_MODELS",
    "BatchStatus",
    "CrushRun",
    "DomainEvent",
    "DryLoad",
    "ExtrusionRun",
    "KilnBatch",
    "MiningShift",
    "MiningVehicle",
    "MixBatch",
    "ProductionBatchMixin",
    "Profile",
    "ShiftStatus",
    "Stockpile",
    "StockpileStatus",
    "VehicleStatus",
]
