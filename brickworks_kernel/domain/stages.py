"""
Stage and pool definitions -- what makes one batch-shaped stage differ
from another.

Responsibility:
    Describes a production stage (its aggregate type, event vocabulary,
    permitted roles and input pool) and a resource pool (the aggregate it
    draws from, its event vocabulary and its availability view).  The
    lifecycle service is generic; these definitions are its only
    per-stage input.

Architecture position:
    Kernel > Domain -- pure value objects.  Built from YAML by
    brickworks_config.bridges; the kernel never reads configuration files.

Invariants enforced:
    - Event types are derived, never typed by hand:
        batch events     <PREFIX>_<NOUN>_{CREATED,STARTED,COMPLETED,CANCELLED}
        component events <PREFIX>_COMPONENT_{ADDED,REMOVED}
        pool events      <POOL_PREFIX>_{TRANSFERRED_OUT,TRANSFERRED_IN,...}
    - A pool backed by batches requires the supplying batch to be in
      ``required_status`` before it may be drawn from.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class LifecycleEvent(str, Enum):
    """Events emitted on a production batch."""

    CREATED = "CREATED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    COMPONENT_ADDED = "COMPONENT_ADDED"
    COMPONENT_REMOVED = "COMPONENT_REMOVED"


class PoolMovement(str, Enum):
    """Events emitted on a resource pool."""

    CREATED = "CREATED"
    RECEIPT_RECORDED = "RECEIPT_RECORDED"
    TRANSFERRED_OUT = "TRANSFERRED_OUT"
    TRANSFERRED_IN = "TRANSFERRED_IN"
    ADJUSTED_IN = "ADJUSTED_IN"
    ADJUSTED_OUT = "ADJUSTED_OUT"
    SAMPLE_TAKEN = "SAMPLE_TAKEN"
    QUALITY_RECORDED = "QUALITY_RECORDED"


# Movements that add to / subtract from a pool's available quantity.
INFLOW_MOVEMENTS: tuple[PoolMovement, ...] = (
    PoolMovement.RECEIPT_RECORDED,
    PoolMovement.TRANSFERRED_IN,
    PoolMovement.ADJUSTED_IN,
)
OUTFLOW_MOVEMENTS: tuple[PoolMovement, ...] = (
    PoolMovement.TRANSFERRED_OUT,
    PoolMovement.ADJUSTED_OUT,
)

_BATCH_EVENTS = frozenset({
    LifecycleEvent.CREATED,
    LifecycleEvent.STARTED,
    LifecycleEvent.COMPLETED,
    LifecycleEvent.CANCELLED,
})


@dataclass(frozen=True)
class PoolDefinition:
    """
    A resource pool that stages draw components from.

    Contract:
        ``aggregate_type`` names the rows that ARE the pool (stockpiles, or
        the batches of an upstream stage).  ``availability_view`` exposes
        (tenant_id, pool_id, available_quantity) for those rows.  ``allowed_roles``
        guards the pool's own operations (receipts, adjustments, ...).
    """

    key: str
    aggregate_type: str
    event_prefix: str
    availability_view: str
    label: str
    unit: str = "t"
    required_status: str | None = None
    allowed_roles: frozenset[str] = field(default_factory=frozenset)

    def event_type(self, movement: PoolMovement) -> str:
        return f"{self.event_prefix}_{movement.value}"

    @property
    def completion_event_type(self) -> str:
        """Batch completion event whose outputQuantity feeds this pool."""
        return f"{self.event_prefix}_{LifecycleEvent.COMPLETED.value}"

    @property
    def is_batch_pool(self) -> bool:
        return self.required_status is not None

    @property
    def inflow_event_types(self) -> tuple[str, ...]:
        return tuple(self.event_type(m) for m in INFLOW_MOVEMENTS)

    @property
    def outflow_event_types(self) -> tuple[str, ...]:
        return tuple(self.event_type(m) for m in OUTFLOW_MOVEMENTS)


@dataclass(frozen=True)
class StageDefinition:
    """
    A batch-shaped production stage.

    Contract:
        ``input_pool`` is the key of the PoolDefinition components are drawn
        from.  ``allowed_roles`` guards every mutating operation of the
        stage; admin and platform administrators always pass.
    """

    key: str
    aggregate_type: str
    event_prefix: str
    noun: str
    label: str
    input_pool: str
    unit: str = "t"
    allowed_roles: frozenset[str] = field(default_factory=frozenset)

    def event_type(self, event: LifecycleEvent) -> str:
        if event in _BATCH_EVENTS:
            return f"{self.event_prefix}_{self.noun}_{event.value}"
        return f"{self.event_prefix}_{event.value}"

    @property
    def batch_event_prefix(self) -> str:
        return f"{self.event_prefix}_{self.noun}"
