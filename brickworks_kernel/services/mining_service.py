"""
MiningService -- haul vehicles, operator shifts and the loads they tip.

Responsibility:
    Registers vehicles, starts and ends an operator's shift on a vehicle,
    and records each load hauled to a stockpile.  A load is two facts: the
    MINING_LOAD_RECORDED event and the stockpile receipt it causes.

Architecture position:
    Kernel > Services.  Flushes, never commits.  Receipts go through
    StockpileService so stockpile balances keep a single write path.

Invariants enforced:
    - An operator holds at most one active shift, and a vehicle is on at
      most one active shift.  Checked before the insert and backed by
      partial unique indexes.
    - Only ``active`` vehicles can start a shift.
    - A shift is ended, and loaded against, only by its own operator, and
      only while it is active.  Ending is a conditional UPDATE.
    - record_load appends the load event then the stockpile receipt under
      one CorrelationScope: positions 1 and 2, the receipt caused by the
      load.

Failure modes:
    - RoleNotPermittedError, AggregateNotFoundError, VehicleUnavailableError,
      ShiftConflictError, InvalidTransitionError, EventPersistenceError,
      StoreError.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from brickworks_kernel.db.upsert import insert_if_absent
from brickworks_kernel.domain.commands import (
    EndShiftCommand,
    RecordLoadCommand,
    RecordReceiptCommand,
    RegisterVehicleCommand,
    StartShiftCommand,
)
from brickworks_kernel.domain.context import ActorContext
from brickworks_kernel.domain.correlation import CorrelationScope
from brickworks_kernel.domain.roles import Role
from brickworks_kernel.domain.stages import PoolDefinition
from brickworks_kernel.exceptions import (
    AggregateNotFoundError,
    InvalidTransitionError,
    ShiftConflictError,
    StoreError,
    VehicleUnavailableError,
)
from brickworks_kernel.logging_config import LogContext, get_logger
from brickworks_kernel.models.mining import MiningShift, MiningVehicle, ShiftStatus, VehicleStatus
from brickworks_kernel.services.base import BaseService
from brickworks_kernel.services.event_log import EventLogWriter, EventRecord, NewEvent
from brickworks_kernel.services.stockpile_service import StockpileService

logger = get_logger("services.mining")

MINING_ROLES: frozenset[str] = frozenset({Role.MINING_OPERATOR.value})

VEHICLE_AGGREGATE = "mining.vehicle"
SHIFT_AGGREGATE = "mining.shift"
LOAD_AGGREGATE = "mining.load"


@dataclass(frozen=True)
class VehicleInfo:
    id: UUID
    tenant_id: UUID
    code: str
    description: str | None
    capacity_tonnes: float | None
    status: str

    @classmethod
    def from_row(cls, row: MiningVehicle) -> VehicleInfo:
        return cls(
            id=row.id,
            tenant_id=row.tenant_id,
            code=row.code,
            description=row.description,
            capacity_tonnes=row.capacity_tonnes,
            status=row.status,
        )


@dataclass(frozen=True)
class ShiftInfo:
    id: UUID
    tenant_id: UUID
    vehicle_id: UUID
    operator_id: UUID
    operator_name: str | None
    operator_role: str
    status: str
    started_at: datetime
    ended_at: datetime | None = None
    notes: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ShiftStatus.ACTIVE.value

    @classmethod
    def from_row(cls, row: MiningShift) -> ShiftInfo:
        return cls(
            id=row.id,
            tenant_id=row.tenant_id,
            vehicle_id=row.vehicle_id,
            operator_id=row.operator_id,
            operator_name=row.operator_name,
            operator_role=row.operator_role,
            status=row.status,
            started_at=row.started_at,
            ended_at=row.ended_at,
            notes=row.notes,
        )


@dataclass(frozen=True)
class MiningResult:
    """Outcome of a mining operation.  ``events`` is empty for a repeat registration."""

    correlation_id: UUID
    events: tuple[EventRecord, ...] = ()
    vehicle: VehicleInfo | None = None
    shift: ShiftInfo | None = None
    load_id: UUID | None = None
    created: bool = False

    @property
    def event_types(self) -> tuple[str, ...]:
        return tuple(e.event_type for e in self.events)


class MiningService(BaseService):
    """
    Mining operations for one tenant-scoped stockpile pool.

    Contract:
        ``stockpile_pool`` is the pool loads are received into; its roles
        must also admit mining operators for record_load to succeed.
    """

    def __init__(self, session, stockpile_pool: PoolDefinition, clock=None, event_source: str = "kernel"):
        super().__init__(session, clock)
        self._stockpiles = StockpileService(session, stockpile_pool, self.clock, event_source)
        self._events = EventLogWriter(session, self.clock, source=event_source)

    def register_vehicle(self, actor: ActorContext, command: RegisterVehicleCommand) -> MiningResult:
        """Idempotent on (tenant, code): a repeat returns the existing vehicle."""
        actor.require_role(MINING_ROLES, "register mining vehicles")
        scope = CorrelationScope.begin("mining.register_vehicle")

        with self._bound(actor, scope, VEHICLE_AGGREGATE):
            try:
                created = insert_if_absent(
                    self.session,
                    MiningVehicle,
                    ("tenant_id", "code"),
                    {
                        "id": uuid4(),
                        "tenant_id": actor.tenant_id,
                        "code": command.code,
                        "description": command.description,
                        "capacity_tonnes": command.capacity_tonnes,
                        "status": VehicleStatus.ACTIVE.value,
                    },
                )
                row = self.session.execute(
                    select(MiningVehicle)
                    .where(MiningVehicle.tenant_id == actor.tenant_id, MiningVehicle.code == command.code)
                    .execution_options(populate_existing=True)
                ).scalar_one()
            except SQLAlchemyError as exc:
                raise StoreError(str(exc)) from exc

            vehicle = VehicleInfo.from_row(row)
            if not created:
                logger.info("vehicle_register_existing", extra={"vehicle_id": str(vehicle.id)})
                return MiningResult(scope.correlation_id, vehicle=vehicle)

            event = self._append(
                actor,
                scope,
                VEHICLE_AGGREGATE,
                vehicle.id,
                "MINING_VEHICLE_REGISTERED",
                {
                    "vehicleId": str(vehicle.id),
                    "vehicleCode": vehicle.code,
                    "description": vehicle.description,
                    "capacityTonnes": vehicle.capacity_tonnes,
                },
            )
            return MiningResult(scope.correlation_id, (event,), vehicle=vehicle, created=True)

    def start_shift(self, actor: ActorContext, command: StartShiftCommand) -> MiningResult:
        actor.require_role(MINING_ROLES, "manage mining shifts")
        scope = CorrelationScope.begin("mining.start_shift")

        with self._bound(actor, scope, SHIFT_AGGREGATE):
            vehicle = self._fetch_vehicle(actor, command.vehicle_id)
            if vehicle.status != VehicleStatus.ACTIVE.value:
                raise VehicleUnavailableError(str(vehicle.id), vehicle.status)
            self._check_free(actor, vehicle)

            started_at = self.clock.now()
            shift_id = uuid4()
            try:
                self.session.execute(
                    insert(MiningShift).values(
                        id=shift_id,
                        tenant_id=actor.tenant_id,
                        vehicle_id=vehicle.id,
                        operator_id=actor.actor_id,
                        operator_name=actor.full_name,
                        operator_role=actor.role,
                        status=ShiftStatus.ACTIVE.value,
                        started_at=started_at,
                        notes=command.notes,
                    )
                )
            except IntegrityError as exc:
                # Lost a race with a concurrent start on the same vehicle or operator.
                logger.warning("shift_start_conflict", extra={"vehicle_id": str(vehicle.id)})
                raise ShiftConflictError("Vehicle or operator already has an active shift.") from exc
            except SQLAlchemyError as exc:
                raise StoreError(str(exc)) from exc

            shift = self._fetch_shift(actor, shift_id)
            event = self._append(
                actor,
                scope,
                SHIFT_AGGREGATE,
                shift.id,
                "MINING_SHIFT_STARTED",
                {
                    "shiftId": str(shift.id),
                    "vehicleId": str(vehicle.id),
                    "vehicleCode": vehicle.code,
                    "operatorId": str(actor.actor_id),
                    "operatorName": actor.full_name,
                    "operatorRole": actor.role,
                    "startedAt": started_at.isoformat(),
                },
            )
            return MiningResult(scope.correlation_id, (event,), vehicle=vehicle, shift=shift)

    def end_shift(self, actor: ActorContext, command: EndShiftCommand) -> MiningResult:
        actor.require_role(MINING_ROLES, "manage mining shifts")
        scope = CorrelationScope.begin("mining.end_shift")

        with self._bound(actor, scope, SHIFT_AGGREGATE, command.shift_id):
            shift = self._own_active_shift(actor, command.shift_id, "end")
            ended_at = self.clock.now()
            try:
                result = self.session.execute(
                    update(MiningShift)
                    .where(
                        MiningShift.id == shift.id,
                        MiningShift.tenant_id == actor.tenant_id,
                        MiningShift.status == ShiftStatus.ACTIVE.value,
                    )
                    .values(status=ShiftStatus.COMPLETED.value, ended_at=ended_at)
                    .execution_options(synchronize_session=False)
                )
            except SQLAlchemyError as exc:
                raise StoreError(str(exc)) from exc

            current = self._fetch_shift(actor, shift.id)
            if result.rowcount == 0:
                logger.warning("shift_end_lost_race", extra={"current_status": current.status})
                raise InvalidTransitionError(
                    "mining_shift", str(shift.id), current.status, (ShiftStatus.ACTIVE.value,), "end",
                )

            event = self._append(
                actor,
                scope,
                SHIFT_AGGREGATE,
                current.id,
                "MINING_SHIFT_COMPLETED",
                {
                    "shiftId": str(current.id),
                    "vehicleId": str(current.vehicle_id),
                    "operatorId": str(current.operator_id),
                    "operatorName": current.operator_name,
                    "completedAt": ended_at.isoformat(),
                },
            )
            return MiningResult(scope.correlation_id, (event,), shift=current)

    def record_load(self, actor: ActorContext, command: RecordLoadCommand) -> MiningResult:
        """
        Record a load and receive its tonnage into the stockpile.

        Everything is loaded before the first write, so an unknown stockpile
        leaves no load event behind.
        """
        actor.require_role(MINING_ROLES, "manage mining shifts")
        scope = CorrelationScope.begin("mining.record_load")
        load_id = uuid4()

        with self._bound(actor, scope, LOAD_AGGREGATE, load_id):
            shift = self._own_active_shift(actor, command.shift_id, "record loads on")
            vehicle = self._fetch_vehicle(actor, shift.vehicle_id)
            stockpile = self._stockpiles.get(actor, command.stockpile_id)

            load_event = self._append(
                actor,
                scope,
                LOAD_AGGREGATE,
                load_id,
                "MINING_LOAD_RECORDED",
                {
                    "loadId": str(load_id),
                    "shiftId": str(shift.id),
                    "vehicleId": str(vehicle.id),
                    "vehicleCode": vehicle.code,
                    "stockpileId": str(stockpile.id),
                    "stockpileCode": stockpile.code,
                    "tonnage": command.tonnage,
                    "moisturePct": command.moisture_pct,
                    "notes": command.notes,
                    "operatorId": str(actor.actor_id),
                    "operatorName": actor.full_name,
                    "recordedAt": self.clock.now().isoformat(),
                },
            )
            receipt = self._stockpiles.record_receipt(
                actor,
                RecordReceiptCommand(
                    stockpile_id=stockpile.id,
                    quantity=command.tonnage,
                    reference=vehicle.code,
                    notes=command.notes,
                ),
                scope,
            )
            return MiningResult(
                scope.correlation_id,
                (load_event, *receipt.events),
                vehicle=vehicle,
                shift=shift,
                load_id=load_id,
            )

    # Reads

    def get_shift(self, actor: ActorContext, shift_id: UUID | str) -> ShiftInfo:
        return self._fetch_shift(actor, shift_id)

    def current_shift(self, actor: ActorContext) -> ShiftInfo | None:
        """The actor's own active shift, if any."""
        row = self.session.execute(
            select(MiningShift).where(
                MiningShift.tenant_id == actor.tenant_id,
                MiningShift.operator_id == actor.actor_id,
                MiningShift.status == ShiftStatus.ACTIVE.value,
            )
        ).scalar_one_or_none()
        return ShiftInfo.from_row(row) if row is not None else None

    def list_vehicles(self, actor: ActorContext) -> list[VehicleInfo]:
        rows = self.session.execute(
            select(MiningVehicle)
            .where(MiningVehicle.tenant_id == actor.tenant_id)
            .order_by(MiningVehicle.code)
        ).scalars()
        return [VehicleInfo.from_row(row) for row in rows]

    # Internals

    def _bound(
        self,
        actor: ActorContext,
        scope: CorrelationScope,
        aggregate_type: str,
        aggregate_id: UUID | None = None,
    ):
        return LogContext.bind(
            correlation_id=str(scope.correlation_id),
            tenant_id=str(actor.tenant_id),
            actor_id=str(actor.actor_id),
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id) if aggregate_id is not None else None,
            operation=scope.operation,
        )

    def _fetch_vehicle(self, actor: ActorContext, vehicle_id: UUID) -> VehicleInfo:
        row = self.session.execute(
            select(MiningVehicle)
            .where(MiningVehicle.id == vehicle_id, MiningVehicle.tenant_id == actor.tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise AggregateNotFoundError("mining_vehicle", str(vehicle_id), "Vehicle")
        return VehicleInfo.from_row(row)

    def _fetch_shift(self, actor: ActorContext, shift_id: UUID | str) -> ShiftInfo:
        row = self.session.execute(
            select(MiningShift)
            .where(MiningShift.id == shift_id, MiningShift.tenant_id == actor.tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise AggregateNotFoundError("mining_shift", str(shift_id), "Shift")
        return ShiftInfo.from_row(row)

    def _own_active_shift(self, actor: ActorContext, shift_id: UUID, verb: str) -> ShiftInfo:
        shift = self._fetch_shift(actor, shift_id)
        if shift.operator_id != actor.actor_id:
            # Another operator's shift reads as missing.
            raise AggregateNotFoundError("mining_shift", str(shift_id), "Shift")
        if not shift.is_active:
            raise InvalidTransitionError(
                "mining_shift", str(shift.id), shift.status, (ShiftStatus.ACTIVE.value,), verb,
            )
        return shift

    def _check_free(self, actor: ActorContext, vehicle: VehicleInfo) -> None:
        active = select(MiningShift).where(
            MiningShift.tenant_id == actor.tenant_id,
            MiningShift.status == ShiftStatus.ACTIVE.value,
        )
        if self.session.execute(
            active.where(MiningShift.operator_id == actor.actor_id)
        ).first() is not None:
            raise ShiftConflictError("You already have an active shift.")

        holder = self.session.execute(
            active.where(MiningShift.vehicle_id == vehicle.id)
        ).scalar_one_or_none()
        if holder is not None:
            raise ShiftConflictError(
                f"Vehicle currently assigned to {holder.operator_name or 'another operator'}."
            )

    def _append(
        self,
        actor: ActorContext,
        scope: CorrelationScope,
        aggregate_type: str,
        aggregate_id: UUID,
        event_type: str,
        payload: dict[str, Any],
    ) -> EventRecord:
        return self._events.append(
            actor,
            NewEvent(
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                event_type=event_type,
                payload=payload,
            ),
            scope,
        )
