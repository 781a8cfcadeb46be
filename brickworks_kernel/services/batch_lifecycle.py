"""
BatchLifecycleService -- create / add & remove component / start /
complete / cancel for any batch-shaped production stage.

Responsibility:
    Orchestrates one lifecycle operation: authorize the actor, load the
    aggregates inside the actor's tenant, check the status precondition,
    check pool availability, apply at most one conditional UPDATE, and
    append the events that record it under one CorrelationScope.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes, never commits; wrap
    calls in services/actions.py (or session_scope) for transaction
    ownership.

Invariants enforced:
    - Status preconditions come from domain/lifecycle.py.  They are checked
      on the loaded row before any write AND re-checked by the UPDATE's
      ``WHERE status IN (...)``; zero affected rows is InvalidTransitionError.
    - A component transfer emits exactly two events sharing one correlation
      id, batch event first: COMPONENT_ADDED + pool TRANSFERRED_OUT, or
      COMPONENT_REMOVED + pool TRANSFERRED_IN.
    - Adding a component is availability-checked against the input pool.
      Removing one is capped at the net quantity this batch drew from that
      source (its COMPONENT_ADDED less COMPONENT_REMOVED events).
    - Batches supplying a downstream stage must be ``completed``.
    - create() is an idempotent upsert on (tenant_id, code).  Only an
      actual insert emits the CREATED event; a retry returns the existing
      batch and emits nothing.

Failure modes:
    - RoleNotPermittedError, AggregateNotFoundError, InvalidTransitionError,
      SourceNotReadyError, InsufficientInventoryError,
      ExcessComponentRemovalError,
      EventPersistenceError, StoreError.

Audit relevance:
    Every successful state change appends at least one event, in the same
    transaction as the row change.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from brickworks_kernel.db.upsert import insert_if_absent
from brickworks_kernel.domain.commands import (
    AddComponentCommand,
    CancelBatchCommand,
    CompleteBatchCommand,
    CreateBatchCommand,
    RemoveComponentCommand,
    StartBatchCommand,
)
from brickworks_kernel.domain.context import ActorContext
from brickworks_kernel.domain.correlation import CorrelationScope
from brickworks_kernel.domain.lifecycle import (
    BatchStatus,
    LifecycleOperation,
    transition_for,
)
from brickworks_kernel.domain.reporting import coerce_number
from brickworks_kernel.domain.stages import (
    LifecycleEvent,
    PoolDefinition,
    PoolMovement,
    StageDefinition,
)
from brickworks_kernel.exceptions import (
    ExcessComponentRemovalError,
    InvalidTransitionError,
    SourceNotReadyError,
    StoreError,
)
from brickworks_kernel.logging_config import LogContext, get_logger
from brickworks_kernel.models import AGGREGATE_MODELS, DomainEvent
from brickworks_kernel.services.availability import AvailabilityChecker
from brickworks_kernel.services.base import BaseService
from brickworks_kernel.services.entity_accessor import AggregateInfo, EntityAccessor
from brickworks_kernel.services.event_log import EventLogWriter, EventRecord, NewEvent

logger = get_logger("services.batch_lifecycle")

_OPERATION_PHRASES = {
    LifecycleOperation.START: "start",
    LifecycleOperation.COMPLETE: "complete",
    LifecycleOperation.CANCEL: "cancel",
    LifecycleOperation.ADD_COMPONENT: "add components to",
    LifecycleOperation.REMOVE_COMPONENT: "remove components from",
}


@dataclass(frozen=True)
class LifecycleResult:
    """
    Outcome of a successful lifecycle operation.

    ``events`` is empty only for a create() retry that found the batch.
    """

    aggregate: AggregateInfo
    correlation_id: UUID
    events: tuple[EventRecord, ...] = ()
    created: bool = False

    @property
    def event_types(self) -> tuple[str, ...]:
        return tuple(e.event_type for e in self.events)


class BatchLifecycleService(BaseService):
    """
    Lifecycle operations for one production stage.

    Contract:
        One instance per (session, stage).  Every public method takes the
        resolved ActorContext and a validated command, and either returns
        a LifecycleResult or raises a BrickworksError subclass without
        having flushed any partial write it is responsible for.

    Non-goals:
        - Does NOT commit.
        - Does NOT reserve pool quantity across concurrent operations.
    """

    def __init__(
        self,
        session,
        stage: StageDefinition,
        input_pool: PoolDefinition,
        clock=None,
        event_source: str = "kernel",
    ):
        super().__init__(session, clock)
        if input_pool.key != stage.input_pool:
            raise ValueError(
                f"Stage {stage.key} draws from {stage.input_pool}, not {input_pool.key}"
            )
        self.stage = stage
        self.pool = input_pool
        self._model = AGGREGATE_MODELS[stage.aggregate_type]
        self._accessor = EntityAccessor(session, self.clock)
        self._availability = AvailabilityChecker(session, self.clock)
        self._events = EventLogWriter(session, self.clock, source=event_source)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(self, actor: ActorContext, command: CreateBatchCommand) -> LifecycleResult:
        self._authorize(actor, "create")
        scope = CorrelationScope.begin(f"{self.stage.key}.create")

        with self._bound(actor, scope):
            try:
                created = insert_if_absent(
                    self.session,
                    self._model,
                    ("tenant_id", "code"),
                    {
                        "id": uuid4(),
                        "tenant_id": actor.tenant_id,
                        "code": command.code,
                        "status": BatchStatus.PLANNED.value,
                        "target_output": command.target_output,
                    },
                )
            except SQLAlchemyError as exc:
                raise StoreError(str(exc)) from exc

            batch = self._fetch_by_code(actor, command.code)
            if not created:
                logger.info(
                    "batch_create_existing",
                    extra={"batch_id": str(batch.id), "code": batch.code, "status": batch.status},
                )
                return LifecycleResult(aggregate=batch, correlation_id=scope.correlation_id)

            event = self._append(
                actor,
                scope,
                batch,
                LifecycleEvent.CREATED,
                {"targetOutput": command.target_output, "unit": self.stage.unit},
            )
            return LifecycleResult(
                aggregate=batch,
                correlation_id=scope.correlation_id,
                events=(event,),
                created=True,
            )

    def add_component(self, actor: ActorContext, command: AddComponentCommand) -> LifecycleResult:
        self._authorize(actor, "add components to")
        scope = CorrelationScope.begin(f"{self.stage.key}.add_component")

        with self._bound(actor, scope, command.batch_id):
            batch = self._fetch_batch(actor, command.batch_id)
            self._guard(batch, LifecycleOperation.ADD_COMPONENT)
            source = self._fetch_source(actor, command.pool_id)
            self._availability.check_available(
                self.pool, source.id, actor.tenant_id, command.quantity,
            )

            batch_event = self._append(
                actor,
                scope,
                batch,
                LifecycleEvent.COMPONENT_ADDED,
                {
                    **self._source_facts(source),
                    "materialType": command.material_type,
                    "quantity": command.quantity,
                    "unit": self.pool.unit,
                    "reference": command.reference,
                },
            )
            pool_event = self._append_pool(
                actor,
                scope,
                source,
                PoolMovement.TRANSFERRED_OUT,
                {
                    "quantity": command.quantity,
                    "unit": self.pool.unit,
                    "reference": command.reference,
                    "toAggregateType": self.stage.aggregate_type,
                    "toBatchId": str(batch.id),
                    "toBatchCode": batch.code,
                },
            )
            return LifecycleResult(
                aggregate=batch,
                correlation_id=scope.correlation_id,
                events=(batch_event, pool_event),
            )

    def remove_component(self, actor: ActorContext, command: RemoveComponentCommand) -> LifecycleResult:
        self._authorize(actor, "remove components from")
        scope = CorrelationScope.begin(f"{self.stage.key}.remove_component")

        with self._bound(actor, scope, command.batch_id):
            batch = self._fetch_batch(actor, command.batch_id)
            self._guard(batch, LifecycleOperation.REMOVE_COMPONENT)
            source = self._accessor.fetch(
                self.pool.aggregate_type, command.pool_id, actor.tenant_id, self._pool_label(),
            )
            drawn = self._net_drawn(actor, batch, source)
            if command.quantity > drawn:
                raise ExcessComponentRemovalError(
                    str(batch.id), str(source.id), drawn, command.quantity, self.pool.unit,
                )

            batch_event = self._append(
                actor,
                scope,
                batch,
                LifecycleEvent.COMPONENT_REMOVED,
                {
                    **self._source_facts(source),
                    "quantity": command.quantity,
                    "unit": self.pool.unit,
                    "reference": command.reference,
                },
            )
            pool_event = self._append_pool(
                actor,
                scope,
                source,
                PoolMovement.TRANSFERRED_IN,
                {
                    "quantity": command.quantity,
                    "unit": self.pool.unit,
                    "reference": command.reference,
                    "fromAggregateType": self.stage.aggregate_type,
                    "fromBatchId": str(batch.id),
                    "fromBatchCode": batch.code,
                },
            )
            return LifecycleResult(
                aggregate=batch,
                correlation_id=scope.correlation_id,
                events=(batch_event, pool_event),
            )

    def start(self, actor: ActorContext, command: StartBatchCommand) -> LifecycleResult:
        self._authorize(actor, "start")
        scope = CorrelationScope.begin(f"{self.stage.key}.start")

        with self._bound(actor, scope, command.batch_id):
            batch = self._fetch_batch(actor, command.batch_id)
            started_at = self.clock.now()
            batch = self._transition(
                actor, batch, LifecycleOperation.START, {"started_at": started_at},
            )
            event = self._append(
                actor, scope, batch, LifecycleEvent.STARTED,
                {"startedAt": started_at.isoformat()},
            )
            return LifecycleResult(aggregate=batch, correlation_id=scope.correlation_id, events=(event,))

    def complete(self, actor: ActorContext, command: CompleteBatchCommand) -> LifecycleResult:
        self._authorize(actor, "complete")
        scope = CorrelationScope.begin(f"{self.stage.key}.complete")

        with self._bound(actor, scope, command.batch_id):
            batch = self._fetch_batch(actor, command.batch_id)
            completed_at = self.clock.now()
            batch = self._transition(
                actor,
                batch,
                LifecycleOperation.COMPLETE,
                {
                    "completed_at": completed_at,
                    "output_quantity": command.output_quantity,
                    "quality_metric": command.quality_metric,
                },
            )
            event = self._append(
                actor,
                scope,
                batch,
                LifecycleEvent.COMPLETED,
                {
                    "outputQuantity": command.output_quantity,
                    "qualityMetric": command.quality_metric,
                    "unit": self.stage.unit,
                    "completedAt": completed_at.isoformat(),
                },
            )
            return LifecycleResult(aggregate=batch, correlation_id=scope.correlation_id, events=(event,))

    def cancel(self, actor: ActorContext, command: CancelBatchCommand) -> LifecycleResult:
        self._authorize(actor, "cancel")
        scope = CorrelationScope.begin(f"{self.stage.key}.cancel")

        with self._bound(actor, scope, command.batch_id):
            batch = self._fetch_batch(actor, command.batch_id)
            batch = self._transition(
                actor, batch, LifecycleOperation.CANCEL, {"cancel_reason": command.reason},
            )
            event = self._append(
                actor, scope, batch, LifecycleEvent.CANCELLED, {"reason": command.reason},
            )
            return LifecycleResult(aggregate=batch, correlation_id=scope.correlation_id, events=(event,))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, actor: ActorContext, batch_id: UUID | str) -> AggregateInfo:
        return self._fetch_batch(actor, batch_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _authorize(self, actor: ActorContext, verb: str) -> None:
        actor.require_role(self.stage.allowed_roles, f"{verb} {self.stage.label}")

    def _bound(self, actor: ActorContext, scope: CorrelationScope, batch_id: UUID | None = None):
        return LogContext.bind(
            correlation_id=str(scope.correlation_id),
            tenant_id=str(actor.tenant_id),
            actor_id=str(actor.actor_id),
            aggregate_type=self.stage.aggregate_type,
            aggregate_id=str(batch_id) if batch_id is not None else None,
            operation=scope.operation,
        )

    def _batch_label(self) -> str:
        return self.stage.label[:1].upper() + self.stage.label[1:]

    def _pool_label(self) -> str:
        noun = self.pool.aggregate_type.replace("_", " ")
        return noun[:1].upper() + noun[1:]

    def _fetch_batch(self, actor: ActorContext, batch_id: UUID | str) -> AggregateInfo:
        return self._accessor.fetch(
            self.stage.aggregate_type, batch_id, actor.tenant_id, self._batch_label(),
        )

    def _fetch_by_code(self, actor: ActorContext, code: str) -> AggregateInfo:
        row_id = self.session.execute(
            select(self._model.id).where(
                self._model.tenant_id == actor.tenant_id,
                self._model.code == code,
            )
        ).scalar_one()
        return self._fetch_batch(actor, row_id)

    def _fetch_source(self, actor: ActorContext, pool_id: UUID) -> AggregateInfo:
        source = self._accessor.fetch(
            self.pool.aggregate_type, pool_id, actor.tenant_id, self._pool_label(),
        )
        if self.pool.required_status is not None and source.status != self.pool.required_status:
            raise SourceNotReadyError(
                self.pool.aggregate_type,
                str(source.id),
                source.status,
                self.pool.required_status,
                self.pool.label,
            )
        return source

    def _source_facts(self, source: AggregateInfo) -> dict[str, Any]:
        return {
            "sourceType": self.pool.aggregate_type,
            "sourceId": str(source.id),
            "sourceCode": source.code,
        }

    def _net_drawn(self, actor: ActorContext, batch: AggregateInfo, source: AggregateInfo) -> float:
        """Quantity added to ``batch`` from ``source`` less what was already removed."""
        added = self.stage.event_type(LifecycleEvent.COMPONENT_ADDED)
        removed = self.stage.event_type(LifecycleEvent.COMPONENT_REMOVED)
        rows = self.session.execute(
            select(DomainEvent.event_type, DomainEvent.payload).where(
                DomainEvent.tenant_id == actor.tenant_id,
                DomainEvent.aggregate_type == self.stage.aggregate_type,
                DomainEvent.aggregate_id == str(batch.id),
                DomainEvent.event_type.in_((added, removed)),
            )
        ).all()

        net = 0.0
        for event_type, payload in rows:
            if (payload or {}).get("sourceId") != str(source.id):
                continue
            quantity = coerce_number(payload.get("quantity"))
            net += quantity if event_type == added else -quantity
        return max(net, 0.0)

    def _guard(self, batch: AggregateInfo, operation: LifecycleOperation) -> None:
        transition = transition_for(operation)
        if not transition.accepts(batch.status):
            raise InvalidTransitionError(
                self.stage.aggregate_type,
                str(batch.id),
                batch.status,
                transition.required_statuses,
                _OPERATION_PHRASES[operation],
            )

    def _transition(
        self,
        actor: ActorContext,
        batch: AggregateInfo,
        operation: LifecycleOperation,
        values: dict[str, Any],
    ) -> AggregateInfo:
        """Guard, then conditionally UPDATE; returns the refreshed batch."""
        self._guard(batch, operation)
        transition = transition_for(operation)

        stmt = (
            update(self._model)
            .where(
                self._model.id == batch.id,
                self._model.tenant_id == actor.tenant_id,
                self._model.status.in_([s.value for s in transition.accepted]),
            )
            .values(status=transition.target.value, **values)
            .execution_options(synchronize_session=False)
        )

        t0 = time.monotonic()
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

        current = self._fetch_batch(actor, batch.id)
        if result.rowcount == 0:
            # Another request moved the batch between our read and our write.
            logger.warning(
                "batch_transition_lost_race",
                extra={
                    "operation": operation.value,
                    "expected": list(transition.required_statuses),
                    "current_status": current.status,
                },
            )
            raise InvalidTransitionError(
                self.stage.aggregate_type,
                str(batch.id),
                current.status,
                transition.required_statuses,
                _OPERATION_PHRASES[operation],
            )

        logger.info(
            "batch_status_changed",
            extra={
                "from_status": batch.status,
                "to_status": current.status,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return current

    def _append(
        self,
        actor: ActorContext,
        scope: CorrelationScope,
        batch: AggregateInfo,
        event: LifecycleEvent,
        facts: dict[str, Any],
    ) -> EventRecord:
        payload = {"batchId": str(batch.id), "batchCode": batch.code, **facts}
        return self._events.append(
            actor,
            NewEvent(
                aggregate_type=self.stage.aggregate_type,
                aggregate_id=batch.id,
                event_type=self.stage.event_type(event),
                payload=payload,
            ),
            scope,
        )

    def _append_pool(
        self,
        actor: ActorContext,
        scope: CorrelationScope,
        source: AggregateInfo,
        movement: PoolMovement,
        facts: dict[str, Any],
    ) -> EventRecord:
        payload = {"poolId": str(source.id), "poolCode": source.code, **facts}
        return self._events.append(
            actor,
            NewEvent(
                aggregate_type=self.pool.aggregate_type,
                aggregate_id=source.id,
                event_type=self.pool.event_type(movement),
                payload=payload,
            ),
            scope,
        )
