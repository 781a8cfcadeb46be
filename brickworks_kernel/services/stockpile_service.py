"""
StockpileService -- operations on the stockpile resource pool.

Responsibility:
    Creates stockpiles and records the movements and observations that
    drive their derived balance: receipts, signed adjustments, transfers
    between stockpiles, moisture readings and samples.

Architecture position:
    Kernel > Services.  Flushes, never commits.

Invariants enforced:
    - Stockpile rows are never updated after creation; their balance lives
      entirely in the event log (see db/views.py).
    - Adjusting by zero is a no-op: no lookup, no event.
    - Decreasing adjustments and transfers are availability-checked.
    - A transfer emits TRANSFERRED_OUT on the source then TRANSFERRED_IN on
      the destination, under one correlation id.

Failure modes:
    - RoleNotPermittedError, AggregateNotFoundError,
      InsufficientInventoryError, EventPersistenceError, StoreError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from brickworks_kernel.db.upsert import insert_if_absent
from brickworks_kernel.domain.commands import (
    AdjustStockpileCommand,
    CreateStockpileCommand,
    RecordQualityCommand,
    RecordReceiptCommand,
    TakeSampleCommand,
    TransferStockpileCommand,
)
from brickworks_kernel.domain.context import ActorContext
from brickworks_kernel.domain.correlation import CorrelationScope
from brickworks_kernel.domain.stages import PoolDefinition, PoolMovement
from brickworks_kernel.exceptions import StoreError
from brickworks_kernel.logging_config import LogContext, get_logger
from brickworks_kernel.models.stockpile import Stockpile, StockpileStatus
from brickworks_kernel.services.availability import AvailabilityChecker
from brickworks_kernel.services.base import BaseService
from brickworks_kernel.services.entity_accessor import AggregateInfo, EntityAccessor
from brickworks_kernel.services.event_log import EventLogWriter, EventRecord, NewEvent

logger = get_logger("services.stockpile")


@dataclass(frozen=True)
class StockpileResult:
    """Outcome of a stockpile operation.  ``events`` is empty for no-ops."""

    stockpile: AggregateInfo | None
    correlation_id: UUID | None
    events: tuple[EventRecord, ...] = ()
    created: bool = False


class StockpileService(BaseService):
    """
    Stockpile operations for one tenant-scoped resource pool definition.

    Contract:
        ``pool.aggregate_type`` must be ``"stockpile"``.
    """

    def __init__(self, session, pool: PoolDefinition, clock=None, event_source: str = "kernel"):
        super().__init__(session, clock)
        if pool.aggregate_type != "stockpile":
            raise ValueError(f"Pool {pool.key} is not backed by stockpiles")
        self.pool = pool
        self._accessor = EntityAccessor(session, self.clock)
        self._availability = AvailabilityChecker(session, self.clock)
        self._events = EventLogWriter(session, self.clock, source=event_source)

    def create(self, actor: ActorContext, command: CreateStockpileCommand) -> StockpileResult:
        actor.require_role(self.pool.allowed_roles, "create stockpiles")
        scope = CorrelationScope.begin("stockpile.create")

        with self._bound(actor, scope):
            try:
                created = insert_if_absent(
                    self.session,
                    Stockpile,
                    ("tenant_id", "code"),
                    {
                        "id": uuid4(),
                        "tenant_id": actor.tenant_id,
                        "code": command.code,
                        "name": command.name,
                        "location": command.location,
                        "material_type": command.material_type,
                        "status": StockpileStatus.ACTIVE.value,
                    },
                )
                row_id = self.session.execute(
                    select(Stockpile.id).where(
                        Stockpile.tenant_id == actor.tenant_id,
                        Stockpile.code == command.code,
                    )
                ).scalar_one()
            except SQLAlchemyError as exc:
                raise StoreError(str(exc)) from exc

            stockpile = self._fetch(actor, row_id)
            if not created:
                logger.info("stockpile_create_existing", extra={"stockpile_id": str(row_id)})
                return StockpileResult(stockpile, scope.correlation_id)

            event = self._append(
                actor,
                scope,
                stockpile,
                PoolMovement.CREATED,
                {
                    "name": command.name,
                    "location": command.location,
                    "materialType": command.material_type,
                },
            )
            return StockpileResult(stockpile, scope.correlation_id, (event,), created=True)

    def record_receipt(
        self,
        actor: ActorContext,
        command: RecordReceiptCommand,
        scope: CorrelationScope | None = None,
    ) -> StockpileResult:
        """Add stock.  A caller-supplied ``scope`` makes the receipt part of its operation."""
        actor.require_role(self.pool.allowed_roles, "record stockpile receipts")
        scope = scope or CorrelationScope.begin("stockpile.record_receipt")

        with self._bound(actor, scope, command.stockpile_id):
            stockpile = self._fetch(actor, command.stockpile_id)
            event = self._append(
                actor,
                scope,
                stockpile,
                PoolMovement.RECEIPT_RECORDED,
                {
                    "quantity": command.quantity,
                    "unit": self.pool.unit,
                    "reference": command.reference,
                    "notes": command.notes,
                },
            )
            return StockpileResult(stockpile, scope.correlation_id, (event,))

    def adjust(self, actor: ActorContext, command: AdjustStockpileCommand) -> StockpileResult:
        actor.require_role(self.pool.allowed_roles, "adjust stockpiles")
        if command.is_noop:
            logger.info("stockpile_adjust_noop", extra={"stockpile_id": str(command.stockpile_id)})
            return StockpileResult(None, None)

        scope = CorrelationScope.begin("stockpile.adjust")
        with self._bound(actor, scope, command.stockpile_id):
            stockpile = self._fetch(actor, command.stockpile_id)
            magnitude = abs(command.quantity)
            if command.quantity < 0:
                self._availability.check_available(
                    self.pool, stockpile.id, actor.tenant_id, magnitude,
                )
                movement = PoolMovement.ADJUSTED_OUT
            else:
                movement = PoolMovement.ADJUSTED_IN

            event = self._append(
                actor,
                scope,
                stockpile,
                movement,
                {"quantity": magnitude, "unit": self.pool.unit, "reason": command.reason},
            )
            return StockpileResult(stockpile, scope.correlation_id, (event,))

    def record_quality(self, actor: ActorContext, command: RecordQualityCommand) -> StockpileResult:
        actor.require_role(self.pool.allowed_roles, "record stockpile quality")
        scope = CorrelationScope.begin("stockpile.record_quality")

        with self._bound(actor, scope, command.stockpile_id):
            stockpile = self._fetch(actor, command.stockpile_id)
            event = self._append(
                actor,
                scope,
                stockpile,
                PoolMovement.QUALITY_RECORDED,
                {"moisturePct": command.moisture_pct, "notes": command.notes},
            )
            return StockpileResult(stockpile, scope.correlation_id, (event,))

    def take_sample(self, actor: ActorContext, command: TakeSampleCommand) -> StockpileResult:
        actor.require_role(self.pool.allowed_roles, "sample stockpiles")
        scope = CorrelationScope.begin("stockpile.take_sample")

        with self._bound(actor, scope, command.stockpile_id):
            stockpile = self._fetch(actor, command.stockpile_id)
            event = self._append(
                actor,
                scope,
                stockpile,
                PoolMovement.SAMPLE_TAKEN,
                {"sampleCode": command.sample_code, "notes": command.notes},
            )
            return StockpileResult(stockpile, scope.correlation_id, (event,))

    def transfer(self, actor: ActorContext, command: TransferStockpileCommand) -> StockpileResult:
        """
        Move quantity between two stockpiles of the same tenant.

        Both stockpiles are loaded before anything is written, so an unknown
        destination leaves the source untouched.
        """
        actor.require_role(self.pool.allowed_roles, "transfer stock")
        scope = CorrelationScope.begin("stockpile.transfer")

        with self._bound(actor, scope, command.from_stockpile_id):
            source = self._fetch(actor, command.from_stockpile_id)
            destination = self._fetch(actor, command.to_stockpile_id)
            self._availability.check_available(
                self.pool, source.id, actor.tenant_id, command.quantity,
            )

            out_event = self._append(
                actor,
                scope,
                source,
                PoolMovement.TRANSFERRED_OUT,
                {
                    "quantity": command.quantity,
                    "unit": self.pool.unit,
                    "reference": command.reference,
                    "toStockpileId": str(destination.id),
                    "toStockpileCode": destination.code,
                },
            )
            in_event = self._append(
                actor,
                scope,
                destination,
                PoolMovement.TRANSFERRED_IN,
                {
                    "quantity": command.quantity,
                    "unit": self.pool.unit,
                    "reference": command.reference,
                    "fromStockpileId": str(source.id),
                    "fromStockpileCode": source.code,
                },
            )
            return StockpileResult(source, scope.correlation_id, (out_event, in_event))

    def get(self, actor: ActorContext, stockpile_id: UUID | str) -> AggregateInfo:
        return self._fetch(actor, stockpile_id)

    def _fetch(self, actor: ActorContext, stockpile_id: UUID | str) -> AggregateInfo:
        return self._accessor.fetch("stockpile", stockpile_id, actor.tenant_id, "Stockpile")

    def _bound(self, actor: ActorContext, scope: CorrelationScope, stockpile_id: UUID | None = None):
        return LogContext.bind(
            correlation_id=str(scope.correlation_id),
            tenant_id=str(actor.tenant_id),
            actor_id=str(actor.actor_id),
            aggregate_type="stockpile",
            aggregate_id=str(stockpile_id) if stockpile_id is not None else None,
            operation=scope.operation,
        )

    def _append(
        self,
        actor: ActorContext,
        scope: CorrelationScope,
        stockpile: AggregateInfo,
        movement: PoolMovement,
        facts: dict[str, Any],
    ) -> EventRecord:
        payload = {"stockpileId": str(stockpile.id), "code": stockpile.code, **facts}
        return self._events.append(
            actor,
            NewEvent(
                aggregate_type="stockpile",
                aggregate_id=stockpile.id,
                event_type=self.pool.event_type(movement),
                payload=payload,
            ),
            scope,
        )
