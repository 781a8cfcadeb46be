"""
Action boundary -- transaction ownership and the caller-facing result shape.

Responsibility:
    Runs one lifecycle operation for the current actor: resolves the actor,
    calls the service, commits on success and rolls back on failure, and
    reduces every expected failure to a single human-readable message.

Architecture position:
    Kernel > Services -- the outermost kernel layer.  Form handlers,
    scripts and tests call this; nothing inside the kernel does.

Invariants enforced:
    - One action == one transaction.  The batch row change and every event
      of the operation commit together or not at all.
    - A failed action leaves no partial state: the session is rolled back
      before the failure result is returned.
    - There is no partial-success shape.  ``ok`` is True XOR ``error`` is
      set.

Failure modes:
    - BrickworksError subclasses become ``ActionResult.failure`` with the
      error's message and code.
    - SQLAlchemyError becomes a STORE_ERROR failure.
    - Anything else is logged with traceback and re-raised after rollback.

Audit relevance:
    Every action logs ``<operation>_started`` and then exactly one of
    ``<operation>_completed`` / ``<operation>_failed`` with duration_ms.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from brickworks_kernel.domain.clock import Clock
from brickworks_kernel.domain.commands import (
    AddComponentCommand,
    AdjustStockpileCommand,
    CancelBatchCommand,
    CompleteBatchCommand,
    CreateBatchCommand,
    CreateStockpileCommand,
    EndShiftCommand,
    RecordLoadCommand,
    RecordQualityCommand,
    RecordReceiptCommand,
    RegisterVehicleCommand,
    RemoveComponentCommand,
    StartBatchCommand,
    StartShiftCommand,
    TakeSampleCommand,
    TransferStockpileCommand,
)
from brickworks_kernel.domain.context import ActorContext, ActorResolver, require_actor
from brickworks_kernel.domain.stages import PoolDefinition, StageDefinition
from brickworks_kernel.exceptions import BrickworksError, StoreError
from brickworks_kernel.logging_config import LogContext, get_logger
from brickworks_kernel.services.batch_lifecycle import BatchLifecycleService
from brickworks_kernel.services.mining_service import MiningService
from brickworks_kernel.services.stockpile_service import StockpileService

logger = get_logger("services.actions")

T = TypeVar("T")


@dataclass(frozen=True)
class ActionResult(Generic[T]):
    """
    Result of one action.

    ``value`` is the service's return value on success; ``error`` is a
    single message suitable for display and ``code`` its machine-readable
    error code on failure.
    """

    ok: bool
    value: T | None = None
    error: str | None = None
    code: str | None = None

    @classmethod
    def success(cls, value: T | None = None) -> ActionResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, code: str | None = None) -> ActionResult[T]:
        return cls(ok=False, error=error, code=code)


def run_action(
    session: Session,
    resolver: ActorResolver,
    operation: str,
    fn: Callable[[ActorContext], T],
    auto_commit: bool = True,
) -> ActionResult[T]:
    """
    Run ``fn(actor)`` as one transaction.

    Commands should be constructed inside ``fn`` so that input validation
    errors are reported through the same result shape.

    Args:
        session: Session the service writes through.
        resolver: Supplies the current actor.
        operation: Log name, e.g. ``"mixing.start"``.
        fn: The operation body.
        auto_commit: Commit/rollback here.  Pass False when the caller owns
            the transaction.
    """
    log_name = operation.replace(".", "_")
    with LogContext.bind(operation=operation):
        logger.info(f"{log_name}_started")
        t0 = time.monotonic()

        try:
            actor = require_actor(resolver)
            with LogContext.bind(
                tenant_id=str(actor.tenant_id),
                actor_id=str(actor.actor_id),
            ):
                value = fn(actor)
                if auto_commit:
                    session.commit()
                logger.info(
                    f"{log_name}_completed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                )
                return ActionResult.success(value)

        except BrickworksError as exc:
            if auto_commit:
                session.rollback()
            logger.warning(
                f"{log_name}_failed",
                extra={
                    "error_code": exc.code,
                    "error": str(exc),
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return ActionResult.failure(str(exc), exc.code)

        except SQLAlchemyError as exc:
            if auto_commit:
                session.rollback()
            wrapped = StoreError(str(getattr(exc, "orig", None) or exc))
            logger.error(
                f"{log_name}_failed",
                extra={
                    "error_code": wrapped.code,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
                exc_info=True,
            )
            return ActionResult.failure(str(wrapped), wrapped.code)

        except Exception:
            if auto_commit:
                session.rollback()
            logger.error(
                f"{log_name}_failed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                exc_info=True,
            )
            raise


class PlantActions:
    """
    Raw-input entry points for every configured stage and pool.

    Each method takes the mapping a form or script submits, builds the
    command from it and runs the matching service call through
    run_action().

    Contract:
        ``stages`` and ``pools`` are keyed by their definition keys (as
        produced by brickworks_config.get_active_config()).  Unknown keys
        are programming errors and raise KeyError.
    """

    def __init__(
        self,
        session: Session,
        resolver: ActorResolver,
        stages: Mapping[str, StageDefinition],
        pools: Mapping[str, PoolDefinition],
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        self.session = session
        self.resolver = resolver
        self.stages = stages
        self.pools = pools
        self.clock = clock
        self.auto_commit = auto_commit

    def lifecycle(self, stage_key: str) -> BatchLifecycleService:
        stage = self.stages[stage_key]
        return BatchLifecycleService(
            self.session, stage, self.pools[stage.input_pool], self.clock,
        )

    def stockpiles(self, pool_key: str = "stockpile") -> StockpileService:
        return StockpileService(self.session, self.pools[pool_key], self.clock)

    def mining(self, pool_key: str = "stockpile") -> MiningService:
        return MiningService(self.session, self.pools[pool_key], self.clock)

    def _run(self, operation: str, fn: Callable[[ActorContext], T]) -> ActionResult[T]:
        return run_action(self.session, self.resolver, operation, fn, self.auto_commit)

    # Production batches

    def create_batch(self, stage_key: str, raw: Mapping[str, Any]) -> ActionResult:
        service = self.lifecycle(stage_key)
        return self._run(
            f"{stage_key}.create",
            lambda actor: service.create(actor, CreateBatchCommand.from_raw(raw)),
        )

    def add_component(self, stage_key: str, raw: Mapping[str, Any]) -> ActionResult:
        service = self.lifecycle(stage_key)
        return self._run(
            f"{stage_key}.add_component",
            lambda actor: service.add_component(actor, AddComponentCommand.from_raw(raw)),
        )

    def remove_component(self, stage_key: str, raw: Mapping[str, Any]) -> ActionResult:
        service = self.lifecycle(stage_key)
        return self._run(
            f"{stage_key}.remove_component",
            lambda actor: service.remove_component(actor, RemoveComponentCommand.from_raw(raw)),
        )

    def start_batch(self, stage_key: str, raw: Mapping[str, Any]) -> ActionResult:
        service = self.lifecycle(stage_key)
        return self._run(
            f"{stage_key}.start",
            lambda actor: service.start(actor, StartBatchCommand.from_raw(raw)),
        )

    def complete_batch(self, stage_key: str, raw: Mapping[str, Any]) -> ActionResult:
        service = self.lifecycle(stage_key)
        return self._run(
            f"{stage_key}.complete",
            lambda actor: service.complete(actor, CompleteBatchCommand.from_raw(raw)),
        )

    def cancel_batch(self, stage_key: str, raw: Mapping[str, Any]) -> ActionResult:
        service = self.lifecycle(stage_key)
        return self._run(
            f"{stage_key}.cancel",
            lambda actor: service.cancel(actor, CancelBatchCommand.from_raw(raw)),
        )

    # Stockpiles

    def create_stockpile(self, raw: Mapping[str, Any]) -> ActionResult:
        service = self.stockpiles()
        return self._run(
            "stockpile.create",
            lambda actor: service.create(actor, CreateStockpileCommand.from_raw(raw)),
        )

    def record_receipt(self, raw: Mapping[str, Any]) -> ActionResult:
        service = self.stockpiles()
        return self._run(
            "stockpile.record_receipt",
            lambda actor: service.record_receipt(actor, RecordReceiptCommand.from_raw(raw)),
        )

    def adjust_stockpile(self, raw: Mapping[str, Any]) -> ActionResult:
        service = self.stockpiles()
        return self._run(
            "stockpile.adjust",
            lambda actor: service.adjust(actor, AdjustStockpileCommand.from_raw(raw)),
        )

    def record_quality(self, raw: Mapping[str, Any]) -> ActionResult:
        service = self.stockpiles()
        return self._run(
            "stockpile.record_quality",
            lambda actor: service.record_quality(actor, RecordQualityCommand.from_raw(raw)),
        )

    def take_sample(self, raw: Mapping[str, Any]) -> ActionResult:
        service = self.stockpiles()
        return self._run(
            "stockpile.take_sample",
            lambda actor: service.take_sample(actor, TakeSampleCommand.from_raw(raw)),
        )

    def transfer_stock(self, raw: Mapping[str, Any]) -> ActionResult:
        service = self.stockpiles()
        return self._run(
            "stockpile.transfer",
            lambda actor: service.transfer(actor, TransferStockpileCommand.from_raw(raw)),
        )

    # Mining

    def register_vehicle(self, raw: Mapping[str, Any]) -> ActionResult:
        service = self.mining()
        return self._run(
            "mining.register_vehicle",
            lambda actor: service.register_vehicle(actor, RegisterVehicleCommand.from_raw(raw)),
        )

    def start_shift(self, raw: Mapping[str, Any]) -> ActionResult:
        service = self.mining()
        return self._run(
            "mining.start_shift",
            lambda actor: service.start_shift(actor, StartShiftCommand.from_raw(raw)),
        )

    def end_shift(self, raw: Mapping[str, Any]) -> ActionResult:
        service = self.mining()
        return self._run(
            "mining.end_shift",
            lambda actor: service.end_shift(actor, EndShiftCommand.from_raw(raw)),
        )

    def record_load(self, raw: Mapping[str, Any]) -> ActionResult:
        service = self.mining()
        return self._run(
            "mining.record_load",
            lambda actor: service.record_load(actor, RecordLoadCommand.from_raw(raw)),
        )
