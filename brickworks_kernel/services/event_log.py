"""
EventLogWriter -- append-only writer for domain events.

Responsibility:
    Persists one DomainEvent per call, attributed to the actor and tenant
    of the operation, stamped by the injected clock and grouped by the
    operation's CorrelationScope.

Architecture position:
    Kernel > Services.  The single write path into the events table.

Invariants enforced:
    - Insert only; rows are never updated (see db/immutability.py).
    - The payload is stored verbatim after a JSON-serializability check.
    - tenant_id, actor_id and actor_role come from the ActorContext, never
      from the payload.
    - Within a scope, events get positions 1, 2, ... in call order and every
      event after the first names the first as its causation.

Failure modes:
    - EventPersistenceError on a non-serializable payload or any database
      failure during the insert.  The calling operation must treat it as
      fatal; the action boundary rolls back the whole transaction.

Audit relevance:
    Each append logs ``event_appended`` with the correlation id bound, so
    the log stream and the events table can be joined.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError

from brickworks_kernel.domain.context import ActorContext
from brickworks_kernel.domain.correlation import CorrelationScope
from brickworks_kernel.exceptions import EventPersistenceError
from brickworks_kernel.logging_config import LogContext, get_logger
from brickworks_kernel.models.event import DomainEvent
from brickworks_kernel.services.base import BaseService

logger = get_logger("services.event_log")

DEFAULT_EVENT_SOURCE = "kernel"


@dataclass(frozen=True)
class NewEvent:
    """An event to append.  correlation/causation come from the scope."""

    aggregate_type: str
    aggregate_id: UUID | str
    event_type: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    causation_id: UUID | str | None = None


@dataclass(frozen=True)
class EventRecord:
    """Immutable DTO for a stored event."""

    id: UUID
    tenant_id: UUID
    actor_id: UUID
    actor_role: str
    aggregate_type: str
    aggregate_id: str
    event_type: str
    payload: dict[str, Any]
    source: str
    correlation_id: str | None
    causation_id: str | None
    position: int
    occurred_at: datetime


def to_event_record(row: DomainEvent) -> EventRecord:
    """Convert ORM DomainEvent to EventRecord DTO."""
    return EventRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        actor_id=row.actor_id,
        actor_role=row.actor_role,
        aggregate_type=row.aggregate_type,
        aggregate_id=row.aggregate_id,
        event_type=row.event_type,
        payload=dict(row.payload or {}),
        source=row.source,
        correlation_id=row.correlation_id,
        causation_id=row.causation_id,
        position=row.position,
        occurred_at=row.occurred_at,
    )


class EventLogWriter(BaseService):
    """
    Append-only event writer.

    Contract:
        ``append`` either stores the event (flushed, not committed) and
        returns its record, or raises EventPersistenceError.
    """

    def __init__(self, session, clock=None, source: str = DEFAULT_EVENT_SOURCE):
        super().__init__(session, clock)
        self.source = source

    def append(
        self,
        actor: ActorContext,
        new_event: NewEvent,
        scope: CorrelationScope | None = None,
    ) -> EventRecord:
        payload = dict(new_event.payload)
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as exc:
            raise EventPersistenceError(
                new_event.event_type, f"payload is not JSON-serializable ({exc})"
            ) from exc

        event_id = uuid4()
        if scope is not None:
            position, causation = scope.next_position(event_id)
            correlation_id = str(scope.correlation_id)
        else:
            position, causation, correlation_id = 1, None, None
        if new_event.causation_id is not None:
            causation = new_event.causation_id

        row = DomainEvent(
            id=event_id,
            tenant_id=actor.tenant_id,
            actor_id=actor.actor_id,
            actor_role=actor.role,
            aggregate_type=new_event.aggregate_type,
            aggregate_id=str(new_event.aggregate_id),
            event_type=new_event.event_type,
            payload=payload,
            source=self.source,
            correlation_id=correlation_id,
            causation_id=str(causation) if causation is not None else None,
            position=position,
            occurred_at=self.clock.now(),
        )

        try:
            self.session.add(row)
            self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "event_append_failed",
                extra={"event_type": new_event.event_type},
                exc_info=True,
            )
            raise EventPersistenceError(new_event.event_type, str(exc)) from exc

        with LogContext.bind(correlation_id=correlation_id):
            logger.info(
                "event_appended",
                extra={
                    "event_id": str(event_id),
                    "event_type": new_event.event_type,
                    "event_aggregate_type": new_event.aggregate_type,
                    "event_aggregate_id": str(new_event.aggregate_id),
                    "position": position,
                },
            )

        return to_event_record(row)
