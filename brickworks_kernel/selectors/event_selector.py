"""
Module: brickworks_kernel.selectors.event_selector
Responsibility: Read access to the event log, by aggregate or by
    correlation id.
Architecture position: Kernel > Selectors.  Returns the EventRecord DTO
    defined next to the writer (services/event_log.py).

Invariants enforced:
    - Tenant-scoped: events of another tenant are never returned.
    - Ordering is (occurred_at, position, id), so the events of one
      operation come back in the order they were appended.

Failure modes:
    - Returns an empty list when nothing matches; never raises on absence.
"""

from uuid import UUID

from sqlalchemy import func, select

from brickworks_kernel.models.event import DomainEvent
from brickworks_kernel.selectors.base import BaseSelector
from brickworks_kernel.services.event_log import EventRecord, to_event_record


class EventSelector(BaseSelector):
    """Queries over the append-only events table."""

    def _ordered(self, stmt):
        return stmt.order_by(
            DomainEvent.occurred_at,
            DomainEvent.position,
            DomainEvent.id,
        )

    def for_aggregate(
        self,
        tenant_id: UUID,
        aggregate_type: str,
        aggregate_id: UUID | str,
    ) -> list[EventRecord]:
        """All events recorded against one aggregate, oldest first."""
        stmt = self._ordered(
            select(DomainEvent).where(
                DomainEvent.tenant_id == tenant_id,
                DomainEvent.aggregate_type == aggregate_type,
                DomainEvent.aggregate_id == str(aggregate_id),
            )
        )
        return [to_event_record(row) for row in self.session.scalars(stmt)]

    def for_correlation(self, tenant_id: UUID, correlation_id: UUID | str) -> list[EventRecord]:
        """All events emitted by one operation, in append order."""
        stmt = self._ordered(
            select(DomainEvent).where(
                DomainEvent.tenant_id == tenant_id,
                DomainEvent.correlation_id == str(correlation_id),
            )
        )
        return [to_event_record(row) for row in self.session.scalars(stmt)]

    def count_by_type(self, tenant_id: UUID, event_type: str) -> int:
        stmt = select(func.count(DomainEvent.id)).where(
            DomainEvent.tenant_id == tenant_id,
            DomainEvent.event_type == event_type,
        )
        return self.session.execute(stmt).scalar_one()
