"""
Module: brickworks_kernel.models.event
Responsibility: ORM persistence for domain events -- the append-only audit
    trail of every lifecycle operation.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Event rows are never updated or deleted (ORM listeners registered by
      db/immutability.py).
    - Every event carries the tenant, actor and role of the operation that
      produced it.

Failure modes:
    - ImmutabilityViolationError on any UPDATE or DELETE flush of an event.
    - StatementError if the payload is not JSON-serializable.

Audit relevance:
    The events table is the sole record of "what happened".  correlation_id
    groups the events of one logical operation; position orders them inside
    that operation; causation_id links an event to the event that caused it.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from brickworks_kernel.db.base import TenantScopedBase, UUIDString


class DomainEvent(TenantScopedBase):
    """
    Immutable record of one business fact.

    Contract:
        Once INSERTed, no column may change and the row may not be deleted.

    Guarantees:
        - occurred_at is assigned by the kernel's clock, never by the caller.
        - payload is stored verbatim.

    Non-goals:
        - This model does NOT validate payload shape; event payloads are
          open-ended business facts.
    """

    __tablename__ = "events"

    __table_args__ = (
        Index("idx_event_aggregate", "tenant_id", "aggregate_type", "aggregate_id"),
        Index("idx_event_correlation", "tenant_id", "correlation_id"),
        Index("idx_event_type_occurred", "event_type", "occurred_at"),
    )

    actor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    actor_role: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
    )

    # e.g. "mix_batch", "stockpile"
    aggregate_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    aggregate_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # e.g. "MIX_COMPONENT_ADDED"
    event_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    source: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        default="kernel",
    )

    correlation_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    causation_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    # 1-based order of this event within its correlation scope
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
    )

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DomainEvent {self.event_type} {self.aggregate_type}:{self.aggregate_id}>"
