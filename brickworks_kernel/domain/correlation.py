"""
CorrelationScope -- one logical operation's correlation identifier.

Responsibility:
    Generates the correlation id once per lifecycle operation and numbers
    the events appended within it, so every event of one operation can be
    found and ordered together.

Architecture position:
    Kernel > Domain -- pure value object.  The only mutable state is the
    per-scope event counter, which never outlives the operation.

Invariants enforced:
    - The correlation id never changes for the life of the scope.
    - Positions are 1, 2, 3 ... in append order.
    - The first event of a scope is the causation of the later ones.
"""

from __future__ import annotations

from uuid import UUID, uuid4


class CorrelationScope:
    """
    Correlation id plus append counter for one operation.

    Usage::

        scope = CorrelationScope.begin("add_component")
        writer.append(actor, batch_event, scope)
        writer.append(actor, pool_event, scope)
    """

    __slots__ = ("correlation_id", "operation", "_position", "_root_event_id")

    def __init__(self, correlation_id: UUID, operation: str | None = None):
        self.correlation_id = correlation_id
        self.operation = operation
        self._position = 0
        self._root_event_id: UUID | None = None

    @classmethod
    def begin(cls, operation: str | None = None) -> CorrelationScope:
        return cls(uuid4(), operation)

    @property
    def position(self) -> int:
        """Number of events appended so far."""
        return self._position

    @property
    def root_event_id(self) -> UUID | None:
        return self._root_event_id

    def next_position(self, event_id: UUID) -> tuple[int, UUID | None]:
        """Claim the next position; returns (position, causation id)."""
        self._position += 1
        causation = self._root_event_id
        if self._root_event_id is None:
            self._root_event_id = event_id
        return self._position, causation

    def __repr__(self) -> str:
        return f"<CorrelationScope {self.correlation_id} {self.operation or ''}>"
