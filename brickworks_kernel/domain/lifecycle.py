"""
Batch lifecycle -- the hard-coded transition table for production batches.

Responsibility:
    Declares the closed set of batch statuses and, for every lifecycle
    operation, the exact set of source statuses it accepts and the status
    it moves the batch to.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - planned -> active -> completed; planned|active -> cancelled.
    - completed and cancelled are terminal: no operation accepts them.
    - Component changes are accepted while the batch is planned or active
      and do not move the status.

Failure modes:
    - KeyError from transition_for() on an unknown operation (programming
      error, never user input).
"""

from dataclasses import dataclass
from enum import Enum


class BatchStatus(str, Enum):
    """Batch lifecycle status.

    Contract: planned -> active -> completed, planned|active -> cancelled.
    completed and cancelled are terminal.
    """

    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[BatchStatus] = frozenset({
    BatchStatus.COMPLETED,
    BatchStatus.CANCELLED,
})


class LifecycleOperation(str, Enum):
    """Operations that are gated on batch status."""

    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    ADD_COMPONENT = "add_component"
    REMOVE_COMPONENT = "remove_component"


@dataclass(frozen=True)
class Transition:
    """Accepted source statuses and resulting status for one operation.

    ``target`` is None for operations that do not change the status.
    """

    operation: LifecycleOperation
    accepted: frozenset[BatchStatus]
    target: BatchStatus | None

    @property
    def required_statuses(self) -> tuple[str, ...]:
        """Accepted statuses as plain strings, in lifecycle order."""
        return tuple(s.value for s in BatchStatus if s in self.accepted)

    def accepts(self, status: str | BatchStatus) -> bool:
        try:
            return BatchStatus(status) in self.accepted
        except ValueError:
            return False


_OPEN = frozenset({BatchStatus.PLANNED, BatchStatus.ACTIVE})

TRANSITIONS: dict[LifecycleOperation, Transition] = {
    LifecycleOperation.START: Transition(
        LifecycleOperation.START,
        frozenset({BatchStatus.PLANNED}),
        BatchStatus.ACTIVE,
    ),
    LifecycleOperation.COMPLETE: Transition(
        LifecycleOperation.COMPLETE,
        frozenset({BatchStatus.ACTIVE}),
        BatchStatus.COMPLETED,
    ),
    LifecycleOperation.CANCEL: Transition(
        LifecycleOperation.CANCEL,
        _OPEN,
        BatchStatus.CANCELLED,
    ),
    LifecycleOperation.ADD_COMPONENT: Transition(
        LifecycleOperation.ADD_COMPONENT,
        _OPEN,
        None,
    ),
    LifecycleOperation.REMOVE_COMPONENT: Transition(
        LifecycleOperation.REMOVE_COMPONENT,
        _OPEN,
        None,
    ),
}


def transition_for(operation: LifecycleOperation) -> Transition:
    """Return the transition rule for ``operation``."""
    return TRANSITIONS[operation]
