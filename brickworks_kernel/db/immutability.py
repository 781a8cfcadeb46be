"""
ORM-Level Immutability Enforcement for the event log.

===============================================================================
HOW IT WORKS
===============================================================================

Domain events are the audit trail of every lifecycle operation.  Once a
DomainEvent row is written it may never be changed or removed.

Two kinds of listener are registered:

    session.flush()
         |
         v
    [before_update / before_delete on DomainEvent] --> ImmutabilityViolationError

    session.execute(update(DomainEvent) / delete(DomainEvent))
         |
         v
    [Session do_orm_execute] --> ImmutabilityViolationError

The second listener catches ORM-enabled bulk UPDATE/DELETE statements, which
bypass the per-instance mapper events.  Raw SQL on the connection is not
covered; that belongs to database permissions.

===============================================================================
USAGE
===============================================================================

    register_immutability_listeners()    # at application start
    unregister_immutability_listeners()  # tests only

Both functions are idempotent.
"""

from sqlalchemy import event
from sqlalchemy.orm import ORMExecuteState, Session

from brickworks_kernel.exceptions import ImmutabilityViolationError
from brickworks_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_event_update(mapper, connection, target):
    """Prevent any updates to DomainEvent records."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "DomainEvent",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="DomainEvent",
        entity_id=str(target.id),
        reason="Events are append-only and cannot be modified",
    )


def _check_event_delete(mapper, connection, target):
    """Prevent deletion of DomainEvent records."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "DomainEvent",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="DomainEvent",
        entity_id=str(target.id),
        reason="Events are append-only and cannot be deleted",
    )


def _check_bulk_event_statement(orm_execute_state: ORMExecuteState):
    """Reject ORM bulk UPDATE/DELETE statements against the events table."""
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return

    from brickworks_kernel.models.event import DomainEvent

    for mapper in orm_execute_state.all_mappers:
        if mapper.class_ is DomainEvent:
            operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "DomainEvent",
                    "entity_id": "*",
                    "operation": f"BULK {operation}",
                },
            )
            raise ImmutabilityViolationError(
                entity_type="DomainEvent",
                entity_id="*",
                reason=f"Bulk {operation.lower()} of events is not allowed",
            )


def register_immutability_listeners():
    """
    Register the event-log immutability listeners.

    Call after models are imported and before any database operation.
    """
    from brickworks_kernel.models.event import DomainEvent

    if not event.contains(DomainEvent, "before_update", _check_event_update):
        event.listen(DomainEvent, "before_update", _check_event_update)
    if not event.contains(DomainEvent, "before_delete", _check_event_delete):
        event.listen(DomainEvent, "before_delete", _check_event_delete)
    if not event.contains(Session, "do_orm_execute", _check_bulk_event_statement):
        event.listen(Session, "do_orm_execute", _check_bulk_event_statement)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the event-log immutability listeners.

    WARNING: Only use this in tests that intentionally tamper with events.
    """
    from brickworks_kernel.models.event import DomainEvent

    _safe_remove_listener(DomainEvent, "before_update", _check_event_update)
    _safe_remove_listener(DomainEvent, "before_delete", _check_event_delete)
    _safe_remove_listener(Session, "do_orm_execute", _check_bulk_event_statement)
