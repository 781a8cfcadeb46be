"""
Typed Exception Hierarchy for the Brickworks Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every lifecycle operation either fully succeeds or fails with exactly one
typed error.  Callers (the action boundary, scripts, tests) branch on the
exception class and its ``code``, never on the message text.  Messages are
still written for humans because the action boundary surfaces them verbatim.

    try:
        service.start(actor, StartBatchCommand(batch_id=batch_id))
    except InvalidTransitionError as e:
        log.warning("cannot start", extra={"status": e.current_status})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BrickworksError:

    BrickworksError (base)
    |
    +-- AccessError
    |   +-- UnauthenticatedError
    |   +-- ProfileRequiredError
    |   +-- RoleNotPermittedError
    |
    +-- ValidationError
    |
    +-- AggregateNotFoundError
    |
    +-- LifecycleError
    |   +-- InvalidTransitionError
    |   +-- SourceNotReadyError
    |   +-- ShiftConflictError
    |   +-- VehicleUnavailableError
    |
    +-- InventoryError
    |   +-- InsufficientInventoryError
    |   +-- ExcessComponentRemovalError
    |
    +-- PersistenceError
    |   +-- EventPersistenceError
    |   +-- StoreError
    |   +-- ViewMissingError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                    | When Raised
-------------|-------------------------|------------------------------------------
Access       | UNAUTHENTICATED         | No signed-in identity
             | PROFILE_REQUIRED        | Identity has no tenant profile
             | ROLE_NOT_PERMITTED      | Role may not run the operation
-------------|-------------------------|------------------------------------------
Validation   | VALIDATION_ERROR        | Malformed or out-of-range input
-------------|-------------------------|------------------------------------------
Lookup       | AGGREGATE_NOT_FOUND     | Row absent OR owned by another tenant
-------------|-------------------------|------------------------------------------
Lifecycle    | INVALID_TRANSITION      | Current status not in accepted set
             | SOURCE_NOT_READY        | Supplying batch not yet completed
             | SHIFT_CONFLICT          | Operator or vehicle already on a shift
             | VEHICLE_UNAVAILABLE     | Vehicle in maintenance or retired
-------------|-------------------------|------------------------------------------
Inventory    | INSUFFICIENT_INVENTORY  | Available quantity below requested
             | EXCESS_COMPONENT_REMOVAL| Removal above net quantity drawn
-------------|-------------------------|------------------------------------------
Persistence  | EVENT_PERSISTENCE_ERROR | Event append failed
             | STORE_ERROR             | Generic backing-store failure
             | VIEW_MISSING            | Read-model view not provisioned
-------------|-------------------------|------------------------------------------
Immutability | IMMUTABILITY_VIOLATION  | UPDATE/DELETE on an event row

===============================================================================
"""


class BrickworksError(Exception):
    """
    Base exception for all brickworks kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "BRICKWORKS_ERROR"


# Access-related exceptions


class AccessError(BrickworksError):
    """Base exception for actor resolution and authorization failures."""

    code: str = "ACCESS_ERROR"


class UnauthenticatedError(AccessError):
    """No signed-in identity is available for the operation."""

    code: str = "UNAUTHENTICATED"

    def __init__(self, message: str = "Authentication required."):
        super().__init__(message)


class ProfileRequiredError(AccessError):
    """The identity is signed in but has no tenant profile."""

    code: str = "PROFILE_REQUIRED"

    def __init__(self, identity_id: str | None = None):
        self.identity_id = identity_id
        super().__init__("A profile is required to perform this action.")


class RoleNotPermittedError(AccessError):
    """The actor's role may not perform the requested operation."""

    code: str = "ROLE_NOT_PERMITTED"

    def __init__(self, role: str, operation: str, allowed_roles: tuple[str, ...]):
        self.role = role
        self.operation = operation
        self.allowed_roles = allowed_roles
        super().__init__(
            f"Role {role} is not permitted to {operation}."
        )


# Validation


class ValidationError(BrickworksError):
    """
    Malformed or out-of-range input.

    The message is field-level and human readable; it is surfaced to the
    caller unchanged by the action boundary.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(message)


# Lookup


class AggregateNotFoundError(BrickworksError):
    """
    Aggregate does not exist within the actor's tenant.

    Deliberately carries no tenant information: a row owned by another
    tenant and a missing row produce identical errors.
    """

    code: str = "AGGREGATE_NOT_FOUND"

    def __init__(self, aggregate_type: str, aggregate_id: str, label: str | None = None):
        self.aggregate_type = aggregate_type
        self.aggregate_id = aggregate_id
        noun = label or aggregate_type.replace("_", " ").capitalize()
        super().__init__(f"{noun} not found.")


# Lifecycle


class LifecycleError(BrickworksError):
    """Base exception for lifecycle precondition failures."""

    code: str = "LIFECYCLE_ERROR"


class InvalidTransitionError(LifecycleError):
    """The aggregate's current status is not accepted by the operation."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        aggregate_type: str,
        aggregate_id: str,
        current_status: str,
        required_statuses: tuple[str, ...],
        operation: str,
    ):
        self.aggregate_type = aggregate_type
        self.aggregate_id = aggregate_id
        self.current_status = current_status
        self.required_statuses = required_statuses
        self.operation = operation
        required = " or ".join(required_statuses)
        super().__init__(
            f"Cannot {operation} a {current_status} "
            f"{aggregate_type.replace('_', ' ')}; status must be {required}."
        )


class SourceNotReadyError(LifecycleError):
    """A batch used as a supplying pool has not reached the required status."""

    code: str = "SOURCE_NOT_READY"

    def __init__(
        self,
        aggregate_type: str,
        aggregate_id: str,
        current_status: str,
        required_status: str,
        label: str | None = None,
    ):
        self.aggregate_type = aggregate_type
        self.aggregate_id = aggregate_id
        self.current_status = current_status
        self.required_status = required_status
        plural = label or f"{aggregate_type.replace('_', ' ')} records"
        super().__init__(f"Only {required_status} {plural} can supply input.")


class ShiftConflictError(LifecycleError):
    """An operator or vehicle is already tied up in another active shift."""

    code: str = "SHIFT_CONFLICT"


class VehicleUnavailableError(LifecycleError):
    """The vehicle is in maintenance or retired."""

    code: str = "VEHICLE_UNAVAILABLE"

    def __init__(self, vehicle_id: str, status: str):
        self.vehicle_id = vehicle_id
        self.status = status
        super().__init__("Vehicle is not available for assignment.")


# Inventory


class InventoryError(BrickworksError):
    """Base exception for resource pool quantity failures."""

    code: str = "INVENTORY_ERROR"


class InsufficientInventoryError(InventoryError):
    """The pool's available quantity is below the requested quantity."""

    code: str = "INSUFFICIENT_INVENTORY"

    def __init__(self, pool_id: str, available: float, requested: float, unit: str = "t"):
        self.pool_id = pool_id
        self.available = available
        self.requested = requested
        self.unit = unit
        super().__init__(
            f"Insufficient inventory. Available {_format_quantity(available)} {unit}, "
            f"requested {_format_quantity(requested)} {unit}."
        )


class ExcessComponentRemovalError(InventoryError):
    """A removal asks for more than the batch has drawn, net, from that source."""

    code: str = "EXCESS_COMPONENT_REMOVAL"

    def __init__(self, batch_id: str, pool_id: str, drawn: float, requested: float, unit: str = "t"):
        self.batch_id = batch_id
        self.pool_id = pool_id
        self.drawn = drawn
        self.requested = requested
        self.unit = unit
        super().__init__(
            f"Cannot remove {_format_quantity(requested)} {unit}. Only "
            f"{_format_quantity(drawn)} {unit} was drawn from this source."
        )


# Persistence


class PersistenceError(BrickworksError):
    """Base exception for backing-store failures."""

    code: str = "PERSISTENCE_ERROR"


class EventPersistenceError(PersistenceError):
    """Appending to the event log failed; the whole operation is void."""

    code: str = "EVENT_PERSISTENCE_ERROR"

    def __init__(self, event_type: str, reason: str):
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"Failed to record {event_type}: {reason}")


class StoreError(PersistenceError):
    """Generic backing-store failure; the driver message is passed through."""

    code: str = "STORE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)


class ViewMissingError(PersistenceError):
    """
    A read-model view is not provisioned.

    Recoverable: callers translate it into "no data" (reports) or a
    skipped check (availability).
    """

    code: str = "VIEW_MISSING"

    def __init__(self, view_name: str):
        self.view_name = view_name
        super().__init__(f"View {view_name} is not available.")


# Immutability


class ImmutabilityViolationError(BrickworksError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


def _format_quantity(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
