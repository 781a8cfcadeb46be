"""
Commands -- typed, self-validating inputs for every lifecycle operation.

Responsibility:
    Turns loosely-typed form input into frozen command objects.  Validation
    happens at construction: a command that exists is a command that is
    valid, so services never re-check shapes.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Transfer quantities are finite and strictly positive.
    - Numeric strings are coerced (" 12.5 " -> 12.5); blank optional numbers
      become None; non-numeric, non-finite and out-of-range values are
      rejected.
    - Codes and other required text are non-empty after trimming.
    - Identifiers are UUIDs.

Failure modes:
    - ValidationError(field, message) for every rejected input.  Messages
      are human readable and surfaced verbatim by the action boundary.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import MISSING, dataclass, fields
from typing import Any
from uuid import UUID

from brickworks_kernel.exceptions import ValidationError

# ---------------------------------------------------------------------------
# Normalization helpers
# ---------------------------------------------------------------------------


def _to_float(value: Any, field: str, label: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(field, f"{label} must be a number.")
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(field, f"{label} must be a number.") from None
    if not math.isfinite(number):
        raise ValidationError(field, f"{label} must be a finite number.")
    return number


def coerce_quantity(value: Any, field: str = "quantity", label: str = "Quantity") -> float:
    """
    Normalize a transfer quantity.

    Accepts int, float, Decimal or a numeric string.  The result is finite
    and strictly positive.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(field, f"{label} is required.")
    number = _to_float(value, field, label)
    if number <= 0:
        raise ValidationError(field, f"{label} must be greater than zero.")
    return number


def coerce_signed_quantity(value: Any, field: str = "quantity", label: str = "Quantity") -> float:
    """Normalize a signed quantity (adjustments). Zero is allowed."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(field, f"{label} is required.")
    return _to_float(value, field, label)


def coerce_optional_number(
    value: Any,
    field: str,
    label: str,
    *,
    minimum: float | None = 0.0,
    maximum: float | None = None,
) -> float | None:
    """Normalize an optional measurement; None or blank means absent."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    number = _to_float(value, field, label)
    if minimum is not None and number < minimum:
        if minimum == 0:
            raise ValidationError(field, f"{label} cannot be negative.")
        raise ValidationError(field, f"{label} must be at least {minimum:g}.")
    if maximum is not None and number > maximum:
        raise ValidationError(field, f"{label} must be at most {maximum:g}.")
    return number


def require_text(value: Any, field: str, label: str, max_length: int | None = None) -> str:
    """Trimmed, non-empty text."""
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(field, f"{label} is required.")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(field, f"{label} must be at most {max_length} characters.")
    return text


def optional_text(value: Any, field: str = "", max_length: int | None = None) -> str | None:
    """Trimmed text, or None when blank."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(field, f"{field} must be at most {max_length} characters.")
    return text


def coerce_uuid(value: Any, field: str, label: str) -> UUID:
    if isinstance(value, UUID):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(field, f"{label} is required.")
    try:
        return UUID(str(value).strip())
    except ValueError:
        raise ValidationError(field, f"{label} is not a valid identifier.") from None


# ---------------------------------------------------------------------------
# Command base
# ---------------------------------------------------------------------------


class Command:
    """Mixin giving every command a tolerant ``from_raw`` constructor."""

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]):
        """
        Build a command from form-style input.

        Unknown keys are ignored.  A missing required key is passed as None
        so it fails with the same ValidationError as an empty value.
        """
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name in data:
                kwargs[f.name] = data[f.name]
            elif f.default is MISSING and f.default_factory is MISSING:
                kwargs[f.name] = None
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Batch commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateBatchCommand(Command):
    code: str
    target_output: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", require_text(self.code, "code", "Code", max_length=50))
        object.__setattr__(
            self,
            "target_output",
            coerce_optional_number(self.target_output, "target_output", "Target output"),
        )


@dataclass(frozen=True)
class AddComponentCommand(Command):
    batch_id: UUID
    pool_id: UUID
    quantity: float
    material_type: str
    reference: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "batch_id", coerce_uuid(self.batch_id, "batch_id", "Batch"))
        object.__setattr__(self, "pool_id", coerce_uuid(self.pool_id, "pool_id", "Source"))
        object.__setattr__(self, "quantity", coerce_quantity(self.quantity))
        object.__setattr__(
            self,
            "material_type",
            require_text(self.material_type, "material_type", "Material type", max_length=100),
        )
        object.__setattr__(self, "reference", optional_text(self.reference, "reference", 200))


@dataclass(frozen=True)
class RemoveComponentCommand(Command):
    batch_id: UUID
    pool_id: UUID
    quantity: float
    reference: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "batch_id", coerce_uuid(self.batch_id, "batch_id", "Batch"))
        object.__setattr__(self, "pool_id", coerce_uuid(self.pool_id, "pool_id", "Source"))
        object.__setattr__(self, "quantity", coerce_quantity(self.quantity))
        object.__setattr__(self, "reference", optional_text(self.reference, "reference", 200))


@dataclass(frozen=True)
class StartBatchCommand(Command):
    batch_id: UUID

    def __post_init__(self) -> None:
        object.__setattr__(self, "batch_id", coerce_uuid(self.batch_id, "batch_id", "Batch"))


@dataclass(frozen=True)
class CompleteBatchCommand(Command):
    batch_id: UUID
    output_quantity: float | None = None
    quality_metric: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "batch_id", coerce_uuid(self.batch_id, "batch_id", "Batch"))
        object.__setattr__(
            self,
            "output_quantity",
            coerce_optional_number(self.output_quantity, "output_quantity", "Output quantity"),
        )
        object.__setattr__(
            self,
            "quality_metric",
            coerce_optional_number(self.quality_metric, "quality_metric", "Quality metric"),
        )


@dataclass(frozen=True)
class CancelBatchCommand(Command):
    batch_id: UUID
    reason: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "batch_id", coerce_uuid(self.batch_id, "batch_id", "Batch"))
        object.__setattr__(self, "reason", optional_text(self.reason, "reason", 500))


# ---------------------------------------------------------------------------
# Stockpile commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateStockpileCommand(Command):
    code: str
    name: str | None = None
    location: str | None = None
    material_type: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", require_text(self.code, "code", "Code", max_length=50))
        object.__setattr__(self, "name", optional_text(self.name, "name", 255))
        object.__setattr__(self, "location", optional_text(self.location, "location", 255))
        object.__setattr__(self, "material_type", optional_text(self.material_type, "material_type", 100))


@dataclass(frozen=True)
class RecordReceiptCommand(Command):
    stockpile_id: UUID
    quantity: float
    reference: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "stockpile_id", coerce_uuid(self.stockpile_id, "stockpile_id", "Stockpile"))
        object.__setattr__(self, "quantity", coerce_quantity(self.quantity))
        object.__setattr__(self, "reference", optional_text(self.reference, "reference", 200))
        object.__setattr__(self, "notes", optional_text(self.notes, "notes", 1000))


@dataclass(frozen=True)
class AdjustStockpileCommand(Command):
    """Signed adjustment: positive adds stock, negative removes it."""

    stockpile_id: UUID
    quantity: float
    reason: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "stockpile_id", coerce_uuid(self.stockpile_id, "stockpile_id", "Stockpile"))
        object.__setattr__(self, "quantity", coerce_signed_quantity(self.quantity))
        object.__setattr__(self, "reason", require_text(self.reason, "reason", "Reason", max_length=500))

    @property
    def is_noop(self) -> bool:
        return self.quantity == 0


@dataclass(frozen=True)
class RecordQualityCommand(Command):
    stockpile_id: UUID
    moisture_pct: float
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "stockpile_id", coerce_uuid(self.stockpile_id, "stockpile_id", "Stockpile"))
        moisture = coerce_optional_number(
            self.moisture_pct, "moisture_pct", "Moisture", minimum=0.0, maximum=100.0,
        )
        if moisture is None:
            raise ValidationError("moisture_pct", "Moisture is required.")
        object.__setattr__(self, "moisture_pct", moisture)
        object.__setattr__(self, "notes", optional_text(self.notes, "notes", 1000))


@dataclass(frozen=True)
class TakeSampleCommand(Command):
    stockpile_id: UUID
    sample_code: str
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "stockpile_id", coerce_uuid(self.stockpile_id, "stockpile_id", "Stockpile"))
        object.__setattr__(
            self, "sample_code", require_text(self.sample_code, "sample_code", "Sample code", max_length=50),
        )
        object.__setattr__(self, "notes", optional_text(self.notes, "notes", 1000))


@dataclass(frozen=True)
class TransferStockpileCommand(Command):
    from_stockpile_id: UUID
    to_stockpile_id: UUID
    quantity: float
    reference: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "from_stockpile_id", coerce_uuid(self.from_stockpile_id, "from_stockpile_id", "Source stockpile"),
        )
        object.__setattr__(
            self, "to_stockpile_id", coerce_uuid(self.to_stockpile_id, "to_stockpile_id", "Destination stockpile"),
        )
        if self.from_stockpile_id == self.to_stockpile_id:
            raise ValidationError("to_stockpile_id", "Source and destination stockpiles must differ.")
        object.__setattr__(self, "quantity", coerce_quantity(self.quantity))
        object.__setattr__(self, "reference", optional_text(self.reference, "reference", 200))


# ---------------------------------------------------------------------------
# Mining commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RegisterVehicleCommand(Command):
    code: str
    description: str | None = None
    capacity_tonnes: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", require_text(self.code, "code", "Code", max_length=50))
        object.__setattr__(self, "description", optional_text(self.description, "description", 255))
        object.__setattr__(
            self,
            "capacity_tonnes",
            coerce_optional_number(self.capacity_tonnes, "capacity_tonnes", "Capacity"),
        )


@dataclass(frozen=True)
class StartShiftCommand(Command):
    vehicle_id: UUID
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "vehicle_id", coerce_uuid(self.vehicle_id, "vehicle_id", "Vehicle"))
        object.__setattr__(self, "notes", optional_text(self.notes, "notes", 1000))


@dataclass(frozen=True)
class EndShiftCommand(Command):
    shift_id: UUID

    def __post_init__(self) -> None:
        object.__setattr__(self, "shift_id", coerce_uuid(self.shift_id, "shift_id", "Shift"))


@dataclass(frozen=True)
class RecordLoadCommand(Command):
    """One truck load tipped onto a stockpile during a shift."""

    shift_id: UUID
    stockpile_id: UUID
    tonnage: float
    moisture_pct: float | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "shift_id", coerce_uuid(self.shift_id, "shift_id", "Shift"))
        object.__setattr__(self, "stockpile_id", coerce_uuid(self.stockpile_id, "stockpile_id", "Stockpile"))
        object.__setattr__(self, "tonnage", coerce_quantity(self.tonnage, "tonnage", "Tonnage"))
        object.__setattr__(
            self,
            "moisture_pct",
            coerce_optional_number(
                self.moisture_pct, "moisture_pct", "Moisture", minimum=0.0, maximum=100.0,
            ),
        )
        object.__setattr__(self, "notes", optional_text(self.notes, "notes", 1000))
