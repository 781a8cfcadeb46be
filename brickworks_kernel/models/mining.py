"""
Module: brickworks_kernel.models.mining
Responsibility: ORM persistence for haul vehicles and the operator shifts
    that run them.  Loads are not stored here; a load is an event plus the
    stockpile receipt it causes.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Vehicle code is unique per tenant (uq_mining_vehicle_tenant_code).
    - At most one active shift per vehicle and one per operator within a
      tenant, enforced by partial unique indexes on ``status = 'active'``.
    - Shift status only moves active -> completed, by a conditional UPDATE
      issued by MiningService.

Failure modes:
    - IntegrityError on a duplicate vehicle code or a second active shift.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from brickworks_kernel.db.base import TenantScopedBase, UUIDString

_ACTIVE_ONLY = text("status = 'active'")


class VehicleStatus(str, Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class ShiftStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MiningVehicle(TenantScopedBase):
    """Haul truck or loader that carries clay from the pit to a stockpile."""

    __tablename__ = "mining_vehicles"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_mining_vehicle_tenant_code"),
    )

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    capacity_tonnes: Mapped[float | None] = mapped_column(
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=VehicleStatus.ACTIVE.value,
    )

    def __repr__(self) -> str:
        return f"<MiningVehicle {self.code} ({self.status})>"


class MiningShift(TenantScopedBase):
    """
    One operator driving one vehicle for a stretch of time.

    Guarantees:
        - operator_name and operator_role are copied from the profile at
          start, so later profile edits do not rewrite history.
    """

    __tablename__ = "mining_shifts"

    __table_args__ = (
        Index(
            "uq_mining_shift_active_vehicle",
            "tenant_id",
            "vehicle_id",
            unique=True,
            postgresql_where=_ACTIVE_ONLY,
            sqlite_where=_ACTIVE_ONLY,
        ),
        Index(
            "uq_mining_shift_active_operator",
            "tenant_id",
            "operator_id",
            unique=True,
            postgresql_where=_ACTIVE_ONLY,
            sqlite_where=_ACTIVE_ONLY,
        ),
    )

    vehicle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    operator_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    operator_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    operator_role: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ShiftStatus.ACTIVE.value,
    )

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<MiningShift {self.id} vehicle={self.vehicle_id} ({self.status})>"
