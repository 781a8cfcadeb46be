"""
Module: brickworks_kernel.models.batch
Responsibility: ORM persistence for production batches -- one table per
    batch-shaped stage (mixing, crushing, extrusion, drying, kiln), all with
    the same lifecycle columns.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique per tenant within each stage table.
    - status is one of planned, active, completed, cancelled; it is only
      changed by conditional UPDATEs issued by BatchLifecycleService.
    - Rows are never deleted by the kernel.

Failure modes:
    - IntegrityError on a duplicate (tenant_id, code).

Audit relevance:
    started_at, completed_at, output_quantity, quality_metric and
    cancel_reason mirror facts that are also recorded in the event log.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from brickworks_kernel.db.base import TenantScopedBase
from brickworks_kernel.domain.lifecycle import BatchStatus


class ProductionBatchMixin:
    """
    Columns shared by every production batch table.

    Contract:
        Concrete classes combine this mixin with TenantScopedBase and set
        ``__tablename__``.  The unique (tenant_id, code) constraint is named
        after the table.
    """

    @declared_attr.directive
    def __table_args__(cls):
        return (
            UniqueConstraint("tenant_id", "code", name=f"uq_{cls.__tablename__}_tenant_code"),
            Index(f"idx_{cls.__tablename__}_status", "tenant_id", "status"),
        )

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BatchStatus.PLANNED.value,
    )

    target_output: Mapped[float | None] = mapped_column(
        nullable=True,
    )

    output_quantity: Mapped[float | None] = mapped_column(
        nullable=True,
    )

    # Stage-specific quality figure, e.g. moisture % for mixing
    quality_metric: Mapped[float | None] = mapped_column(
        nullable=True,
    )

    cancel_reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.code} ({self.status})>"


class MixBatch(ProductionBatchMixin, TenantScopedBase):
    """Clay mix prepared from stockpile components."""

    __tablename__ = "mix_batches"


class CrushRun(ProductionBatchMixin, TenantScopedBase):
    """Crushing run fed from completed mix batches."""

    __tablename__ = "crush_runs"


class ExtrusionRun(ProductionBatchMixin, TenantScopedBase):
    """Extrusion run fed from completed crush runs."""

    __tablename__ = "extrusion_runs"


class DryLoad(ProductionBatchMixin, TenantScopedBase):
    """Dry-yard load fed from completed extrusion runs."""

    __tablename__ = "dry_loads"


class KilnBatch(ProductionBatchMixin, TenantScopedBase):
    """Kiln firing fed from completed dry loads."""

    __tablename__ = "kiln_batches"
