"""
Module: brickworks_kernel.models.stockpile
Responsibility: ORM persistence for stockpiles -- the raw-material resource
    pools that receive mined clay and supply the mixing stage.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique per tenant (uq_stockpile_tenant_code).
    - Quantity on hand is NOT stored; it is derived from stockpile events by
      the availability view.

Failure modes:
    - IntegrityError on a duplicate (tenant_id, code).
"""

from enum import Enum

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from brickworks_kernel.db.base import TenantScopedBase


class StockpileStatus(str, Enum):
    """Stockpile status.  Only ``active`` is produced by the kernel."""

    ACTIVE = "active"
    CLOSED = "closed"


class Stockpile(TenantScopedBase):
    """
    Raw-material resource pool.

    Guarantees:
        - (tenant_id, code) is unique, which is what makes creation an
          idempotent upsert.
    """

    __tablename__ = "stockpiles"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_stockpile_tenant_code"),
    )

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    location: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    material_type: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=StockpileStatus.ACTIVE.value,
    )

    def __repr__(self) -> str:
        return f"<Stockpile {self.code} ({self.status})>"
