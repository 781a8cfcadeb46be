"""
EntityAccessor -- tenant-scoped single-aggregate lookup.

Responsibility:
    Loads one aggregate row by (kind, id, tenant) and returns it as an
    immutable AggregateInfo DTO.

Architecture position:
    Kernel > Services.  Read-only; used by every lifecycle operation before
    it writes.

Invariants enforced:
    - The lookup always filters on BOTH id and tenant_id.  A row owned by
      another tenant is indistinguishable from a missing row.

Failure modes:
    - AggregateNotFoundError: no row with this id in this tenant (including
      malformed ids).
    - ValidationError: ``kind`` is not a known aggregate type.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from brickworks_kernel.exceptions import AggregateNotFoundError, ValidationError
from brickworks_kernel.models import AGGREGATE_MODELS
from brickworks_kernel.services.base import BaseService


@dataclass(frozen=True)
class AggregateInfo:
    """
    Immutable DTO for any aggregate row.

    Batch-only and stockpile-only attributes are None on the other kind.
    """

    id: UUID
    aggregate_type: str
    tenant_id: UUID
    code: str
    status: str
    created_at: datetime | None = None
    # production batches
    target_output: float | None = None
    output_quantity: float | None = None
    quality_metric: float | None = None
    cancel_reason: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    # stockpiles
    name: str | None = None
    location: str | None = None
    material_type: str | None = None


class EntityAccessor(BaseService):
    """
    Tenant-scoped aggregate fetcher.

    Contract:
        ``fetch`` returns only a row whose id AND tenant_id match.
    """

    def fetch(
        self,
        kind: str,
        aggregate_id: UUID | str,
        tenant_id: UUID,
        label: str | None = None,
    ) -> AggregateInfo:
        model = AGGREGATE_MODELS.get(kind)
        if model is None:
            raise ValidationError("kind", f"Unknown aggregate type: {kind}")

        try:
            key = aggregate_id if isinstance(aggregate_id, UUID) else UUID(str(aggregate_id))
        except ValueError:
            raise AggregateNotFoundError(kind, str(aggregate_id), label) from None

        row = self.session.execute(
            select(model)
            .where(model.id == key, model.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise AggregateNotFoundError(kind, str(key), label)

        return self._to_dto(kind, row)

    def exists(self, kind: str, aggregate_id: UUID | str, tenant_id: UUID) -> bool:
        try:
            self.fetch(kind, aggregate_id, tenant_id)
        except AggregateNotFoundError:
            return False
        return True

    @staticmethod
    def _to_dto(kind: str, row) -> AggregateInfo:
        """Convert an ORM aggregate row to AggregateInfo."""
        return AggregateInfo(
            id=row.id,
            aggregate_type=kind,
            tenant_id=row.tenant_id,
            code=row.code,
            status=row.status,
            created_at=row.created_at,
            target_output=getattr(row, "target_output", None),
            output_quantity=getattr(row, "output_quantity", None),
            quality_metric=getattr(row, "quality_metric", None),
            cancel_reason=getattr(row, "cancel_reason", None),
            started_at=getattr(row, "started_at", None),
            completed_at=getattr(row, "completed_at", None),
            name=getattr(row, "name", None),
            location=getattr(row, "location", None),
            material_type=getattr(row, "material_type", None),
        )
