"""
AvailabilityChecker -- best-effort quantity check against a resource pool.

Responsibility:
    Reads a pool's derived available quantity from its availability view
    and rejects requests that exceed it.  Also lists pools with stock for
    source pickers.

Architecture position:
    Kernel > Services.  Read-only.

Invariants enforced:
    - available < requested -> InsufficientInventoryError(available,
      requested); available == requested passes.
    - A pool with no row in the view has 0 available.
    - A missing view skips the check (logged at WARNING).  Enforcement is
      best-effort because not every deployment provisions the views.

Failure modes:
    - InsufficientInventoryError on shortfall.
    - StoreError on any database failure other than a missing view.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from brickworks_kernel.db.views import query_view, safe_identifier
from brickworks_kernel.domain.reporting import coerce_number
from brickworks_kernel.domain.stages import PoolDefinition
from brickworks_kernel.exceptions import InsufficientInventoryError, ViewMissingError
from brickworks_kernel.logging_config import get_logger
from brickworks_kernel.services.base import BaseService

logger = get_logger("services.availability")


@dataclass(frozen=True)
class PoolBalance:
    pool_id: UUID
    code: str | None
    available: float


class AvailabilityChecker(BaseService):
    """
    Pool availability reader.

    Non-goals:
        - Does NOT reserve quantity.  Two concurrent transfers may both
          pass the check; the store does not serialize them.
    """

    def available_quantity(self, pool: PoolDefinition, pool_id: UUID, tenant_id: UUID) -> float:
        """
        Current available quantity of one pool.

        Raises:
            ViewMissingError: The pool's view is not provisioned.
        """
        view = safe_identifier(pool.availability_view)
        rows = query_view(
            self.session,
            view,
            f"SELECT available_quantity FROM {view} "
            "WHERE tenant_id = :tenant_id AND pool_id = :pool_id",
            {"tenant_id": str(tenant_id), "pool_id": str(pool_id)},
        )
        if not rows:
            return 0
        return coerce_number(rows[0]["available_quantity"])

    def check_available(
        self,
        pool: PoolDefinition,
        pool_id: UUID,
        tenant_id: UUID,
        requested: float,
    ) -> None:
        """
        Raise InsufficientInventoryError when the pool cannot cover
        ``requested``.  No-op when the view is missing.
        """
        try:
            available = self.available_quantity(pool, pool_id, tenant_id)
        except ViewMissingError as exc:
            logger.warning(
                "availability_check_skipped",
                extra={
                    "view": exc.view_name,
                    "pool": pool.key,
                    "pool_id": str(pool_id),
                    "requested": requested,
                },
            )
            return

        if available < requested:
            logger.info(
                "availability_check_failed",
                extra={
                    "pool": pool.key,
                    "pool_id": str(pool_id),
                    "available": available,
                    "requested": requested,
                },
            )
            raise InsufficientInventoryError(str(pool_id), available, requested, pool.unit)

    def list_available(self, pool: PoolDefinition, tenant_id: UUID) -> list[PoolBalance]:
        """Pools of this kind with stock, ordered by code.  [] if the view is missing."""
        view = safe_identifier(pool.availability_view)
        try:
            rows = query_view(
                self.session,
                view,
                f"SELECT pool_id, code, available_quantity FROM {view} "
                "WHERE tenant_id = :tenant_id AND available_quantity > 0 "
                "ORDER BY code",
                {"tenant_id": str(tenant_id)},
            )
        except ViewMissingError:
            return []
        return [
            PoolBalance(
                pool_id=UUID(str(row["pool_id"])),
                code=row.get("code"),
                available=coerce_number(row["available_quantity"]),
            )
            for row in rows
        ]
