"""
Module: brickworks_kernel.selectors.report_selector
Responsibility: Tenant-scoped reads of the precomputed reporting views.
Architecture position: Kernel > Selectors.  The views are produced outside
    the kernel; this module only reads them.  Shaping for export lives in
    domain/reporting.py.

Invariants enforced:
    - A resolved ActorContext is required; rows are filtered on its tenant.
    - A view that is not provisioned reads as "no data": None for
      single-row reports, [] for the others.
    - Date filters are inclusive and compare calendar days.  An omitted
      bound leaves that side of the range open.

Failure modes:
    - ProfileRequiredError when no actor is supplied.
    - StoreError for any database failure other than a missing view.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from brickworks_kernel.db.views import query_view
from brickworks_kernel.domain.context import ActorContext
from brickworks_kernel.domain.reporting import (
    Percentiles,
    coerce_number,
    filter_rows_by_date,
    lead_time_percentiles,
)
from brickworks_kernel.exceptions import ProfileRequiredError, ViewMissingError
from brickworks_kernel.logging_config import get_logger
from brickworks_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.report")

EXEC_TODAY_VIEW = "rpt_exec_today_v"
DAILY_THROUGHPUT_VIEW = "rpt_daily_throughput_v"
WIP_SUMMARY_VIEW = "rpt_wip_summary_v"
QUALITY_TODAY_VIEW = "rpt_quality_today_v"
LEAD_TIME_VIEW = "rpt_order_dispatch_leadtime_v"

_EXEC_TODAY_COLUMNS = (
    "tenant_id",
    "units_dispatched_today",
    "units_packed_today",
    "open_orders",
    "units_reserved",
    "invoices_issued_today",
    "payments_received_today",
    "open_ar_total",
)
_DAILY_THROUGHPUT_COLUMNS = (
    "tenant_id",
    "d",
    "mix_input_tonnes",
    "crush_output_tonnes",
    "extrusion_output_units",
    "packed_units",
    "units_dispatched",
)
_WIP_COLUMNS = ("tenant_id", "stage", "planned", "active")
_QUALITY_COLUMNS = (
    "tenant_id",
    "extrusion_scrap_today",
    "dry_scrap_today",
    "kiln_yield_pct_active_avg",
)
_LEAD_TIME_COLUMNS = (
    "tenant_id",
    "order_id",
    "order_code",
    "order_date",
    "first_dispatch_date",
    "days_order_to_dispatch",
)


class ReportSelector(BaseSelector):
    """
    Reads the reporting views for the actor's tenant.

    Non-goals:
        - Does NOT compute the aggregates; the views are maintained
          elsewhere.
    """

    def _read(
        self,
        actor: ActorContext | None,
        view: str,
        columns: tuple[str, ...],
        order_by: str | None = None,
    ) -> list[dict[str, Any]] | None:
        """Rows of ``view`` for the actor's tenant; None if the view is missing."""
        if actor is None:
            raise ProfileRequiredError()

        sql = f"SELECT {', '.join(columns)} FROM {view} WHERE tenant_id = :tenant_id"
        if order_by:
            sql += f" ORDER BY {order_by}"
        try:
            return query_view(self.session, view, sql, {"tenant_id": str(actor.tenant_id)})
        except ViewMissingError:
            logger.info("report_view_missing", extra={"view": view})
            return None

    def exec_today(self, actor: ActorContext | None) -> dict[str, Any] | None:
        rows = self._read(actor, EXEC_TODAY_VIEW, _EXEC_TODAY_COLUMNS)
        return rows[0] if rows else None

    def daily_throughput(
        self,
        actor: ActorContext | None,
        start: date | str | None = None,
        end: date | str | None = None,
    ) -> list[dict[str, Any]]:
        rows = self._read(actor, DAILY_THROUGHPUT_VIEW, _DAILY_THROUGHPUT_COLUMNS, "d")
        return filter_rows_by_date(rows or [], start, end, date_key="d")

    def wip_summary(self, actor: ActorContext | None) -> list[dict[str, Any]]:
        return self._read(actor, WIP_SUMMARY_VIEW, _WIP_COLUMNS, "stage") or []

    def quality_today(self, actor: ActorContext | None) -> dict[str, Any] | None:
        rows = self._read(actor, QUALITY_TODAY_VIEW, _QUALITY_COLUMNS)
        return rows[0] if rows else None

    def lead_times(
        self,
        actor: ActorContext | None,
        start: date | str | None = None,
        end: date | str | None = None,
    ) -> list[dict[str, Any]]:
        """Order-to-dispatch lead times; days is a float or None (not dispatched)."""
        rows = self._read(actor, LEAD_TIME_VIEW, _LEAD_TIME_COLUMNS, "order_date") or []
        rows = filter_rows_by_date(rows, start, end, date_key="order_date")
        return [
            {
                **row,
                "days_order_to_dispatch": (
                    None
                    if row.get("days_order_to_dispatch") is None
                    else coerce_number(row["days_order_to_dispatch"])
                ),
            }
            for row in rows
        ]

    def lead_time_summary(
        self,
        actor: ActorContext | None,
        start: date | str | None = None,
        end: date | str | None = None,
    ) -> Percentiles:
        return lead_time_percentiles(self.lead_times(actor, start, end))
