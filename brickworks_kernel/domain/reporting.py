"""
Reporting helpers -- pure transforms over precomputed report rows.

Responsibility:
    Date-window filtering, percentile computation and delimited-text
    export for rows read from the reporting views.  No I/O: the rows are
    read by selectors/report_selector.py.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ``reporting_window``
    takes "today" as an argument instead of reading the clock.

Invariants enforced:
    - Date ranges are inclusive at both ends and compared by calendar day.
    - A row with a missing or unparsable date is outside every range; an
      unparsable range bound puts every dated row inside the range.
    - Percentiles use linear interpolation at (n - 1) * p over the sorted
      values; no values -> 0, one value -> that value.
    - A CSV field is quoted only when it contains a comma, a double quote
      or a newline; embedded quotes are doubled; None is an empty field.
    - Whole-number floats are written without a trailing ".0".
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

DEFAULT_REPORT_LOOKBACK_DAYS = 90
DEFAULT_REPORT_RANGE_DAYS = 30

DAILY_THROUGHPUT_HEADERS: tuple[str, ...] = (
    "date",
    "mix_input_tonnes",
    "crush_output_tonnes",
    "extrusion_output_units",
    "packed_units",
    "units_dispatched",
)
WIP_SUMMARY_HEADERS: tuple[str, ...] = ("stage", "planned", "active")
LEAD_TIME_HEADERS: tuple[str, ...] = (
    "order_code",
    "order_date",
    "first_dispatch_date",
    "days_order_to_dispatch",
)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def parse_report_date(value: Any) -> date | None:
    """Parse an ISO date or timestamp to a calendar day; None if unparsable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def is_date_within_range(value: Any, start: Any, end: Any) -> bool:
    """True when ``value`` falls on or between ``start`` and ``end``."""
    day = parse_report_date(value)
    if day is None:
        return False
    start_day = parse_report_date(start)
    end_day = parse_report_date(end)
    if start_day is None or end_day is None:
        return True
    return start_day <= day <= end_day


def filter_rows_by_date(
    rows: Iterable[Mapping[str, Any]],
    start: Any = None,
    end: Any = None,
    date_key: str = "d",
) -> list[Mapping[str, Any]]:
    """
    Rows whose ``date_key`` day is inside [start, end].

    No bounds at all returns every row unchanged.  With one bound given,
    the omitted side is open.
    """
    if start is None and end is None:
        return list(rows)
    start = date.min if start is None else start
    end = date.max if end is None else end
    return [row for row in rows if is_date_within_range(row.get(date_key), start, end)]


@dataclass(frozen=True)
class ReportingWindow:
    """Default and earliest selectable dates for report filters."""

    default_from: date
    default_to: date
    min_available: date


def reporting_window(today: date) -> ReportingWindow:
    return ReportingWindow(
        default_from=today - timedelta(days=DEFAULT_REPORT_RANGE_DAYS - 1),
        default_to=today,
        min_available=today - timedelta(days=DEFAULT_REPORT_LOOKBACK_DAYS - 1),
    )


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


def coerce_number(value: Any) -> float:
    """Report cells to numbers: None, blank, non-numeric and non-finite -> 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return number if math.isfinite(number) else 0


@dataclass(frozen=True)
class Percentiles:
    p50: float
    p90: float


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Linear-interpolated percentile of already-sorted values."""
    if not sorted_values:
        return 0
    if len(sorted_values) == 1:
        return sorted_values[0]
    index = (len(sorted_values) - 1) * p
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return sorted_values[lower]
    weight = index - lower
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * weight


def calculate_percentiles(values: Iterable[float]) -> Percentiles:
    ordered = sorted(values)
    return Percentiles(p50=percentile(ordered, 0.5), p90=percentile(ordered, 0.9))


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def _format_cell(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def escape_csv_value(value: Any) -> str:
    if value is None:
        return ""
    text = _format_cell(value)
    if '"' in text or "," in text or "\n" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def build_csv(headers: Sequence[str], rows: Iterable[Mapping[str, Any]]) -> str:
    """Header line plus one line per row, joined by newlines (no trailing newline)."""
    lines = [",".join(headers)]
    for row in rows:
        lines.append(",".join(escape_csv_value(row.get(header)) for header in headers))
    return "\n".join(lines)


def daily_throughput_to_csv(rows: Iterable[Mapping[str, Any]]) -> str:
    formatted = [
        {
            "date": row.get("d"),
            **{h: coerce_number(row.get(h)) for h in DAILY_THROUGHPUT_HEADERS[1:]},
        }
        for row in rows
    ]
    return build_csv(DAILY_THROUGHPUT_HEADERS, formatted)


def wip_summary_to_csv(rows: Iterable[Mapping[str, Any]]) -> str:
    formatted = [
        {
            "stage": row.get("stage"),
            "planned": coerce_number(row.get("planned")),
            "active": coerce_number(row.get("active")),
        }
        for row in rows
    ]
    return build_csv(WIP_SUMMARY_HEADERS, formatted)


def lead_times_to_csv(rows: Iterable[Mapping[str, Any]]) -> str:
    formatted = [
        {
            "order_code": row.get("order_code"),
            "order_date": row.get("order_date") or "",
            "first_dispatch_date": row.get("first_dispatch_date") or "",
            "days_order_to_dispatch": coerce_number(row.get("days_order_to_dispatch")),
        }
        for row in rows
    ]
    return build_csv(LEAD_TIME_HEADERS, formatted)


def lead_time_percentiles(rows: Iterable[Mapping[str, Any]]) -> Percentiles:
    """Percentiles of days-to-dispatch over rows that have been dispatched."""
    return calculate_percentiles(
        coerce_number(row.get("days_order_to_dispatch"))
        for row in rows
        if row.get("days_order_to_dispatch") is not None
    )
