"""Selectors for the brickworks kernel (read side)."""

from brickworks_kernel.selectors.event_selector import EventSelector
from brickworks_kernel.selectors.report_selector import ReportSelector

__all__ = [
    "EventSelector",
    "ReportSelector",
]
