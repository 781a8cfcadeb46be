"""
Brickworks Kernel - production batch lifecycle core

A tenant-scoped, event-recording mutation core with:
- Per-stage batch lifecycles (planned -> active -> completed | cancelled)
- Correlated multi-aggregate events for component transfers
- Best-effort resource pool availability checks
- Append-only event log
- Read-side reporting helpers
"""

__version__ = "0.1.0"
