"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session contract for every service.  Services
    persist through ``session.flush()`` and never commit.

Architecture position:
    Kernel > Services -- imperative shell.  The action boundary
    (services/actions.py) or the caller owns commit/rollback.

Invariants enforced:
    - Services flush within the caller's transaction, so a batch state
      change and the events recording it commit or roll back together.

Failure modes:
    - A subclass calling ``session.commit()`` would let a state change
      become visible without its events.
"""

from abc import ABC

from sqlalchemy.orm import Session

from brickworks_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` and an optional Clock from the
        caller.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
