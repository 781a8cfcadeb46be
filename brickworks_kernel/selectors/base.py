"""
Module: brickworks_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  Selectors never create, modify, or delete data.

Invariants enforced:
    - Read-only: selectors accept a Session from the caller and never call
      add(), delete(), flush() or commit() on it.
    - Every query is scoped to a tenant id supplied by the caller.
    - Public methods return frozen DTOs or plain dicts, never ORM rows.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        The caller owns the session and its transaction scope.
    """

    def __init__(self, session: Session):
        self.session = session
