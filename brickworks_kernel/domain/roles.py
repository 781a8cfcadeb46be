"""
Roles -- the closed set of plant roles and the authorization rule.

Responsibility:
    Names every role a profile may hold and decides whether an actor may
    perform an operation guarded by a set of permitted roles.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - ``admin`` and platform administrators pass every role check.
    - An empty permitted set means "any signed-in profile".
"""

from collections.abc import Iterable
from enum import Enum


class Role(str, Enum):
    """Plant roles, one per production area plus back-office roles."""

    ADMIN = "admin"
    MINING_OPERATOR = "mining_operator"
    STOCKPILE_OPERATOR = "stockpile_operator"
    MIXING_OPERATOR = "mixing_operator"
    CRUSHING_OPERATOR = "crushing_operator"
    EXTRUSION_OPERATOR = "extrusion_operator"
    DRYYARD_OPERATOR = "dryyard_operator"
    KILN_OPERATOR = "kiln_operator"
    PACKING_OPERATOR = "packing_operator"
    DISPATCH_CLERK = "dispatch_clerk"
    SALES_REP = "sales_rep"
    FINANCE = "finance"
    VIEWER = "viewer"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


ROLE_VALUES: frozenset[str] = frozenset(r.value for r in Role)


def is_known_role(value: str) -> bool:
    return value in ROLE_VALUES


def role_permits(
    role: str,
    permitted: Iterable[str],
    is_platform_admin: bool = False,
) -> bool:
    """True when ``role`` may run an operation guarded by ``permitted``."""
    if is_platform_admin or role == Role.ADMIN.value:
        return True
    permitted = frozenset(permitted)
    if not permitted:
        return True
    return role in permitted
