"""
ActorContext -- explicit identity and tenancy context for every operation.

Responsibility:
    Carries the resolved actor (identity, role, tenant) into lifecycle
    operations as an ordinary argument, and defines the resolver interface
    that produces it.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The database-backed
    resolver lives in services/actor_service.py.

Invariants enforced:
    - An ActorContext is immutable for the lifetime of a request.
    - Resolution never raises for "not signed in"; absence is the signal.
      require_actor() is the single place absence becomes an error.

Failure modes:
    - UnauthenticatedError when no identity is signed in.
    - ProfileRequiredError when the identity has no profile.
    - RoleNotPermittedError from ActorContext.require_role().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from brickworks_kernel.domain.roles import role_permits
from brickworks_kernel.exceptions import (
    ProfileRequiredError,
    RoleNotPermittedError,
    UnauthenticatedError,
)


@dataclass(frozen=True)
class ActorContext:
    """
    The resolved actor for one request.

    Contract:
        Every lifecycle operation receives one of these explicitly; nothing
        in the kernel looks the actor up from ambient state.
    """

    actor_id: UUID
    role: str
    tenant_id: UUID
    full_name: str | None = None
    is_platform_admin: bool = False

    def can(self, permitted: Iterable[str]) -> bool:
        return role_permits(self.role, permitted, self.is_platform_admin)

    def require_role(self, permitted: Iterable[str], operation: str) -> None:
        """Raise RoleNotPermittedError unless the actor may run ``operation``."""
        permitted = tuple(sorted(permitted))
        if not self.can(permitted):
            raise RoleNotPermittedError(self.role, operation, permitted)


@dataclass(frozen=True)
class Resolution:
    """Outcome of an actor lookup: identity present or not, profile or not."""

    identity_id: UUID | None
    actor: ActorContext | None

    @property
    def is_authenticated(self) -> bool:
        return self.identity_id is not None


class ActorResolver(ABC):
    """
    Resolves the current actor.

    Contract:
        ``resolve()`` returns a Resolution and never raises for missing
        identities or profiles.  Store failures may propagate.
    """

    @abstractmethod
    def resolve(self) -> Resolution:
        ...

    def resolve_actor(self) -> ActorContext | None:
        """The actor, or None when unauthenticated or without a profile."""
        return self.resolve().actor


class StaticActorResolver(ActorResolver):
    """Resolver returning a fixed actor (scripts and tests)."""

    def __init__(self, actor: ActorContext | None, identity_id: UUID | None = None):
        self._actor = actor
        self._identity_id = actor.actor_id if actor is not None else identity_id

    def resolve(self) -> Resolution:
        return Resolution(identity_id=self._identity_id, actor=self._actor)


def require_actor(resolver: ActorResolver) -> ActorContext:
    """
    Resolve the actor or fail.

    Raises:
        UnauthenticatedError: No identity is signed in.
        ProfileRequiredError: The identity has no tenant profile.
    """
    resolution = resolver.resolve()
    if not resolution.is_authenticated:
        raise UnauthenticatedError()
    if resolution.actor is None:
        raise ProfileRequiredError(str(resolution.identity_id))
    return resolution.actor
