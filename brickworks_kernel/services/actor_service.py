"""
Service layer for actor resolution.

Resolves a signed-in identity to its tenant profile.  Returns an
ActorContext DTO, never the ORM Profile.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from brickworks_kernel.domain.context import ActorContext, ActorResolver, Resolution
from brickworks_kernel.logging_config import get_logger
from brickworks_kernel.models.profile import Profile

logger = get_logger("services.actor")


class ProfileActorResolver(ActorResolver):
    """
    Database-backed resolver for one request.

    ``identity_id`` is the id of the signed-in identity as reported by the
    authentication layer, or None when nobody is signed in.  The profile is
    looked up once and remembered for the life of this resolver, which is
    the life of the request.
    """

    def __init__(self, session: Session, identity_id: UUID | str | None):
        self.session = session
        self.identity_id = _parse_identity(identity_id)
        self._resolution: Resolution | None = None

    def resolve(self) -> Resolution:
        if self._resolution is None:
            self._resolution = self._load()
        return self._resolution

    def _load(self) -> Resolution:
        if self.identity_id is None:
            return Resolution(identity_id=None, actor=None)

        profile = self.session.execute(
            select(Profile).where(Profile.id == self.identity_id)
        ).scalar_one_or_none()

        if profile is None:
            logger.info("profile_missing", extra={"identity_id": str(self.identity_id)})
            return Resolution(identity_id=self.identity_id, actor=None)

        return Resolution(identity_id=self.identity_id, actor=to_actor(profile))


def to_actor(profile: Profile) -> ActorContext:
    """Convert ORM Profile to ActorContext DTO."""
    return ActorContext(
        actor_id=profile.id,
        role=profile.role,
        tenant_id=profile.tenant_id,
        full_name=profile.full_name,
        is_platform_admin=bool(profile.is_platform_admin),
    )


def _parse_identity(identity_id: UUID | str | None) -> UUID | None:
    """The identity as a UUID; a malformed id counts as nobody signed in."""
    if identity_id is None or isinstance(identity_id, UUID):
        return identity_id
    try:
        return UUID(str(identity_id).strip())
    except ValueError:
        logger.warning("identity_id_malformed")
        return None
