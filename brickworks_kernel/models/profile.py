"""
Module: brickworks_kernel.models.profile
Responsibility: ORM persistence for tenant profiles -- the link between a
    signed-in identity and the tenant and role it acts under.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One profile per identity (the profile id IS the identity id).
    - Every profile belongs to exactly one tenant.

Failure modes:
    - IntegrityError on a second profile for the same identity.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from brickworks_kernel.db.base import TenantScopedBase


class Profile(TenantScopedBase):
    """
    Identity-to-tenant binding.

    Contract:
        ``id`` is assigned by the caller from the identity provider and is
        not generated.  Profiles are created during onboarding, outside the
        kernel's mutation surface.
    """

    __tablename__ = "profiles"

    role: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
    )

    full_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    is_platform_admin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    def __repr__(self) -> str:
        return f"<Profile {self.id} {self.role}@{self.tenant_id}>"
