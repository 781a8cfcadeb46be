"""
Declarative base for the kernel's ORM models.

Every table has a UUID primary key stored as text, so the same models run
on PostgreSQL and SQLite.  Aggregates, events and profiles all belong to
exactly one tenant and inherit TenantScopedBase.

Quantities are floats (tonnes, brick units): the plant records measured
quantities, not money.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, Float, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID column stored as its 36-character text form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        # Accepts UUIDs and their string form; anything else fails loudly.
        return None if value is None else str(PyUUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, PyUUID):
            return value
        return PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        float: Float,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TenantScopedBase(Base):
    """
    Rows owned by one tenant.

    ``tenant_id`` comes from the acting profile at insert time and never
    changes.  Every kernel read filters on it.
    """

    __abstract__ = True

    tenant_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
