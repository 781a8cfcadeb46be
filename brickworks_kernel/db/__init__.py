"""Database layer - engine, base classes, immutability listeners, views."""

from brickworks_kernel.db.base import Base, TenantScopedBase, UUIDString
from brickworks_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TenantScopedBase",
    "UUIDString",
]
