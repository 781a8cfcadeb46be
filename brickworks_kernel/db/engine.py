"""
Engine and session management for the brickworks kernel.

One engine per process, created by ``init_engine_from_url``.  PostgreSQL is
the production store; SQLite backs tests and the demo seed script.  An
in-memory SQLite URL keeps a single shared connection (StaticPool) so every
session in the process sees the same tables, views and rows.

Sessions never expire attributes on commit: services hand out DTOs built
from ORM rows after the action boundary has committed.

``create_tables`` is the only supported way to build a schema: besides the
ORM tables it installs the per-pool availability views and arms the
event-log immutability listeners.
"""

import atexit
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from brickworks_kernel.logging_config import configure_logging, get_logger

if TYPE_CHECKING:
    from brickworks_kernel.domain.stages import PoolDefinition

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def engine_options(
    url: URL,
    *,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> dict[str, Any]:
    """
    Keyword arguments for ``create_engine`` given a parsed URL.

    Pool sizing only applies to server databases.  SQLite connections may
    be used from any thread (the test suite and the seed script share one
    in-memory connection).
    """
    options: dict[str, Any] = {"echo": echo}
    if url.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        return options

    options.update(
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,
        isolation_level="READ COMMITTED",
    )
    return options


def init_engine_from_url(database_url: str, **options: Any) -> Engine:
    """
    Create the process engine and session factory, replacing any previous one.

    ``options`` are passed to ``engine_options`` (echo, pool_size,
    max_overflow, pool_timeout, pool_recycle).
    """
    global _engine, _session_factory

    url = make_url(database_url)
    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(url, **engine_options(url, **options))
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": url.get_backend_name(), "database": url.database},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """A new session bound to the process engine.  The caller closes it."""
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Commit on normal exit, roll back and re-raise on error, always close.

    For scripts and jobs.  Request handling goes through
    services.actions.run_action, which also reports failures as results.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(pools: Iterable["PoolDefinition"] = ()) -> None:
    """Create tables, install the given pools' availability views, arm immutability."""
    from brickworks_kernel import models  # noqa: F401  (fills Base.metadata)
    from brickworks_kernel.db.base import Base
    from brickworks_kernel.db.immutability import register_immutability_listeners
    from brickworks_kernel.db.views import install_availability_views

    engine = get_engine()
    pools = tuple(pools)
    Base.metadata.create_all(engine)
    install_availability_views(engine, pools)
    register_immutability_listeners()

    logger.info(
        "schema_ready",
        extra={"tables": sorted(Base.metadata.tables), "views": [p.availability_view for p in pools]},
    )


def drop_tables(pools: Iterable["PoolDefinition"] = ()) -> None:
    """Drop the given pools' views, then every kernel table."""
    from brickworks_kernel import models  # noqa: F401
    from brickworks_kernel.db.base import Base
    from brickworks_kernel.db.views import drop_availability_views

    engine = get_engine()
    drop_availability_views(engine, tuple(pools))
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
