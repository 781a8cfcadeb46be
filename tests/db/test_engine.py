"""Tests for engine options, session scope and schema creation."""

from uuid import uuid4

import pytest
from sqlalchemy import func, inspect, select
from sqlalchemy.engine import make_url
from sqlalchemy.pool import QueuePool, StaticPool

from brickworks_kernel.db.engine import (
    engine_options,
    get_session,
    reset_engine,
    session_scope,
)
from brickworks_kernel.models import Profile

from tests.conftest import TENANT_A


class TestEngineOptions:

    def test_in_memory_sqlite_shares_one_connection(self):
        options = engine_options(make_url("sqlite://"))
        assert options["poolclass"] is StaticPool
        assert options["connect_args"] == {"check_same_thread": False}

    def test_file_sqlite_uses_default_pool(self):
        options = engine_options(make_url("sqlite:///brickworks.db"), echo=True)
        assert "poolclass" not in options
        assert options["echo"] is True

    def test_postgres_pool_settings(self):
        options = engine_options(
            make_url("postgresql://plant:secret@db/brickworks"), pool_size=3, max_overflow=7,
        )
        assert options["poolclass"] is QueuePool
        assert (options["pool_size"], options["max_overflow"]) == (3, 7)
        assert options["isolation_level"] == "READ COMMITTED"
        assert options["pool_pre_ping"] is True


class TestUninitialized:

    def test_session_requires_engine(self):
        reset_engine()
        with pytest.raises(RuntimeError, match="Engine not initialized"):
            get_session()


class TestSessionScope:

    def _profile_count(self) -> int:
        with session_scope() as s:
            return s.execute(select(func.count()).select_from(Profile)).scalar_one()

    def test_commits_on_success(self, engine):
        with session_scope() as s:
            s.add(Profile(id=uuid4(), tenant_id=TENANT_A, role="admin"))
        assert self._profile_count() == 1

    def test_rolls_back_on_error(self, engine):
        with pytest.raises(RuntimeError):
            with session_scope() as s:
                s.add(Profile(id=uuid4(), tenant_id=TENANT_A, role="admin"))
                s.flush()
                raise RuntimeError("abort")
        assert self._profile_count() == 0


class TestCreateTables:

    def test_tables_and_views_exist(self, engine, plant_config):
        inspector = inspect(engine)
        assert {"events", "stockpiles", "mix_batches", "profiles"} <= set(inspector.get_table_names())
        views = set(inspector.get_view_names())
        assert {p.availability_view for p in plant_config.pools.values()} <= views
