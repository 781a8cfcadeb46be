"""Tests for the production batch and stockpile tables."""

import pytest
from sqlalchemy.exc import IntegrityError

from brickworks_kernel.models import (
    AGGREGATE_MODELS,
    CrushRun,
    KilnBatch,
    MixBatch,
    Stockpile,
)

from tests.conftest import TENANT_A, TENANT_B


class TestBatchTables:

    def test_defaults(self, session):
        batch = MixBatch(tenant_id=TENANT_A, code="MIX-1")
        session.add(batch)
        session.flush()
        session.refresh(batch)

        assert batch.status == "planned"
        assert batch.created_at is not None
        assert batch.output_quantity is None

    def test_code_unique_per_tenant(self, session):
        session.add(MixBatch(tenant_id=TENANT_A, code="MIX-1"))
        session.flush()
        session.add(MixBatch(tenant_id=TENANT_A, code="MIX-1"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_same_code_other_tenant_or_stage(self, session):
        session.add_all([
            MixBatch(tenant_id=TENANT_A, code="B-1"),
            MixBatch(tenant_id=TENANT_B, code="B-1"),
            CrushRun(tenant_id=TENANT_A, code="B-1"),
        ])
        session.flush()

    def test_stockpile_code_unique_per_tenant(self, session):
        session.add(Stockpile(tenant_id=TENANT_A, code="SP-1", status="active"))
        session.flush()
        session.add(Stockpile(tenant_id=TENANT_A, code="SP-1", status="active"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_aggregate_registry(self):
        assert AGGREGATE_MODELS["kiln_batch"] is KilnBatch
        assert {m.__tablename__ for m in AGGREGATE_MODELS.values()} == {
            "stockpiles",
            "mix_batches",
            "crush_runs",
            "extrusion_runs",
            "dry_loads",
            "kiln_batches",
        }
