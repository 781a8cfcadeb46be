"""Tests for tenant-scoped aggregate lookup."""

from uuid import uuid4

import pytest

from brickworks_kernel.exceptions import AggregateNotFoundError, ValidationError
from brickworks_kernel.services.entity_accessor import EntityAccessor

from tests.conftest import TENANT_A, TENANT_B


@pytest.fixture
def accessor(session):
    return EntityAccessor(session)


class TestFetch:

    def test_fetch_own_tenant(self, accessor, make_stockpile):
        stockpile = make_stockpile(code="SP-1")
        info = accessor.fetch("stockpile", stockpile.id, TENANT_A)

        assert info.code == "SP-1"
        assert info.aggregate_type == "stockpile"
        assert info.material_type == "clay"
        assert info.target_output is None

    def test_fetch_by_string_id(self, accessor, make_mix_batch):
        batch = make_mix_batch()
        info = accessor.fetch("mix_batch", str(batch.id), TENANT_A)
        assert info.status == "planned"

    def test_other_tenant_looks_missing(self, accessor, make_stockpile):
        """A row in another tenant and a missing row fail identically."""
        stockpile = make_stockpile()

        with pytest.raises(AggregateNotFoundError) as cross:
            accessor.fetch("stockpile", stockpile.id, TENANT_B, "Stockpile")
        with pytest.raises(AggregateNotFoundError) as missing:
            accessor.fetch("stockpile", uuid4(), TENANT_A, "Stockpile")

        assert str(cross.value) == str(missing.value) == "Stockpile not found."

    def test_malformed_id_is_not_found(self, accessor):
        with pytest.raises(AggregateNotFoundError):
            accessor.fetch("mix_batch", "nope", TENANT_A)

    def test_unknown_kind(self, accessor):
        with pytest.raises(ValidationError):
            accessor.fetch("pallet", uuid4(), TENANT_A)

    def test_exists(self, accessor, make_stockpile):
        stockpile = make_stockpile()
        assert accessor.exists("stockpile", stockpile.id, TENANT_A)
        assert not accessor.exists("stockpile", stockpile.id, TENANT_B)
