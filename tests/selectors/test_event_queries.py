"""Tests for EventSelector."""

from brickworks_kernel.domain.commands import (
    AddComponentCommand,
    StartBatchCommand,
)

from tests.conftest import TENANT_A, TENANT_B


class TestEventSelector:

    def test_for_aggregate_is_tenant_scoped(self, event_selector, make_mix_batch):
        batch = make_mix_batch()
        assert len(event_selector.for_aggregate(TENANT_A, "mix_batch", batch.id)) == 1
        assert event_selector.for_aggregate(TENANT_B, "mix_batch", batch.id) == []

    def test_for_aggregate_oldest_first(self, event_selector, mixing, admin_actor, make_mix_batch, deterministic_clock):
        batch = make_mix_batch()
        deterministic_clock.advance(60)
        mixing.start(admin_actor, StartBatchCommand(batch_id=batch.id))

        history = event_selector.for_aggregate(TENANT_A, "mix_batch", str(batch.id))
        assert [e.event_type for e in history] == ["MIX_BATCH_CREATED", "MIX_BATCH_STARTED"]

    def test_for_correlation_append_order(self, event_selector, mixing, admin_actor, make_mix_batch, make_stockpile):
        stockpile = make_stockpile(receipt=5)
        batch = make_mix_batch()
        result = mixing.add_component(
            admin_actor,
            AddComponentCommand(batch_id=batch.id, pool_id=stockpile.id, quantity=2, material_type="clay"),
        )

        events = event_selector.for_correlation(TENANT_A, str(result.correlation_id))
        assert [e.aggregate_type for e in events] == ["mix_batch", "stockpile"]
        assert event_selector.for_correlation(TENANT_B, result.correlation_id) == []

    def test_count_by_type(self, event_selector, make_mix_batch):
        make_mix_batch()
        make_mix_batch()
        assert event_selector.count_by_type(TENANT_A, "MIX_BATCH_CREATED") == 2
        assert event_selector.count_by_type(TENANT_B, "MIX_BATCH_CREATED") == 0
