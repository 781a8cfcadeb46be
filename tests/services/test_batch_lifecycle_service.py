"""Tests for BatchLifecycleService status transitions."""

from uuid import uuid4

import pytest

from brickworks_kernel.domain.commands import (
    CancelBatchCommand,
    CompleteBatchCommand,
    CreateBatchCommand,
    StartBatchCommand,
)
from brickworks_kernel.domain.lifecycle import LifecycleOperation
from brickworks_kernel.exceptions import (
    AggregateNotFoundError,
    InvalidTransitionError,
    RoleNotPermittedError,
)
from brickworks_kernel.services.batch_lifecycle import BatchLifecycleService

from tests.conftest import TENANT_A, make_actor


class TestConstruction:

    def test_pool_must_match_stage(self, session, plant_config):
        with pytest.raises(ValueError):
            BatchLifecycleService(
                session, plant_config.stages["mixing"], plant_config.pools["mix_output"],
            )


class TestCreate:

    def test_creates_planned_batch(self, mixing, admin_actor):
        result = mixing.create(admin_actor, CreateBatchCommand(code="MIX-001", target_output=20))

        assert result.created
        assert result.aggregate.status == "planned"
        assert result.aggregate.target_output == 20
        assert result.event_types == ("MIX_BATCH_CREATED",)
        assert result.events[0].payload == {
            "batchId": str(result.aggregate.id),
            "batchCode": "MIX-001",
            "targetOutput": 20,
            "unit": "t",
        }

    def test_retry_returns_existing_without_event(self, mixing, admin_actor, event_selector):
        """Creating the same code twice yields one batch and one CREATED event."""
        first = mixing.create(admin_actor, CreateBatchCommand(code="MIX-001"))
        second = mixing.create(admin_actor, CreateBatchCommand(code="MIX-001", target_output=99))

        assert not second.created
        assert second.events == ()
        assert second.aggregate.id == first.aggregate.id
        assert second.aggregate.target_output is None
        assert event_selector.count_by_type(TENANT_A, "MIX_BATCH_CREATED") == 1

    def test_retry_does_not_reset_status(self, mixing, admin_actor, make_mix_batch):
        batch = make_mix_batch(status="active", code="MIX-002")
        again = mixing.create(admin_actor, CreateBatchCommand(code="MIX-002"))
        assert again.aggregate.id == batch.id
        assert again.aggregate.status == "active"

    def test_codes_are_per_tenant(self, mixing, admin_actor, other_tenant_actor):
        a = mixing.create(admin_actor, CreateBatchCommand(code="MIX-001"))
        b = mixing.create(other_tenant_actor, CreateBatchCommand(code="MIX-001"))
        assert b.created
        assert a.aggregate.id != b.aggregate.id

    def test_stage_role_may_create(self, mixing, mixing_operator):
        assert mixing.create(mixing_operator, CreateBatchCommand(code="MIX-9")).created

    def test_other_role_rejected(self, mixing, viewer_actor, event_selector):
        with pytest.raises(RoleNotPermittedError) as exc:
            mixing.create(viewer_actor, CreateBatchCommand(code="MIX-9"))
        assert str(exc.value) == "Role viewer is not permitted to create mix batch."
        assert event_selector.count_by_type(TENANT_A, "MIX_BATCH_CREATED") == 0


class TestTransitions:

    def test_start(self, mixing, admin_actor, make_mix_batch, deterministic_clock):
        batch = make_mix_batch()
        result = mixing.start(admin_actor, StartBatchCommand(batch_id=batch.id))

        assert result.aggregate.status == "active"
        assert result.aggregate.started_at is not None
        assert result.event_types == ("MIX_BATCH_STARTED",)
        assert result.events[0].payload["startedAt"] == deterministic_clock.now().isoformat()

    def test_complete_records_output(self, mixing, admin_actor, make_mix_batch):
        batch = make_mix_batch(status="active")
        result = mixing.complete(
            admin_actor,
            CompleteBatchCommand(batch_id=batch.id, output_quantity=19.5, quality_metric=14.2),
        )

        assert result.aggregate.status == "completed"
        assert result.aggregate.output_quantity == 19.5
        assert result.aggregate.quality_metric == 14.2
        payload = result.events[0].payload
        assert (payload["outputQuantity"], payload["qualityMetric"], payload["unit"]) == (19.5, 14.2, "t")

    @pytest.mark.parametrize("status", ["planned", "active"])
    def test_cancel_open_batch(self, mixing, admin_actor, make_mix_batch, status):
        batch = make_mix_batch(status=status)
        result = mixing.cancel(admin_actor, CancelBatchCommand(batch_id=batch.id, reason="wet clay"))

        assert result.aggregate.status == "cancelled"
        assert result.aggregate.cancel_reason == "wet clay"
        assert result.events[0].payload["reason"] == "wet clay"

    def test_cancel_without_reason(self, mixing, admin_actor, make_mix_batch):
        batch = make_mix_batch()
        result = mixing.cancel(admin_actor, CancelBatchCommand(batch_id=batch.id))
        assert result.events[0].payload["reason"] is None

    def test_full_lifecycle_event_history(self, mixing, admin_actor, event_selector, deterministic_clock):
        batch = mixing.create(admin_actor, CreateBatchCommand(code="MIX-H")).aggregate
        deterministic_clock.tick()
        mixing.start(admin_actor, StartBatchCommand(batch_id=batch.id))
        deterministic_clock.tick()
        mixing.complete(admin_actor, CompleteBatchCommand(batch_id=batch.id, output_quantity=10))

        history = event_selector.for_aggregate(TENANT_A, "mix_batch", batch.id)
        assert [e.event_type for e in history] == [
            "MIX_BATCH_CREATED",
            "MIX_BATCH_STARTED",
            "MIX_BATCH_COMPLETED",
        ]
        assert len({e.correlation_id for e in history}) == 3


class TestInvalidTransitions:
    """Terminal and out-of-order transitions are rejected without side effects."""

    @pytest.mark.parametrize(
        "status, operation",
        [
            ("active", "start"),
            ("completed", "start"),
            ("planned", "complete"),
            ("completed", "complete"),
            ("completed", "cancel"),
        ],
    )
    def test_rejected(self, mixing, admin_actor, make_mix_batch, event_selector, status, operation):
        batch = make_mix_batch(status=status)
        before = len(event_selector.for_aggregate(TENANT_A, "mix_batch", batch.id))
        commands = {
            "start": lambda: mixing.start(admin_actor, StartBatchCommand(batch_id=batch.id)),
            "complete": lambda: mixing.complete(admin_actor, CompleteBatchCommand(batch_id=batch.id)),
            "cancel": lambda: mixing.cancel(admin_actor, CancelBatchCommand(batch_id=batch.id)),
        }

        with pytest.raises(InvalidTransitionError) as exc:
            commands[operation]()

        assert exc.value.current_status == status
        assert mixing.get(admin_actor, batch.id).status == status
        assert len(event_selector.for_aggregate(TENANT_A, "mix_batch", batch.id)) == before

    def test_message(self, mixing, admin_actor, make_mix_batch):
        batch = make_mix_batch()
        with pytest.raises(InvalidTransitionError, match="Cannot complete a planned mix batch; status must be active."):
            mixing.complete(admin_actor, CompleteBatchCommand(batch_id=batch.id))

    def test_cancelled_is_terminal(self, mixing, admin_actor, make_mix_batch):
        batch = make_mix_batch()
        mixing.cancel(admin_actor, CancelBatchCommand(batch_id=batch.id))
        with pytest.raises(InvalidTransitionError) as exc:
            mixing.start(admin_actor, StartBatchCommand(batch_id=batch.id))
        assert exc.value.required_statuses == ("planned",)

    def test_conditional_update_detects_concurrent_change(
        self, mixing, admin_actor, make_mix_batch, captured_logs,
    ):
        """A stale read loses to a concurrent transition at the UPDATE."""
        stale = make_mix_batch()
        mixing.start(admin_actor, StartBatchCommand(batch_id=stale.id))

        with pytest.raises(InvalidTransitionError) as exc:
            mixing._transition(admin_actor, stale, LifecycleOperation.START, {})

        assert exc.value.current_status == "active"
        assert any(r["message"] == "batch_transition_lost_race" for r in captured_logs())


class TestScoping:

    def test_unknown_batch(self, mixing, admin_actor):
        with pytest.raises(AggregateNotFoundError, match="Mix batch not found."):
            mixing.start(admin_actor, StartBatchCommand(batch_id=uuid4()))

    def test_other_tenant_batch_not_found(self, mixing, make_mix_batch, other_tenant_actor):
        batch = make_mix_batch()
        with pytest.raises(AggregateNotFoundError):
            mixing.start(other_tenant_actor, StartBatchCommand(batch_id=batch.id))

    def test_role_checked_before_lookup(self, mixing):
        """An unauthorized actor learns nothing about which batches exist."""
        crusher = make_actor("crushing_operator")
        with pytest.raises(RoleNotPermittedError, match="to start mix batch"):
            mixing.start(crusher, StartBatchCommand(batch_id=uuid4()))

    def test_logs_status_change_with_context(self, mixing, admin_actor, make_mix_batch, captured_logs):
        batch = make_mix_batch()
        mixing.start(admin_actor, StartBatchCommand(batch_id=batch.id))

        changed = [r for r in captured_logs() if r["message"] == "batch_status_changed"]
        assert len(changed) == 1
        assert changed[0]["from_status"] == "planned"
        assert changed[0]["to_status"] == "active"
        assert changed[0]["aggregate_id"] == str(batch.id)
        assert changed[0]["operation"] == "mixing.start"
