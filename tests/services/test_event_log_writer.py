"""Tests for EventLogWriter."""

from uuid import uuid4

import pytest

from brickworks_kernel.domain.correlation import CorrelationScope
from brickworks_kernel.exceptions import EventPersistenceError
from brickworks_kernel.services.event_log import EventLogWriter, NewEvent


@pytest.fixture
def writer(session, deterministic_clock):
    return EventLogWriter(session, deterministic_clock)


def _event(event_type="STOCKPILE_SAMPLE_TAKEN", aggregate_id=None, **payload):
    return NewEvent(
        aggregate_type="stockpile",
        aggregate_id=aggregate_id or uuid4(),
        event_type=event_type,
        payload=payload,
    )


class TestAppend:

    def test_attribution_from_actor(self, writer, admin_actor, deterministic_clock):
        record = writer.append(admin_actor, _event(sampleCode="S-1"))

        assert record.tenant_id == admin_actor.tenant_id
        assert record.actor_id == admin_actor.actor_id
        assert record.actor_role == "admin"
        assert record.source == "kernel"
        assert record.payload == {"sampleCode": "S-1"}
        assert record.occurred_at == deterministic_clock.now()

    def test_without_scope(self, writer, admin_actor):
        record = writer.append(admin_actor, _event())
        assert record.correlation_id is None
        assert record.causation_id is None
        assert record.position == 1

    def test_scope_positions_and_causation(self, writer, admin_actor):
        """Events of one scope share its correlation id; the first causes the rest."""
        scope = CorrelationScope.begin("test")
        first = writer.append(admin_actor, _event(), scope)
        second = writer.append(admin_actor, _event(), scope)

        assert first.correlation_id == second.correlation_id == str(scope.correlation_id)
        assert (first.position, second.position) == (1, 2)
        assert first.causation_id is None
        assert second.causation_id == str(first.id)

    def test_explicit_causation_wins(self, writer, admin_actor):
        cause = uuid4()
        record = writer.append(
            admin_actor,
            NewEvent("stockpile", uuid4(), "STOCKPILE_SAMPLE_TAKEN", {}, causation_id=cause),
            CorrelationScope.begin(),
        )
        assert record.causation_id == str(cause)

    def test_custom_source(self, session, admin_actor):
        record = EventLogWriter(session, source="import").append(admin_actor, _event())
        assert record.source == "import"


class TestAppendFailure:

    def test_non_serializable_payload(self, writer, admin_actor, event_selector):
        aggregate_id = uuid4()
        with pytest.raises(EventPersistenceError) as exc:
            writer.append(admin_actor, _event(aggregate_id=aggregate_id, when=object()))

        assert exc.value.event_type == "STOCKPILE_SAMPLE_TAKEN"
        assert exc.value.code == "EVENT_PERSISTENCE_ERROR"
        assert event_selector.for_aggregate(admin_actor.tenant_id, "stockpile", aggregate_id) == []

    def test_logs_event_appended(self, writer, admin_actor, captured_logs):
        scope = CorrelationScope.begin()
        writer.append(admin_actor, _event(), scope)

        records = [r for r in captured_logs() if r["message"] == "event_appended"]
        assert len(records) == 1
        assert records[0]["correlation_id"] == str(scope.correlation_id)
        assert records[0]["event_type"] == "STOCKPILE_SAMPLE_TAKEN"
