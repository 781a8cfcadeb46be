"""Tests for kernel logging: formatters, LogContext and configure_logging."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from brickworks_kernel.exceptions import InsufficientInventoryError, InvalidTransitionError
from brickworks_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    """Each test configures logging itself; the suite's setup comes back afterwards."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def json_lines():
    """Configure JSON logging into a buffer; call the fixture value to read it back."""
    stream = StringIO()

    def _configure(**kwargs):
        configure_logging(handler=logging.StreamHandler(stream), **kwargs)

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    _read.configure = _configure
    return _read


def _log_error(logger_name: str, message: str, exc: Exception) -> None:
    try:
        raise exc
    except type(exc):
        get_logger(logger_name).error(message, exc_info=True)


class TestStructuredOutput:

    def test_header_fields(self, json_lines):
        json_lines.configure()
        get_logger("services.stockpile").info("stockpile_created")

        (record,) = json_lines()
        assert record["message"] == "stockpile_created"
        assert record["level"] == "INFO"
        assert record["logger"] == "brickworks_kernel.services.stockpile"
        assert record["ts"].endswith("+00:00")

    def test_extras_and_uuid(self, json_lines):
        json_lines.configure()
        batch_id = uuid4()
        get_logger("services.batch").info(
            "batch_status_changed",
            extra={"batch_id": batch_id, "from_status": "planned", "allowed": ("planned", "active")},
        )

        (record,) = json_lines()
        assert record["batch_id"] == str(batch_id)
        assert record["from_status"] == "planned"
        assert record["allowed"] == ["planned", "active"]

    def test_bound_context_appears(self, json_lines):
        json_lines.configure()
        correlation_id = uuid4()
        with LogContext.bind(correlation_id=correlation_id, aggregate_type="mix_batch"):
            get_logger("services.batch").info("inside")
        get_logger("services.batch").info("outside")

        inside, outside = json_lines()
        assert inside["correlation_id"] == str(correlation_id)
        assert inside["aggregate_type"] == "mix_batch"
        assert "correlation_id" not in outside

    def test_context_beats_extra(self, json_lines):
        json_lines.configure()
        with LogContext.bind(operation="mixing.start"):
            get_logger("services.batch").info("msg", extra={"operation": "spoofed"})

        assert json_lines()[0]["operation"] == "mixing.start"

    def test_plain_exception(self, json_lines):
        json_lines.configure()
        _log_error("db", "flush_failed", ValueError("disk full"))

        (record,) = json_lines()
        assert (record["exc_type"], record["exc_message"]) == ("ValueError", "disk full")
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_exception_fields(self, json_lines):
        """Error code and structured attributes travel with the record."""
        json_lines.configure()
        _log_error("services.availability", "check_failed", InsufficientInventoryError("pool-1", 10, 15))

        (record,) = json_lines()
        assert record["exc_code"] == "INSUFFICIENT_INVENTORY"
        assert record["exc_available"] == 10
        assert record["exc_requested"] == 15

    def test_transition_error_fields(self, json_lines):
        json_lines.configure()
        _log_error(
            "services.batch",
            "transition_rejected",
            InvalidTransitionError("mix_batch", "b-1", "cancelled", ("active",), "complete"),
        )

        record = json_lines()[0]
        assert record["exc_code"] == "INVALID_TRANSITION"
        assert record["exc_message"] == "Cannot complete a cancelled mix batch; status must be active."
        assert record["exc_current_status"] == "cancelled"
        assert record["exc_required_statuses"] == ["active"]

    def test_level_filters(self, json_lines):
        json_lines.configure(level="warning")
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in json_lines()] == ["kept"]


class TestKeyValueOutput:

    def test_single_line_with_pairs(self):
        stream = StringIO()
        configure_logging(stream=stream, json_output=False)
        with LogContext.bind(tenant_id="t-1"):
            get_logger("services.stockpile").info("receipt_recorded", extra={"quantity": 12.5})

        line = stream.getvalue().strip()
        assert "INFO" in line
        assert "brickworks_kernel.services.stockpile receipt_recorded" in line
        assert line.endswith("tenant_id=t-1 quantity=12.5")


class TestLogContext:

    def test_set_get_clear(self):
        LogContext.set(correlation_id="c-1", tenant_id=None, actor_id="a-1")
        assert LogContext.get_all() == {"correlation_id": "c-1", "actor_id": "a-1"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_get_all_follows_field_order(self):
        LogContext.set(**{name: name.upper() for name in reversed(CONTEXT_FIELDS)})
        assert tuple(LogContext.get_all()) == CONTEXT_FIELDS

    def test_bind_nests_and_restores(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", aggregate_id="b-1"):
            with LogContext.bind(aggregate_id="b-2"):
                assert LogContext.get_all()["aggregate_id"] == "b-2"
            assert LogContext.get_all() == {"correlation_id": "inner", "aggregate_id": "b-1"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(operation="stockpile.transfer"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="Unknown log context field: shift"):
            LogContext.set(shift="night")
        with pytest.raises(TypeError):
            with LogContext.bind(shift="night"):
                pass


class TestConfigureLogging:

    def test_only_first_call_counts(self):
        configure_logging(stream=StringIO())
        configure_logging(stream=StringIO())
        assert len(logging.getLogger("brickworks_kernel").handlers) == 1

    def test_does_not_propagate(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("brickworks_kernel").propagate is False

    def test_children_share_handler(self, json_lines):
        json_lines.configure(level=logging.DEBUG)
        get_logger("selectors.report").debug("view_read")

        assert json_lines()[0]["logger"] == "brickworks_kernel.selectors.report"
