"""Tests for the structured logging system (fuel_kernel/logging_config.py)."""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from fuel_kernel.domain.lifecycle import TransactionStatus
from fuel_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "fuel_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("validated", extra={"member_count": 2, "status": "validated"})

        record = _parse_log(stream)
        assert record["member_count"] == 2
        assert record["status"] == "validated"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", station_id="st-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["station_id"] == "st-1"

    def test_ledger_values_serialized(self):
        """UUID, Decimal, datetime and enums all become JSON strings."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        when = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        get_logger("test").info(
            "with_values",
            extra={
                "invoice_ref": uid,
                "total_value": Decimal("150.00"),
                "at": when,
                "state": TransactionStatus.PAID,
            },
        )

        record = _parse_log(stream)
        assert record["invoice_ref"] == str(uid)
        assert record["total_value"] == "150.00"
        assert record["at"] == when.isoformat()
        assert record["state"] == "paid"

    def test_dates_are_iso_formatted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "dated",
            extra={
                "settled_at": datetime(2024, 3, 5, 8, 30, tzinfo=timezone.utc),
                "period_start": date(2024, 3, 1),
            },
        )

        record = _parse_log(stream)
        assert record["settled_at"] == "2024-03-05T08:30:00+00:00"
        assert record["period_start"] == "2024-03-01"

    def test_unknown_objects_fall_back_to_str(self):
        class Opaque:
            def __str__(self):
                return "opaque-value"

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("opaque", extra={"thing": Opaque()})

        assert _parse_log(stream)["thing"] == "opaque-value"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_ledger_exception_code_extracted(self):
        """Ledger exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from fuel_kernel.exceptions import InvalidStateError

        try:
            raise InvalidStateError("Invoice", "inv-1", "settle", "PAID", ("PENDING_ADMIN",))
        except InvalidStateError:
            get_logger("test").error("state_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INVALID_STATE"
        assert record["exc_type"] == "InvalidStateError"
        assert record["exc_entity_id"] == "inv-1"
        assert record["exc_current_state"] == "PAID"
        assert record["exc_required_states"] == ["PENDING_ADMIN"]

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "invoice_id" not in record

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        # Default level is INFO, so the debug line is dropped
        logs = _parse_all_logs(stream)
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", transaction_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "transaction_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner"):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all()["correlation_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "invoice_id" not in LogContext.get_all()
        with LogContext.bind(invoice_id="temp"):
            assert LogContext.get_all()["invoice_id"] == "temp"
        assert "invoice_id" not in LogContext.get_all()

    def test_bind_stringifies_and_skips_none(self):
        uid = uuid4()
        with LogContext.bind(station_id=uid, invoice_id=None):
            ctx = LogContext.get_all()
        assert ctx == {"station_id": str(uid)}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            operation="o",
            station_id="s",
            transaction_id="t",
            invoice_id="i",
        )
        ctx = LogContext.get_all()
        assert list(ctx) == list(CONTEXT_FIELDS)
        assert ctx["operation"] == "o"

    def test_set_stringifies_ids(self):
        uid = uuid4()
        LogContext.set(transaction_id=uid)
        assert LogContext.get_all() == {"transaction_id": str(uid)}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="voucher_code"):
            LogContext.set(voucher_code="FRT-1")
        with pytest.raises(TypeError):
            with LogContext.bind(voucher_code="FRT-1"):
                pass
        assert LogContext.get_all() == {}

    def test_nested_binds_unwind(self):
        with LogContext.bind(operation="outer", station_id="s1"):
            with LogContext.bind(operation="inner", invoice_id="i1"):
                assert LogContext.get_all() == {
                    "operation": "inner",
                    "station_id": "s1",
                    "invoice_id": "i1",
                }
            assert LogContext.get_all() == {"operation": "outer", "station_id": "s1"}
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        assert len(logging.getLogger("fuel_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.fill_validator").name == "fuel_kernel.services.fill_validator"

    def test_logger_hierarchy(self):
        """Child loggers inherit the fuel_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "fuel_kernel.deep.nested.module"

    def test_level_name_accepted(self):
        configure_logging(level="WARNING", handler=_make_handler()[0])
        assert logging.getLogger("fuel_kernel").level == logging.WARNING
