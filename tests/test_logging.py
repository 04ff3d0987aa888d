"""Tests for the structured logging system (billing_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from billing_kernel.domain.dtos import DocumentKind
from billing_kernel.exceptions import PeriodNotOpenError
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's DEBUG setup."""
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


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "billing_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("allocated", extra={"value": 42, "kind": "invoice"})

        record = _parse_log(stream)
        assert record["value"] == 42
        assert record["kind"] == "invoice"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", party="school:1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["party"] == "school:1"

    def test_bind_restores_previous_values(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")

        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", document_id="doc-1"):
            logger.info("inside")
        logger.info("outside")

        lines = [json.loads(line) for line in stream.getvalue().strip().split("\n")]
        assert lines[0]["actor_id"] == "inner"
        assert lines[0]["document_id"] == "doc-1"
        assert lines[1]["actor_id"] == "outer"
        assert "document_id" not in lines[1]

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise PeriodNotOpenError("2023-24", "void payment")
        except PeriodNotOpenError:
            get_logger("test").error("period_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "PERIOD_NOT_OPEN"
        assert record["exc_type"] == "PeriodNotOpenError"
        assert record["exc_period_name"] == "2023-24"
        assert record["exc_operation"] == "void payment"
        assert "traceback" in record

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "period_id" not in record

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed",
            extra={"document_id": uid, "amount": Decimal("12.50"), "kind": DocumentKind.INVOICE},
        )

        record = _parse_log(stream)
        assert record["document_id"] == str(uid)
        assert record["amount"] == "12.50"
        assert record["kind"] == "invoice"

    def test_configure_is_idempotent(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        second = logging.StreamHandler(StringIO())
        configure_logging(handler=second)

        kernel_handlers = logging.getLogger("billing_kernel").handlers
        structured = [h for h in kernel_handlers if isinstance(h.formatter, StructuredFormatter)]
        assert structured == [handler]
        assert second not in kernel_handlers

    def test_level_accepts_setting_names(self):
        handler, stream = _make_handler()
        configure_logging(level="warning", handler=handler)
        logger = get_logger("test")

        logger.info("dropped")
        logger.warning("kept")

        assert _parse_log(stream)["message"] == "kept"

    def test_unknown_context_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="x")
        with pytest.raises(TypeError):
            with LogContext.bind(tenant="x"):
                pass

    def test_error_category_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise PeriodNotOpenError("2023-24", "void payment")
        except PeriodNotOpenError:
            get_logger("test").warning("rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_kind"] == "CONFLICT"
        assert record["exc_status_code"] == 409
