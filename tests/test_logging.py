"""Tests for the structured logging system (planning_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from planning_kernel.exceptions import NotEditableError
from planning_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
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
        assert record["logger"] == "planning_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("item_updated", extra={"line_number": 3, "field": "q1_qty"})

        record = _parse_log(stream)
        assert record["line_number"] == 3
        assert record["field"] == "q1_qty"

    def test_decimal_and_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        item_id = uuid4()
        get_logger("test").info("x", extra={"item_id": item_id, "qty": Decimal("935.87")})

        record = _parse_log(stream)
        assert record["item_id"] == str(item_id)
        assert record["qty"] == "935.87"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(request_id="req-1", actor_id="actor-1"):
            get_logger("test").info("inside")

        record = _parse_log(stream)
        assert record["request_id"] == "req-1"
        assert record["actor_id"] == "actor-1"

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(request_id="from-context"):
            get_logger("test").info("x", extra={"request_id": "from-extra"})

        assert _parse_log(stream)["request_id"] == "from-context"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")

        record = _parse_log(stream)
        assert "request_id" not in record
        assert "actor_id" not in record

    def test_planning_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise NotEditableError("req-9", "submitted", "add_item")
        except NotEditableError:
            get_logger("test").exception("refused")

        record = _parse_log(stream)
        assert record["exc_type"] == "NotEditableError"
        assert record["exc_code"] == "NOT_EDITABLE"
        assert record["exc_status"] == "submitted"
        assert record["exc_operation"] == "add_item"
        assert "traceback" in record


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(request_id="r", actor_id="a")
        assert LogContext.get_all() == {"request_id": "r", "actor_id": "a"}

    def test_clear(self):
        LogContext.set(request_id="r")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(request_id="outer")
        with LogContext.bind(request_id="inner", actor_id="a"):
            assert LogContext.get_all()["request_id"] == "inner"
        assert LogContext.get_all() == {"request_id": "outer"}

    def test_bind_ignores_none(self):
        with LogContext.bind(request_id=None, actor_id="a"):
            assert LogContext.get_all() == {"actor_id": "a"}

    def test_bind_stringifies_uuid(self):
        actor = uuid4()
        with LogContext.bind(actor_id=actor):
            assert LogContext.get_all()["actor_id"] == str(actor)


class TestConfigureLogging:

    def test_idempotent(self):
        first, _ = _make_handler()
        second, _ = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)

        handlers = logging.getLogger("planning_kernel").handlers
        assert first in handlers
        assert second not in handlers

    def test_get_logger_returns_child(self):
        assert get_logger("modules.budget_request").name == (
            "planning_kernel.modules.budget_request"
        )

    def test_level_applied(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [json.loads(line)["message"] for line in stream.getvalue().splitlines()] == [
            "kept"
        ]
