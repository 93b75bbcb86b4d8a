"""
Tests for structured logging.

Covers:
- JSON line layout, extras and governance context fields
- Kernel exception codes and fields on error lines
- LogContext binding, nesting and restoration
- configure_logging idempotency and the logger namespace
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from milestone_kernel.exceptions import DuplicateVoteError, InsufficientBalanceError
from milestone_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    yield
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def log_stream():
    """Configure the kernel logger onto a fresh stream; returns a line reader."""
    stream = StringIO()
    configure_logging(handler=logging.StreamHandler(stream))

    def _lines() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _lines


class TestStructuredFormatter:

    def test_line_layout(self, log_stream):
        get_logger("services.voting").info("vote_cast")

        (line,) = log_stream()
        assert line["level"] == "INFO"
        assert line["message"] == "vote_cast"
        assert line["logger"] == "milestone_kernel.services.voting"
        assert line["ts"].endswith("+00:00")

    def test_extras_serialized(self, log_stream):
        vote_id = uuid4()
        get_logger("test").info(
            "release_recorded",
            extra={"vote_id": vote_id, "amount": Decimal("0.010"), "weight": 60},
        )

        (line,) = log_stream()
        assert line["vote_id"] == str(vote_id)
        assert line["amount"] == "0.010"
        assert line["weight"] == 60

    def test_bound_context_stamped(self, log_stream):
        project_id, milestone_id = uuid4(), uuid4()
        with LogContext.bind(project_id=project_id, milestone_id=milestone_id):
            get_logger("test").info("inside")
        get_logger("test").info("outside")

        inside, outside = log_stream()
        assert inside["project_id"] == str(project_id)
        assert inside["milestone_id"] == str(milestone_id)
        assert "project_id" not in outside

    def test_kernel_exception_fields(self, log_stream):
        try:
            raise InsufficientBalanceError("voter-1", 60, 50)
        except InsufficientBalanceError:
            get_logger("test").error("vote_failed", exc_info=True)

        (line,) = log_stream()
        assert line["exc_type"] == "InsufficientBalanceError"
        assert line["exc_code"] == "INSUFFICIENT_BALANCE"
        assert line["exc_voter_id"] == "voter-1"
        assert line["exc_requested"] == 60
        assert line["exc_available"] == 50
        assert "traceback" in line

    def test_plain_exception(self, log_stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").exception("failed")

        (line,) = log_stream()
        assert line["exc_type"] == "ValueError"
        assert line["exc_message"] == "boom"
        assert "exc_code" not in line

    def test_formatter_standalone(self):
        record = logging.LogRecord("milestone_kernel.x", logging.WARNING, "", 0, "msg %s", ("a",), None)
        line = json.loads(StructuredFormatter().format(record))
        assert line["message"] == "msg a"
        assert line["level"] == "WARNING"


class TestLogContext:

    def test_empty_by_default(self):
        assert LogContext.get_all() == {}

    def test_nested_bind_restores(self):
        outer, inner = uuid4(), uuid4()
        with LogContext.bind(actor_id=outer):
            with LogContext.bind(actor_id=inner, project_id="p-1"):
                assert LogContext.get_all() == {"actor_id": str(inner), "project_id": "p-1"}
            assert LogContext.get_all() == {"actor_id": str(outer)}
        assert LogContext.get_all() == {}

    def test_none_leaves_field_unchanged(self):
        with LogContext.bind(milestone_id="m-1"):
            with LogContext.bind(milestone_id=None):
                assert LogContext.get_all() == {"milestone_id": "m-1"}

    def test_restored_after_error(self):
        with pytest.raises(DuplicateVoteError):
            with LogContext.bind(milestone_id="m-1"):
                raise DuplicateVoteError("m-1", "v-1")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            with LogContext.bind(correlation_id="c"):
                pass

    def test_clear(self):
        with LogContext.bind(project_id="p-1"):
            LogContext.clear()
            assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_second_call_is_noop(self):
        first = logging.StreamHandler(StringIO())
        second = logging.StreamHandler(StringIO())
        configure_logging(handler=first)
        configure_logging(handler=second, level=logging.ERROR)

        kernel_logger = logging.getLogger("milestone_kernel")
        assert first in kernel_logger.handlers
        assert second not in kernel_logger.handlers
        assert kernel_logger.level == logging.INFO

    def test_level_filters(self, log_stream):
        logger = get_logger("test")
        logger.debug("dropped")
        logger.info("kept")
        assert [line["message"] for line in log_stream()] == ["kept"]

    def test_does_not_propagate(self, log_stream):
        assert logging.getLogger("milestone_kernel").propagate is False

    def test_reset_allows_reconfiguration(self):
        configure_logging(level=logging.ERROR, handler=logging.StreamHandler(StringIO()))
        reset_logging()
        configure_logging(level=logging.DEBUG, handler=logging.StreamHandler(StringIO()))
        assert logging.getLogger("milestone_kernel").level == logging.DEBUG
