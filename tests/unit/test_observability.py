"""Unit tests for structured logging utilities in ``observability``."""

from __future__ import annotations

import logging

import pytest

from lib_tag_config import bind_trace_id, get_logger
from lib_tag_config.observability import TRACE_ID, log_info, make_event, new_trace_id


def test_null_handler_present() -> None:
    """Package logger should always include a NullHandler to avoid surprises."""

    logger = get_logger()
    assert any(isinstance(handler, logging.NullHandler) for handler in logger.handlers)


def test_trace_id_in_log(caplog: pytest.LogCaptureFixture) -> None:
    """Structured logs should include the bound trace identifier and contextual fields."""

    caplog.set_level(logging.INFO, logger="lib_tag_config")
    bind_trace_id("trace-123")
    log_info("bundle_composed", tag="eu", path=None)
    record = caplog.records[-1]
    assert getattr(record, "context") == {"trace_id": "trace-123", "tag": "eu", "path": None}
    bind_trace_id(None)


def test_bind_trace_id_clears_context() -> None:
    bind_trace_id("trace-temp")
    bind_trace_id(None)
    assert TRACE_ID.get() is None


def test_new_trace_id_binds_a_fresh_identifier() -> None:
    first = new_trace_id()
    second = new_trace_id()
    assert first != second
    assert TRACE_ID.get() == second
    assert len(second) == 16
    bind_trace_id(None)


def test_make_event_merges_optional_payload() -> None:
    assert make_event("eu", None, {"depth": 3}) == {"tag": "eu", "path": None, "depth": 3}
    assert make_event(None, "default.json") == {"tag": None, "path": "default.json"}
