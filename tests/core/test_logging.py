"""Tests for structured logging module."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import structlog

from backoffice.core.logging import (
    LOG_FILE_NAME,
    configure_logging,
    current_page,
    inject_page,
    inject_trace_ids,
    pop_page,
    push_page,
)

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Page context
# ---------------------------------------------------------------------------


class TestPageContext:
    def test_push_and_pop(self):
        token = push_page("waiters")
        assert current_page() == "waiters"
        pop_page(token)
        assert current_page() is None

    def test_nested_pages_restore_outer(self):
        outer = push_page("beds")
        inner = push_page("rooms")
        assert current_page() == "rooms"
        pop_page(inner)
        assert current_page() == "beds"
        pop_page(outer)

    def test_default_is_none(self):
        assert current_page() is None


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


class TestInjectPage:
    def test_injects_page_name(self):
        push_page("beds")
        result = inject_page(None, "info", {"event": "test"})
        assert result["page"] == "beds"

    def test_handles_unset_context(self):
        result = inject_page(None, "info", {"event": "test"})
        assert result["page"] is None


class TestInjectTraceIds:
    def test_zeroed_ids_when_no_span(self):
        result = inject_trace_ids(None, "info", {"event": "test"})
        assert result["trace_id"] == "0" * 32
        assert result["span_id"] == "0" * 16

    def test_real_ids_when_span_active(self):
        from opentelemetry.sdk.trace import TracerProvider

        provider = TracerProvider()
        tracer = provider.get_tracer("test")
        with tracer.start_as_current_span("test-span") as span:
            result = inject_trace_ids(None, "info", {"event": "test"})
            assert result["trace_id"] == format(span.get_span_context().trace_id, "032x")
            assert len(result["span_id"]) == 16
        provider.shutdown()


# ---------------------------------------------------------------------------
# configure_logging()
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_text_format_installs_console_renderer(self):
        configure_logging(fmt="text")
        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(formatter.processors[-1], structlog.dev.ConsoleRenderer)

    def test_json_format_installs_json_renderer(self):
        configure_logging(fmt="json")
        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_reconfiguring_does_not_duplicate_handlers(self):
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_http_loggers_quietened(self):
        configure_logging(level="DEBUG")
        assert logging.getLogger("httpx").level >= logging.WARNING
        assert logging.getLogger("httpcore").level >= logging.WARNING

    def test_log_level_applied(self):
        configure_logging(level="debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        configure_logging(level="chatty")
        assert logging.getLogger().level == logging.INFO


class TestLogFile:
    def test_nested_log_root_created(self, tmp_path: Path):
        log_dir = tmp_path / "deep" / "nested"
        configure_logging(log_root=log_dir)
        assert log_dir.is_dir()

    def test_file_handler_always_json(self, tmp_path: Path):
        configure_logging(fmt="text", log_root=tmp_path)
        file_handlers = [
            h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename.endswith(LOG_FILE_NAME)
        formatter = file_handlers[0].formatter
        assert isinstance(formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_json_output_carries_page(self, tmp_path: Path):
        configure_logging(fmt="json", log_root=tmp_path)
        push_page("room-classes")
        logging.getLogger("backoffice.test").info("hello structured world")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = (tmp_path / "backoffice.log").read_text().strip().splitlines()
        data = json.loads(lines[-1])
        assert data["event"] == "hello structured world"
        assert data["page"] == "room-classes"
        assert data["level"] == "info"
