"""Logging setup: stdlib loggers rendered through structlog.

Call sites keep using ``logging.getLogger(__name__)``.  Each record is
enriched with the list page being worked on and the ids of the current
OpenTelemetry span, then rendered either for a terminal or as JSON lines.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar, Token
from pathlib import Path

import structlog
from opentelemetry import trace

LOG_FILE_NAME = "backoffice.log"

# Per-request chatter from the HTTP stack.
QUIET_LOGGERS = ("httpx", "httpcore")

_NO_TRACE_ID = "0" * 32
_NO_SPAN_ID = "0" * 16

_page: ContextVar[str | None] = ContextVar("backoffice_page", default=None)


def current_page() -> str | None:
    return _page.get()


def push_page(name: str | None) -> Token[str | None]:
    """Attach *name* to log records of the current context until :func:`pop_page`."""
    return _page.set(name)


def pop_page(token: Token[str | None]) -> None:
    _page.reset(token)


def inject_page(_logger: object, _method: str, event_dict: dict) -> dict:
    event_dict["page"] = _page.get()
    return event_dict


def inject_trace_ids(_logger: object, _method: str, event_dict: dict) -> dict:
    """Add ``trace_id``/``span_id``; all zeros outside a recording span."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = trace.format_trace_id(ctx.trace_id)
        event_dict["span_id"] = trace.format_span_id(ctx.span_id)
    else:
        event_dict["trace_id"] = _NO_TRACE_ID
        event_dict["span_id"] = _NO_SPAN_ID
    return event_dict


def _enrichers(timestamp: str) -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=timestamp),
        inject_page,
        inject_trace_ids,
        structlog.stdlib.ExtraAdder(),
    ]


def _formatter(
    renderer: structlog.types.Processor, timestamp: str
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_enrichers(timestamp),
    )


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_root: Path | None = None,
) -> None:
    """Install the back-office handlers on the root logger.

    ``fmt`` selects the stderr rendering, ``"text"`` or ``"json"``.  When
    *log_root* is given, every record is also appended as JSON to
    ``<log_root>/backoffice.log``; the directory is created if needed.
    Calling this again replaces the handlers installed before.
    """
    if fmt == "json":
        console = _formatter(structlog.processors.JSONRenderer(), "iso")
    else:
        console = _formatter(structlog.dev.ConsoleRenderer(), "%H:%M:%S")

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(console)
    handlers: list[logging.Handler] = [stderr_handler]

    if log_root is not None:
        directory = Path(log_root)
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(directory / LOG_FILE_NAME)
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer(), "iso"))
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
