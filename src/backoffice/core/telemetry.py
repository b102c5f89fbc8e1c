"""OpenTelemetry span wrappers for list-page operations."""

from __future__ import annotations

import logging
from contextvars import Token

from opentelemetry import trace

from backoffice.core.logging import pop_page, push_page

logger = logging.getLogger(__name__)

_TRACER_NAME = "backoffice"


def get_tracer(name: str = _TRACER_NAME) -> trace.Tracer:
    """Get a tracer from the current provider."""
    return trace.get_tracer(name)


def tag_page_span(span: trace.Span, page_name: str) -> None:
    """Set list-page attribution attributes on a span."""
    span.set_attribute("backoffice.page", page_name)


class list_span:
    """Create an OpenTelemetry span for one list-controller operation.

    Usage::

        with list_span("load", page="beds") as span:
            ...

    The span is named ``backoffice.list.<operation>`` and carries the
    ``backoffice.page`` attribute.  The page name is also set as the logging
    page context for the duration of the block.  Exceptions are recorded on
    the span and its status set to ERROR before the exception is re-raised.
    Expected failures that do not raise can be flagged with :meth:`fail`.
    """

    def __init__(self, operation: str, *, page: str) -> None:
        self._operation = operation
        self._page = page
        self._span_name = f"backoffice.list.{operation}"
        self._span: trace.Span | None = None
        self._token: object | None = None
        self._log_token: Token[str | None] | None = None

    def __enter__(self) -> list_span:
        tracer = get_tracer()
        self._span = tracer.start_span(self._span_name)
        tag_page_span(self._span, self._page)
        self._token = trace.context_api.attach(trace.set_span_in_context(self._span))
        self._log_token = push_page(self._page)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._span is None:
            return
        if exc_val is not None:
            self._span.set_status(trace.StatusCode.ERROR, str(exc_val))
            self._span.record_exception(exc_val)
        self._span.end()
        if self._token is not None:
            trace.context_api.detach(self._token)
        if self._log_token is not None:
            pop_page(self._log_token)

    @property
    def span(self) -> trace.Span | None:
        return self._span

    def set_attribute(self, key: str, value: str | int | bool) -> None:
        if self._span is not None:
            self._span.set_attribute(key, value)

    def fail(self, kind: str, message: str) -> None:
        """Mark the span as failed without an exception in flight."""
        if self._span is None:
            return
        self._span.set_attribute("backoffice.error_kind", kind)
        self._span.set_status(trace.StatusCode.ERROR, message)
