"""Shared fixtures for the back-office test suite.

HTTP is never real: every client is wired to an ``httpx.MockTransport`` whose
handler is a :class:`FakeApi` holding queued responses per method.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable

import httpx
import pytest

from backoffice.core.logging import QUIET_LOGGERS, pop_page, push_page
from backoffice.lists.transport import ResourceClient, ResourceEndpoint

BASE_URL = "http://backoffice.test"

Reply = httpx.Response | Exception | Callable[[httpx.Request], httpx.Response]


class FakeApi:
    """MockTransport handler that replays queued responses per HTTP method.

    A queued item may be a response, an exception to raise (e.g.
    ``httpx.ConnectError``) or a callable taking the request.  The last item
    of a method's queue is reused once the rest are consumed.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._queues: dict[str, list[Reply]] = defaultdict(list)

    def queue(self, method: str, *replies: Reply) -> FakeApi:
        self._queues[method.upper()].extend(replies)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._queues.get(request.method)
        if not queue:
            return httpx.Response(500, json={"error": f"unexpected {request.method}"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply) and not isinstance(reply, httpx.Response):
            return reply(request)
        return reply

    def methods(self) -> list[str]:
        return [r.method for r in self.requests]

    def client(self, endpoint: ResourceEndpoint) -> ResourceClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self))
        return ResourceClient(BASE_URL, endpoint, http_client=http_client)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture(autouse=True)
def _reset_logging():
    """Reset root logging and page context between tests."""
    token = push_page(None)
    yield
    pop_page(token)
    root = logging.getLogger()
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).handlers.clear()
