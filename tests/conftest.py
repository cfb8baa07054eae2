"""
Pytest configuration and fixtures for shopify_throttled tests.
"""

from collections import deque
from typing import Any, Dict, List, Optional

import httpx
import pytest

from shopify_throttled import ClientSettings, Credential, RequestExecutor
from shopify_throttled.call_limit import CALL_LIMIT_HEADER


class FakeShopify:
    """
    Scripted stand-in for the Admin API behind httpx.MockTransport.

    Responses are served in the order they were queued. Queue an exception
    to simulate a transport failure, or a callable to build a response
    from the request.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._queue: deque = deque()

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._queue:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        item = self._queue.popleft()
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item

    @property
    def pending(self) -> int:
        return len(self._queue)

    def push(self, *items) -> "FakeShopify":
        self._queue.extend(items)
        return self

    def rest(
        self,
        body: Any = None,
        used: Optional[int] = 1,
        maximum: int = 40,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> "FakeShopify":
        response_headers = {CALL_LIMIT_HEADER: f"{used}/{maximum}"} if used is not None else {}
        response_headers.update(headers or {})
        return self.push(httpx.Response(status, json=body if body is not None else {}, headers=response_headers))

    def graphql(
        self,
        data: Any = None,
        available: float = 990,
        maximum: float = 1000,
        restore_rate: float = 50,
        requested: float = 1,
        errors: Optional[List[Dict[str, Any]]] = None,
        status: int = 200,
    ) -> "FakeShopify":
        body: Dict[str, Any] = {"data": data}
        if errors:
            body["errors"] = errors
        body["extensions"] = {
            "cost": {
                "requestedQueryCost": requested,
                "actualQueryCost": requested,
                "throttleStatus": {
                    "maximumAvailable": maximum,
                    "currentlyAvailable": available,
                    "restoreRate": restore_rate,
                },
            }
        }
        return self.push(httpx.Response(status, json=body))

    def file(self, text: str, status: int = 200) -> "FakeShopify":
        return self.push(httpx.Response(status, text=text))

    def transport_error(self, exc: Optional[Exception] = None) -> "FakeShopify":
        return self.push(exc or httpx.ConnectError("connection refused"))

    def bodies(self) -> List[str]:
        return [request.content.decode() for request in self.requests]


@pytest.fixture
def credential():
    """Credential for a test shop."""
    return Credential("test-app", "test-shop.myshopify.com", "shpat_test_token")


@pytest.fixture
def other_credential():
    """Credential for a second, independent shop."""
    return Credential("test-app", "other-shop.myshopify.com", "shpat_other_token")


@pytest.fixture
def fake_shopify():
    """Fresh scripted API for each test."""
    return FakeShopify()


@pytest.fixture
def http_client(fake_shopify):
    """AsyncClient wired to the scripted API."""
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_shopify.handle))


@pytest.fixture
def settings():
    return ClientSettings(api_version="2024-01", scheme="https")


@pytest.fixture
def executor(http_client, settings):
    """Executor with a fresh gate registry."""
    return RequestExecutor(http_client, settings=settings)
