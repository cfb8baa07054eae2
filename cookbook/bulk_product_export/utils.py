"""
Mock Admin API for running the cookbook without a real shop.

The mock answers REST calls with a call-limit header that fills up as
requests arrive and drains over time, and walks bulk operations through
CREATED -> RUNNING -> COMPLETED.
"""

import json
import time
from typing import Any, Dict

import httpx

from shopify_throttled.call_limit import CALL_LIMIT_HEADER

BUCKET_SIZE = 40
LEAK_PER_SECOND = 2.0
RESULT_URL = "https://storage.mock-shopify.test/bulk/1.jsonl"


class MockShop:
    """Stateful fake of one shop's Admin API."""

    def __init__(self, products: int = 25, polls_until_done: int = 3):
        self.products = products
        self.polls_until_done = polls_until_done
        self._used = 0.0
        self._last = time.monotonic()
        self._polls = 0
        self.requests = 0

    # =========================================================================
    # REST
    # =========================================================================

    def _drain(self) -> None:
        now = time.monotonic()
        self._used = max(0.0, self._used - (now - self._last) * LEAK_PER_SECOND)
        self._last = now

    def _rest(self, request: httpx.Request) -> httpx.Response:
        self._drain()
        if self._used + 1 > BUCKET_SIZE:
            return httpx.Response(
                429,
                json={"errors": "Exceeded 2 calls per second for api client."},
                headers={CALL_LIMIT_HEADER: f"{BUCKET_SIZE}/{BUCKET_SIZE}", "Retry-After": "1.0"},
            )
        self._used += 1
        return httpx.Response(
            200,
            json={"shop": {"name": "Mock Shop", "plan_name": "basic"}},
            headers={CALL_LIMIT_HEADER: f"{int(self._used)}/{BUCKET_SIZE}"},
        )

    # =========================================================================
    # GraphQL
    # =========================================================================

    def _graphql(self, request: httpx.Request) -> httpx.Response:
        query = json.loads(request.content)["query"]
        if "bulkOperationRunQuery" in query:
            data: Dict[str, Any] = {
                "bulkOperationRunQuery": {
                    "bulkOperation": {"id": "gid://shopify/BulkOperation/1", "status": "CREATED"},
                    "userErrors": [],
                }
            }
        elif "bulkOperationCancel" in query:
            data = {"bulkOperationCancel": {"bulkOperation": {"status": "CANCELING"}, "userErrors": []}}
        else:
            self._polls += 1
            done = self._polls >= self.polls_until_done
            data = {
                "currentBulkOperation": {
                    "id": "gid://shopify/BulkOperation/1",
                    "status": "COMPLETED" if done else "RUNNING",
                    "objectCount": str(self.products if done else self._polls * 5),
                    "url": RESULT_URL if done else None,
                }
            }
        return httpx.Response(200, json={
            "data": data,
            "extensions": {
                "cost": {
                    "requestedQueryCost": 10,
                    "actualQueryCost": 10,
                    "throttleStatus": {
                        "maximumAvailable": 1000.0,
                        "currentlyAvailable": 990,
                        "restoreRate": 50.0,
                    },
                }
            },
        })

    def _results(self) -> httpx.Response:
        lines = [
            json.dumps({"id": f"gid://shopify/Product/{n}", "title": f"Product {n}"})
            for n in range(1, self.products + 1)
        ]
        return httpx.Response(200, text="\n".join(lines) + "\n")

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        if request.url.host == "storage.mock-shopify.test":
            return self._results()
        if request.url.path.endswith("/graphql.json"):
            return self._graphql(request)
        return self._rest(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))
