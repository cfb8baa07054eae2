"""
Call Limit Tracking
===================

Turns the rate-limit telemetry attached to every Admin API response into a
normalized Capacity.

REST responses carry a fixed counter header::

    X-Shopify-Shop-Api-Call-Limit: 32/40

GraphQL responses carry a cost block in the envelope::

    {"extensions": {"cost": {
        "requestedQueryCost": 10,
        "actualQueryCost": 10,
        "throttleStatus": {
            "maximumAvailable": 1000.0,
            "currentlyAvailable": 990,
            "restoreRate": 50.0}}}}

Parsing is pure and never raises: anything missing or malformed yields
Capacity.unknown().
"""

from typing import Any, Mapping, Optional

from .models import Capacity, QueryCost

CALL_LIMIT_HEADER = "X-Shopify-Shop-Api-Call-Limit"


def parse_call_limit_header(value: Optional[str]) -> Capacity:
    """Parse a ``"<used>/<max>"`` header value."""
    if not value:
        return Capacity.unknown()
    try:
        used, maximum = (float(part) for part in value.strip().split("/"))
    except ValueError:
        return Capacity.unknown()
    if maximum <= 0 or used < 0:
        return Capacity.unknown()
    return Capacity(available=maximum - used, maximum=maximum)


def _cost_block(body: Any) -> Optional[Mapping[str, Any]]:
    if not isinstance(body, Mapping):
        return None
    extensions = body.get("extensions")
    if not isinstance(extensions, Mapping):
        return None
    cost = extensions.get("cost")
    return cost if isinstance(cost, Mapping) else None


def parse_throttle_status(body: Any) -> Capacity:
    """Parse ``extensions.cost.throttleStatus`` from a GraphQL envelope."""
    cost = _cost_block(body)
    status = cost.get("throttleStatus") if cost else None
    if not isinstance(status, Mapping):
        return Capacity.unknown()
    try:
        available = float(status["currentlyAvailable"])
        maximum = float(status["maximumAvailable"])
        restore_rate = float(status["restoreRate"])
    except (KeyError, TypeError, ValueError):
        return Capacity.unknown()
    if maximum <= 0:
        return Capacity.unknown()
    return Capacity(available=available, maximum=maximum, restore_rate=restore_rate)


def parse_query_cost(body: Any) -> Optional[QueryCost]:
    """Requested and actual cost of a GraphQL query, if reported."""
    cost = _cost_block(body)
    if not cost:
        return None

    def _num(key):
        try:
            return float(cost[key])
        except (KeyError, TypeError, ValueError):
            return None

    return QueryCost(requested=_num("requestedQueryCost"), actual=_num("actualQueryCost"))


class CallLimitTracker:
    """
    Stateless parser for response telemetry.

    Example:
        ```python
        capacity = CallLimitTracker.parse(response, body)
        if capacity.known:
            print(f"{capacity.available}/{capacity.maximum} left")
        ```
    """

    @staticmethod
    def parse(response: Any, body: Any = None) -> Capacity:
        """
        Extract a Capacity from a response.

        The REST header wins when present. Otherwise the decoded GraphQL
        envelope in ``body`` is consulted.

        Args:
            response: Object with a ``headers`` mapping (e.g. httpx.Response)
            body: Decoded JSON body, needed for GraphQL telemetry

        Returns:
            The parsed Capacity, or Capacity.unknown()
        """
        headers = getattr(response, "headers", None)
        header = headers.get(CALL_LIMIT_HEADER) if headers is not None else None
        if header:
            return parse_call_limit_header(header)
        return parse_throttle_status(body)
