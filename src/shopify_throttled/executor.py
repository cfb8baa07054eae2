"""
Request Executor
================

The single path every Admin API call takes:

    1. build the URL and authorization headers from the credential
    2. acquire clearance from the credential's ThrottleGate
    3. send the request through the injected httpx.AsyncClient
    4. release the gate with the telemetry parsed from the response
    5. emit a RequestEvent and classify the outcome

Outcomes are classified three ways, and callers rely on the distinction:
    - 2xx: the decoded JSON body is returned
    - any other status: HTTPError (RateLimited for 429) carrying the response
    - no response at all: TransportError
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from .call_limit import CallLimitTracker, parse_query_cost, parse_throttle_status
from .exceptions import (
    GraphQLError,
    HTTPError,
    RateLimited,
    ResponseDecodeError,
    TransportError,
)
from .log import get_logger
from .models import Capacity, Credential, Surface
from .settings import ClientSettings
from .throttle import GateRegistry

logger = get_logger(__name__)

ACCESS_TOKEN_HEADER = "X-Shopify-Access-Token"

_UNDECODABLE = object()


class PaginationMode(str, Enum):
    """
    How list-style GET requests follow ``Link: rel="next"`` headers.

    NONE: return the first page only
    COLLECT: fetch every page and concatenate the items
    LAZY: return a PageStream that fetches pages on demand
    """
    NONE = "none"
    COLLECT = "collect"
    LAZY = "lazy"


@dataclass(frozen=True)
class RequestEvent:
    """Timing and outcome of one request, handed to event listeners."""
    app: str
    shop: str
    method: str
    url: str
    elapsed_ms: float
    success: bool
    status_code: Optional[int] = None
    remaining: Optional[float] = None
    reason: Optional[str] = None


EventListener = Callable[[RequestEvent], Any]


def add_params_to_url(url: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Merge ``params`` into the query string of ``url``.

    Existing keys are replaced in place and new keys are appended:

        >>> add_params_to_url("http://example.com/wat?q=1&s=4", {"q": 3, "t": 2})
        'http://example.com/wat?q=3&s=4&t=2'
    """
    if not params:
        return url
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update({str(key): value for key, value in params.items()})
    return urlunsplit(parts._replace(query=urlencode(query, doseq=True)))


def page_items(page: Any) -> List[Any]:
    """
    Items carried by one page of a list endpoint.

    REST list responses wrap the records in a single key, e.g.
    ``{"products": [...]}``.
    """
    if isinstance(page, list):
        return page
    if isinstance(page, dict):
        lists = [value for value in page.values() if isinstance(value, list)]
        if len(page) == 1 and len(lists) == 1:
            return lists[0]
    return [page]


def _next_link(response: httpx.Response) -> Optional[str]:
    return response.links.get("next", {}).get("url")


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return _UNDECODABLE


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class RequestExecutor:
    """
    Throttled, logged access to the Admin API for any number of credentials.

    Args:
        http_client: Transport used for every request
        registry: Per-credential throttle gates (default: a fresh GateRegistry)
        settings: API version, scheme, timeout (default: ClientSettings())

    Example:
        ```python
        async with httpx.AsyncClient() as http:
            executor = RequestExecutor(http)
            products = await executor.get(
                credential, "products.json", {"limit": 250},
                pagination=PaginationMode.COLLECT,
            )
        ```
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        registry: Optional[GateRegistry] = None,
        settings: Optional[ClientSettings] = None,
    ):
        self._http = http_client
        self._registry = registry or GateRegistry()
        self._settings = settings or ClientSettings()
        self._listeners: List[EventListener] = []

    @property
    def registry(self) -> GateRegistry:
        return self._registry

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    def add_listener(self, listener: EventListener) -> None:
        """Register a callable that receives every RequestEvent."""
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        self._listeners.remove(listener)

    def url(self, credential: Credential, path: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """Full request URL. Absolute URLs (pagination links) pass through."""
        if path.startswith(("http://", "https://")):
            base = path
        else:
            base = (
                f"{self._settings.scheme}://{credential.shop_domain}"
                f"/admin/api/{self._settings.api_version}/{path.lstrip('/')}"
            )
        return add_params_to_url(base, params)

    def headers(self, credential: Credential) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": self._settings.user_agent,
            ACCESS_TOKEN_HEADER: credential.access_token,
        }

    async def send(
        self,
        credential: Credential,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        *,
        surface: Surface = Surface.REST,
        estimated_cost: float = 1,
    ) -> Tuple[httpx.Response, Any]:
        """
        Perform one throttled request.

        Returns:
            The raw response and its decoded body

        Raises:
            TransportError: No response was received
            RateLimited: The server answered 429
            HTTPError: The server answered with another non-2xx status
            ResponseDecodeError: A 2xx body was not valid JSON
        """
        method = method.upper()
        url = self.url(credential, path, params)
        gate = self._registry.gate_for(credential)

        permit = await gate.acquire(surface, estimated_cost)
        observed: Optional[Capacity] = None
        started = time.perf_counter()
        try:
            try:
                response = await self._http.request(
                    method,
                    url,
                    headers=self.headers(credential),
                    timeout=self._settings.http_timeout,
                    **self._body_kwargs(body),
                )
            except httpx.TransportError as exc:
                self._emit(credential, method, url, started, reason=type(exc).__name__)
                raise TransportError(
                    f"{method} {url} failed: {exc}", reason=type(exc).__name__
                ) from exc

            decoded = _decode(response)
            observed = CallLimitTracker.parse(
                response, decoded if isinstance(decoded, dict) else None
            )
            self._emit(
                credential,
                method,
                url,
                started,
                response=response,
                remaining=observed.available if observed.known else None,
            )
        finally:
            gate.release(permit, observed)

        return response, self._classify(method, url, response, decoded, surface)

    async def perform(
        self,
        credential: Credential,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        *,
        surface: Surface = Surface.REST,
        estimated_cost: float = 1,
    ) -> Any:
        """Like send(), returning only the decoded body."""
        _, decoded = await self.send(
            credential, method, path, body, params,
            surface=surface, estimated_cost=estimated_cost,
        )
        return decoded

    # -------------------------------------------------------------------------
    # REST verbs
    # -------------------------------------------------------------------------

    async def get(
        self,
        credential: Credential,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        pagination: PaginationMode = PaginationMode.NONE,
    ) -> Any:
        """
        GET a REST resource.

        Returns:
            NONE: the decoded first page
            COLLECT: a list with the items of every page
            LAZY: a PageStream
        """
        pagination = PaginationMode(pagination)
        if pagination is PaginationMode.NONE:
            return await self.perform(credential, "GET", path, params=params)
        stream = PageStream(self, credential, path, params)
        if pagination is PaginationMode.LAZY:
            return stream
        return await stream.collect()

    async def post(self, credential: Credential, path: str, body: Any = None) -> Any:
        return await self.perform(credential, "POST", path, body if body is not None else {})

    async def put(self, credential: Credential, path: str, body: Any) -> Any:
        return await self.perform(credential, "PUT", path, body)

    async def delete(self, credential: Credential, path: str) -> Any:
        return await self.perform(credential, "DELETE", path)

    # -------------------------------------------------------------------------
    # GraphQL
    # -------------------------------------------------------------------------

    async def graphql(
        self,
        credential: Credential,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        estimated_cost: float = 1,
    ) -> Dict[str, Any]:
        """
        Run a GraphQL query or mutation on the cost-based surface.

        Args:
            credential: Shop/app identity
            query: GraphQL document
            variables: Optional variables
            estimated_cost: Points the gate should reserve for this query

        Returns:
            The ``data`` object of the response

        Raises:
            RateLimited: The server reported THROTTLED
            GraphQLError: The server reported other top-level errors
        """
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        body = await self.perform(
            credential, "POST", "graphql.json", payload,
            surface=Surface.GRAPHQL, estimated_cost=estimated_cost,
        )

        cost = parse_query_cost(body)
        if cost is not None:
            logger.debug(
                "GraphQL query cost",
                shop=credential.shop_domain,
                estimated=estimated_cost,
                requested=cost.requested,
                actual=cost.actual,
            )

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            self._raise_graphql_errors(body, errors, cost)
        return (body.get("data") if isinstance(body, dict) else None) or {}

    @staticmethod
    def _raise_graphql_errors(body: Dict[str, Any], errors: Any, cost) -> None:
        if isinstance(errors, str):
            errors = [{"message": errors}]
        messages = [
            error.get("message", "Unknown error") if isinstance(error, dict) else str(error)
            for error in errors
        ]
        throttled = any(
            isinstance(error, dict)
            and (error.get("extensions") or {}).get("code") == "THROTTLED"
            for error in errors
        )
        if not throttled:
            raise GraphQLError(messages)

        retry_after = None
        capacity = parse_throttle_status(body)
        if capacity.known and capacity.restore_rate and cost and cost.requested:
            retry_after = max(0.0, cost.requested - capacity.available) / capacity.restore_rate
        logger.warning("GraphQL request throttled", retry_after=retry_after)
        raise RateLimited(messages[0], status_code=200, body=body, retry_after=retry_after, source="graphql")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _body_kwargs(body: Any) -> Dict[str, Any]:
        if body is None:
            return {}
        if isinstance(body, (str, bytes)):
            return {"content": body}
        return {"json": body}

    def _classify(
        self,
        method: str,
        url: str,
        response: httpx.Response,
        decoded: Any,
        surface: Surface,
    ) -> Any:
        status = response.status_code
        if 200 <= status < 300:
            if decoded is _UNDECODABLE:
                raise ResponseDecodeError(f"{method} {url} returned a non-JSON body", response)
            return decoded

        body = response.text if decoded is _UNDECODABLE else decoded
        if status == 429:
            retry_after = _retry_after(response)
            logger.warning(
                "Rate limited despite throttling",
                method=method,
                url=url,
                retry_after=retry_after,
            )
            raise RateLimited(
                f"{method} {url} was rate limited",
                status_code=status,
                body=body,
                response=response,
                retry_after=retry_after,
                source=surface.value,
            )
        raise HTTPError(f"{method} {url} returned {status}", status, body, response)

    def _emit(
        self,
        credential: Credential,
        method: str,
        url: str,
        started: float,
        response: Optional[httpx.Response] = None,
        remaining: Optional[float] = None,
        reason: Optional[str] = None,
    ) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000
        status = response.status_code if response is not None else None
        event = RequestEvent(
            app=credential.app_name,
            shop=credential.shop_domain,
            method=method,
            url=url,
            elapsed_ms=elapsed_ms,
            success=response is not None,
            status_code=status,
            remaining=remaining,
            reason=reason,
        )
        logger.debug(
            "Admin API request",
            app=event.app,
            shop=event.shop,
            method=method,
            url=url,
            status_code=status,
            remaining=remaining,
            reason=reason,
            elapsed_ms=round(elapsed_ms, 1),
        )
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.warning("Request event listener failed", listener=repr(listener), exc_info=True)


class PageStream:
    """
    Restartable, finite sequence of pages from a list endpoint.

    Each iteration starts again from the first page. Every page fetch goes
    through the executor and therefore through the throttle gate.

    Example:
        ```python
        stream = await executor.get(credential, "orders.json", pagination="lazy")
        async for page in stream:
            handle(page["orders"])
        ```
    """

    def __init__(
        self,
        executor: RequestExecutor,
        credential: Credential,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
    ):
        self._executor = executor
        self._credential = credential
        self._path = path
        self._params = dict(params) if params else None

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._pages()

    async def _pages(self) -> AsyncIterator[Any]:
        target: Optional[str] = self._path
        params = self._params
        while target:
            response, body = await self._executor.send(self._credential, "GET", target, params=params)
            yield body
            # The next link already carries the cursor and original params
            target, params = _next_link(response), None

    async def collect(self) -> List[Any]:
        """Fetch every page and concatenate the items. Stops at the first error."""
        items: List[Any] = []
        async for page in self:
            items.extend(page_items(page))
        return items

    def __repr__(self) -> str:
        return f"PageStream(path={self._path!r}, key={self._credential.key!r})"
