"""
Exception Classes
=================

Typed errors raised by the request executor, the bulk job controller and the
result stream reader. Every error derives from ShopifyAPIError so callers can
catch the whole family at once, or branch on the specific failure:

    - TransportError: the server could not be reached (retryable by callers)
    - HTTPError / RateLimited: the server answered but rejected the request
    - GraphQLError: the server answered 200 with top-level query errors
    - BulkSubmitError / BulkCancelError: user errors reported in a mutation
    - BulkJobTimeout / BulkJobFailed: bulk polling ended without a result
    - ParseError: a bulk result payload is not valid JSONL
    - CredentialNotFound / AppNotFound: a store lookup missed
"""

from typing import Any, List, Optional


class ShopifyAPIError(Exception):
    """Base class for every error raised by shopify_throttled."""


class TransportError(ShopifyAPIError):
    """
    Raised when the request never produced an HTTP response.

    Wraps connection failures and timeouts from the transport. These are
    the only errors a caller should consider blindly retrying.

    Attributes:
        reason: Short description of the underlying transport failure
    """

    def __init__(self, message: str = "Transport failure", reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason

    def __repr__(self) -> str:
        return f"TransportError({self.args[0]!r}, reason={self.reason!r})"


class HTTPError(ShopifyAPIError):
    """
    Raised for a completed response with a status outside [200, 300).

    Attributes:
        status_code: HTTP status returned by the server
        body: Decoded JSON body when available, raw text otherwise
        response: The raw httpx.Response
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        body: Any = None,
        response: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.response = response

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.args[0]!r}, status_code={self.status_code})"


class RateLimited(HTTPError):
    """
    Raised when the server reports the budget as exhausted despite throttling.

    The throttle keeps overruns rare, not impossible: telemetry always lags a
    round trip, and other processes may share the credential. Not retried
    automatically.

    Attributes:
        retry_after: Optional hint for how long to wait before retrying (seconds)
        source: Identifier of the rate limit source ("rest" or "graphql")
    """

    def __init__(
        self,
        message: str = "Rate limit hit",
        status_code: int = 429,
        body: Any = None,
        response: Any = None,
        retry_after: Optional[float] = None,
        source: Optional[str] = None,
    ):
        super().__init__(message, status_code, body, response)
        self.retry_after = retry_after
        self.source = source

    def __repr__(self) -> str:
        parts = [f"RateLimited({self.args[0]!r}"]
        if self.retry_after is not None:
            parts.append(f", retry_after={self.retry_after}")
        if self.source is not None:
            parts.append(f", source={self.source!r}")
        parts.append(")")
        return "".join(parts)


class ResponseDecodeError(ShopifyAPIError):
    """Raised when a successful response body is not valid JSON."""

    def __init__(self, message: str, response: Any = None):
        super().__init__(message)
        self.response = response


class _MessagesError(ShopifyAPIError):
    """Error carrying the list of messages reported by the server."""

    def __init__(self, messages: List[str]):
        self.messages = list(messages)
        first = self.messages[0] if self.messages else "unknown error"
        super().__init__(first)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(messages={self.messages!r})"


class GraphQLError(_MessagesError):
    """Raised when a GraphQL response carries top-level ``errors``."""


class BulkSubmitError(_MessagesError):
    """Raised when bulkOperationRunQuery reports userErrors."""


class BulkCancelError(_MessagesError):
    """Raised when bulkOperationCancel reports userErrors."""


class BulkJobTimeout(ShopifyAPIError):
    """
    Raised when the poll budget is exhausted before the job finished.

    Attributes:
        job_id: Identifier of the job that was still outstanding
    """

    def __init__(self, job_id: Optional[str]):
        super().__init__(f"Bulk operation {job_id} did not finish in time")
        self.job_id = job_id


class BulkJobFailed(ShopifyAPIError):
    """
    Raised when the server reports the job as failed or cancelled.

    Attributes:
        error_code: Error code reported by the server (may be None)
        status: Terminal status the job was observed in
    """

    def __init__(self, error_code: Optional[str], status: Any = None, job_id: Optional[str] = None):
        super().__init__(f"Bulk operation {job_id} ended as {status}: {error_code}")
        self.error_code = error_code
        self.status = status
        self.job_id = job_id


class ParseError(ShopifyAPIError):
    """
    Raised when a bulk result payload cannot be read as JSONL records.

    This signals a contract violation between client and server, not an
    operational failure of the job or the network.

    Attributes:
        line_number: 1-based line of the first malformed record
    """

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.line_number = line_number


class CredentialNotFound(ShopifyAPIError, KeyError):
    """Raised when the credential store has no entry for an app/shop pair."""

    def __init__(self, app_name: str, shop_domain: str):
        ShopifyAPIError.__init__(self, f"No credential for app {app_name!r} on {shop_domain!r}")
        self.app_name = app_name
        self.shop_domain = shop_domain

    def __str__(self) -> str:
        return self.args[0]


class AppNotFound(ShopifyAPIError, KeyError):
    """Raised when the app store has no entry for a name."""

    def __init__(self, name: str):
        ShopifyAPIError.__init__(self, f"App {name!r} not found")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]
