"""
Shopify Throttled - Telemetry-Paced Admin API Runtime
=====================================================

A client-side runtime for the Shopify Admin REST and GraphQL APIs that paces
every request from the rate-limit telemetry the server reports, and drives
long-running bulk export jobs to completion.

Features:
    - Per-credential throttle gates fed by live telemetry (REST call-limit
      header, GraphQL cost/restore-rate block)
    - Strict FIFO serialization per credential, no contention across credentials
    - Three-way outcome classification: success, HTTPError, TransportError
    - REST pagination: single page, collected, or lazy page streams
    - Bulk operations: submit, bounded polling, auto-cancel, JSONL results
    - Named presets for plan-specific throttling and polling budgets

Quick Start:
    ```python
    from shopify_throttled import Credential, PollPolicy, ShopifyClient

    credential = Credential("my-app", "shop.myshopify.com", "shpat_...")

    async with ShopifyClient() as client:
        shop = await client.get(credential, "shop.json")
        products = await client.bulk_query(
            credential,
            "{ products { edges { node { id title } } } }",
            PollPolicy(interval=5, max_attempts=120, auto_cancel=True),
        )
    ```

Classes:
    ShopifyClient: Facade over the executor, bulk controller and reader
    RequestExecutor: Throttled, logged request path
    ThrottleGate / GateRegistry: Per-credential pacing
    CallLimitTracker: Telemetry parser
    BulkJobController / BulkQueryFlow: Bulk operation orchestration
    ResultStreamReader: JSONL result decoding
    CredentialStore / AppStore: Write-through credential and app caches
    Presets: Named throttle and polling configurations
"""

__version__ = "0.1.0"

from .bulk import BulkJobController
from .call_limit import CallLimitTracker
from .client import ShopifyClient
from .exceptions import (
    BulkCancelError,
    BulkJobFailed,
    BulkJobTimeout,
    BulkSubmitError,
    AppNotFound,
    CredentialNotFound,
    GraphQLError,
    HTTPError,
    ParseError,
    RateLimited,
    ResponseDecodeError,
    ShopifyAPIError,
    TransportError,
)
from .executor import PageStream, PaginationMode, RequestEvent, RequestExecutor
from .flows import BulkQueryFlow
from .log import get_logger, setup_logging
from .models import App, BulkJob, BulkJobStatus, Capacity, Credential, Surface
from .presets import PollPolicy, Presets, ThrottleConfig
from .results import ResultStreamReader
from .settings import ClientSettings
from .stores import AppStore, CredentialStore
from .throttle import GateRegistry, Permit, ThrottleGate

__all__ = [
    # Version info
    "__version__",

    # Core classes
    "ShopifyClient",
    "RequestExecutor",
    "PageStream",
    "PaginationMode",
    "RequestEvent",
    "ThrottleGate",
    "GateRegistry",
    "Permit",
    "CallLimitTracker",
    "BulkJobController",
    "BulkQueryFlow",
    "ResultStreamReader",
    "CredentialStore",
    "AppStore",

    # Data model
    "Credential",
    "App",
    "Capacity",
    "Surface",
    "BulkJob",
    "BulkJobStatus",

    # Configuration
    "ClientSettings",
    "PollPolicy",
    "Presets",
    "ThrottleConfig",
    "setup_logging",
    "get_logger",

    # Errors
    "ShopifyAPIError",
    "TransportError",
    "HTTPError",
    "RateLimited",
    "ResponseDecodeError",
    "GraphQLError",
    "BulkSubmitError",
    "BulkCancelError",
    "BulkJobTimeout",
    "BulkJobFailed",
    "ParseError",
    "CredentialNotFound",
    "AppNotFound",
]


def main() -> None:
    """CLI entry point - displays package info."""
    settings = ClientSettings()
    setup_logging(settings.log_level, settings.log_format)
    get_logger(__name__).debug("Loaded settings", api_version=settings.api_version, scheme=settings.scheme)

    print(f"Shopify Throttled v{__version__}")
    print("=" * 40)
    print(__doc__)
    print("\nAvailable Presets:")
    for name, desc in Presets.list_presets().items():
        print(f"  - {name}: {desc}")
