"""
Shopify Admin API client facade
"""

from typing import Any, Dict, List, Mapping, Optional

import httpx

from .bulk import BulkJobController
from .executor import EventListener, PaginationMode, RequestExecutor
from .flows import BulkQueryFlow
from .log import get_logger
from .models import App, BulkJob, BulkJobStatus, Credential
from .presets import PollPolicy, ThrottleConfig
from .results import ResultStreamReader
from .settings import ClientSettings
from .stores import AppStore, CredentialStore
from .throttle import GateRegistry

logger = get_logger(__name__)


class ShopifyClient:
    """
    Throttled REST, GraphQL and bulk access for many shops.

    Args:
        settings: API version, scheme and timeouts (default: from environment)
        throttle: REST throttle tuning shared by every credential
        http_client: Transport to use. When omitted the client creates one
            and closes it on close().
        credentials: Store used by credential()
        apps: Store used by app()

    Example:
        ```python
        async with ShopifyClient(credentials=store) as client:
            credential = client.credential("my-app", "shop.myshopify.com")
            orders = await client.get(credential, "orders.json", pagination="collect")
            products = await client.bulk_query(
                credential, "{ products { edges { node { id } } } }"
            )
        ```
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        throttle: Optional[ThrottleConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        credentials: Optional[CredentialStore] = None,
        apps: Optional[AppStore] = None,
    ):
        self.settings = settings or ClientSettings()
        self.credentials = credentials
        self.apps = apps
        self._owns_http = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.http_timeout, connect=10.0),
            headers={"User-Agent": self.settings.user_agent},
        )
        self.registry = GateRegistry(throttle)
        self.executor = RequestExecutor(self.http_client, self.registry, self.settings)
        self.bulk = BulkJobController(self.executor)
        self.reader = ResultStreamReader(self.http_client)

    async def __aenter__(self):
        """Async context manager entry"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    async def close(self):
        """Close the HTTP client if this instance created it"""
        if self._owns_http:
            await self.http_client.aclose()

    def credential(self, app_name: str, shop_domain: str) -> Credential:
        """Look up a credential in the configured store."""
        if self.credentials is None:
            raise ValueError("No credential store configured")
        return self.credentials.lookup(app_name, shop_domain)

    def app(self, name: str) -> App:
        """Look up a registered app in the configured store."""
        if self.apps is None:
            raise ValueError("No app store configured")
        return self.apps.lookup(name)

    def add_listener(self, listener: EventListener) -> None:
        self.executor.add_listener(listener)

    # REST

    async def get(
        self,
        credential: Credential,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        pagination: PaginationMode = PaginationMode.NONE,
    ) -> Any:
        return await self.executor.get(credential, path, params, pagination)

    async def post(self, credential: Credential, path: str, body: Any = None) -> Any:
        return await self.executor.post(credential, path, body)

    async def put(self, credential: Credential, path: str, body: Any) -> Any:
        return await self.executor.put(credential, path, body)

    async def delete(self, credential: Credential, path: str) -> Any:
        return await self.executor.delete(credential, path)

    # GraphQL

    async def graphql(
        self,
        credential: Credential,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        estimated_cost: float = 1,
    ) -> Dict[str, Any]:
        return await self.executor.graphql(credential, query, variables, estimated_cost)

    # Bulk operations

    async def bulk_query(
        self,
        credential: Credential,
        query: str,
        policy: Optional[PollPolicy] = None,
    ) -> List[Any]:
        """Run a bulk query end to end and return its decoded records."""
        shared = BulkQueryFlow.shared_store(credential, query, policy)
        records = await BulkQueryFlow(self.bulk, self.reader).run_async(shared)
        logger.info(
            "Bulk query finished",
            shop=credential.shop_domain,
            job_id=shared.get("job_id"),
            records=len(records),
        )
        return records

    async def bulk_status(self, credential: Credential) -> Optional[BulkJob]:
        return await self.bulk.status(credential)

    async def bulk_cancel(self, credential: Credential, job_id: str) -> BulkJobStatus:
        return await self.bulk.cancel(credential, job_id)
