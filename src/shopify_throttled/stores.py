"""
Credential and App Stores
=========================

Write-through, read-mostly caches: credentials keyed by shop and app, and
registered apps keyed by name.

Loading and saving are delegated to strategies injected at construction:

    - Initializer: ``() -> Iterable[entry]`` (sync or async), called by
      initialize() to preload the cache
    - Persister: ``(key, entry) -> None`` (sync or async), called on
      every write made with ``persist=True``

Lookups never write, so the request path treats the stores as read-only.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Generic, Iterable, List, Optional, TypeVar, Union

from .exceptions import AppNotFound, CredentialNotFound
from .log import get_logger
from .models import App, Credential

logger = get_logger(__name__)

T = TypeVar("T")

Initializer = Callable[[], Union[Iterable[T], Awaitable[Iterable[T]]]]
Persister = Callable[[str, T], Optional[Awaitable[Any]]]


def credential_key(app_name: str, shop_domain: str) -> str:
    return f"{shop_domain}:{app_name}"


class _WriteThroughStore(Generic[T]):
    """Dict cache behind one write lock, with optional load and persist hooks."""

    label = "store"

    def __init__(
        self,
        initializer: Optional[Initializer] = None,
        persister: Optional[Persister] = None,
    ):
        self._initializer = initializer
        self._persister = persister
        self._entries: Dict[str, T] = {}
        self._write_lock = asyncio.Lock()

    def _key(self, entry: T) -> str:
        raise NotImplementedError

    async def initialize(self) -> int:
        """
        Preload the cache from the initializer without persisting.

        Returns:
            Number of entries loaded
        """
        if self._initializer is None:
            return 0
        loaded = self._initializer()
        if inspect.isawaitable(loaded):
            loaded = await loaded
        count = 0
        for entry in loaded or ():
            await self.set(entry, persist=False)
            count += 1
        logger.info("Store initialized", store=self.label, count=count)
        return count

    async def set(self, entry: T, persist: bool = True) -> None:
        """Cache an entry and, unless ``persist`` is False, write it through."""
        key = self._key(entry)
        async with self._write_lock:
            self._entries[key] = entry
            if persist and self._persister is not None:
                result = self._persister(key, entry)
                if inspect.isawaitable(result):
                    await result

    async def _drop(self, key: str) -> bool:
        async with self._write_lock:
            return self._entries.pop(key, None) is not None

    def all(self) -> Dict[str, T]:
        return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class CredentialStore(_WriteThroughStore[Credential]):
    """
    In-memory credential cache with pluggable load and persist hooks.

    Example:
        ```python
        async def load_all():
            rows = await db.fetch("select app, shop, token from installs")
            return [Credential(r.app, r.shop, r.token) for r in rows]

        store = CredentialStore(initializer=load_all, persister=save_one)
        await store.initialize()
        credential = store.lookup("my-app", "shop.myshopify.com")
        ```
    """

    label = "credentials"

    def _key(self, entry: Credential) -> str:
        return entry.key

    def lookup(self, app_name: str, shop_domain: str) -> Credential:
        """
        Get the credential for an app on a shop.

        Raises:
            CredentialNotFound: If no credential is cached
        """
        credential = self._entries.get(credential_key(app_name, shop_domain))
        if credential is None:
            raise CredentialNotFound(app_name, shop_domain)
        return credential

    def get(self, app_name: str, shop_domain: str) -> Optional[Credential]:
        return self._entries.get(credential_key(app_name, shop_domain))

    def for_app(self, app_name: str) -> List[Credential]:
        """All credentials issued to one app."""
        return [c for c in self._entries.values() if c.app_name == app_name]

    async def drop(self, app_name: str, shop_domain: str) -> bool:
        """
        Remove a credential from the cache.

        Returns:
            True if removed, False if not found
        """
        return await self._drop(credential_key(app_name, shop_domain))


class AppStore(_WriteThroughStore[App]):
    """
    In-memory cache of registered apps, keyed by app name.

    Example:
        ```python
        apps = AppStore(initializer=lambda: [App("my-app", client_id, client_secret)])
        await apps.initialize()
        app = apps.lookup(credential.app_name)
        ```
    """

    label = "apps"

    def _key(self, entry: App) -> str:
        return entry.name

    def lookup(self, name: str) -> App:
        """
        Get a registered app by name.

        Raises:
            AppNotFound: If no app is cached under ``name``
        """
        app = self._entries.get(name)
        if app is None:
            raise AppNotFound(name)
        return app

    def get(self, name: str) -> Optional[App]:
        return self._entries.get(name)

    async def drop(self, name: str) -> bool:
        """True if the app was cached and has been removed."""
        return await self._drop(name)
