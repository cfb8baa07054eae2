"""
Data Model
==========

Value types shared by the throttle, the executor and the bulk controller.
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Credential:
    """
    Identity for one app installed on one shop.

    Used both to authorize requests and as the partition key for throttle
    state and bulk jobs.

    Attributes:
        app_name: Name of the installed app
        shop_domain: The shop's myshopify.com domain
        access_token: Admin API access token
    """
    app_name: str
    shop_domain: str
    access_token: str = field(repr=False)

    @property
    def key(self) -> str:
        """Partition key, ``"<shop_domain>:<app_name>"``."""
        return f"{self.shop_domain}:{self.app_name}"


@dataclass(frozen=True)
class App:
    """
    A registered Shopify app, as configured in the Partner dashboard.

    Attributes:
        name: Name credentials refer to through ``Credential.app_name``
        client_id: OAuth client id (the app's API key)
        client_secret: OAuth client secret
        scope: Comma separated access scopes the app requests
        auth_redirect_uri: Where Shopify sends the shop after install
    """
    name: str
    client_id: str
    client_secret: str = field(repr=False)
    scope: str = ""
    auth_redirect_uri: str = ""


class Surface(str, Enum):
    """The two API surfaces, each with an independent budget on the server."""
    REST = "rest"
    GRAPHQL = "graphql"


@dataclass(frozen=True)
class Capacity:
    """
    Normalized rate-limit telemetry.

    For REST, ``restore_rate`` is None and the values describe calls left in
    the current window. For GraphQL, ``restore_rate`` is the number of cost
    points restored per second.

    Values are clamped so that ``0 <= available <= maximum`` always holds.
    """
    available: float
    maximum: float
    restore_rate: Optional[float] = None
    observed_at: float = field(default_factory=time.monotonic, compare=False)

    def __post_init__(self):
        maximum = max(0.0, float(self.maximum))
        available = min(max(0.0, float(self.available)), maximum)
        object.__setattr__(self, "maximum", maximum)
        object.__setattr__(self, "available", available)

    @classmethod
    def unknown(cls) -> "Capacity":
        """Sentinel for missing or malformed telemetry."""
        return cls(available=0, maximum=0, restore_rate=None)

    @property
    def known(self) -> bool:
        return self.maximum > 0

    @property
    def cost_based(self) -> bool:
        return self.restore_rate is not None

    def debit(self, amount: float, now: Optional[float] = None) -> "Capacity":
        """Return a copy with ``amount`` reserved and the timestamp refreshed."""
        return replace(
            self,
            available=max(0.0, self.available - amount),
            observed_at=time.monotonic() if now is None else now,
        )

    def restored(self, now: Optional[float] = None) -> float:
        """Points available at ``now`` assuming continuous replenishment."""
        if not self.cost_based:
            return self.available
        now = time.monotonic() if now is None else now
        elapsed = max(0.0, now - self.observed_at)
        return min(self.maximum, self.available + self.restore_rate * elapsed)


@dataclass(frozen=True)
class QueryCost:
    """Cost figures reported alongside a GraphQL response."""
    requested: Optional[float]
    actual: Optional[float]


class BulkJobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @classmethod
    def from_api(cls, value: Optional[str]) -> "BulkJobStatus":
        """Map a server status such as ``"CANCELING"`` to the local enum."""
        return _API_STATUS.get((value or "").upper(), cls.UNKNOWN)

    @property
    def terminal(self) -> bool:
        return self in (BulkJobStatus.COMPLETED, BulkJobStatus.FAILED, BulkJobStatus.CANCELLED)


_API_STATUS = {
    "CREATED": BulkJobStatus.RUNNING,
    "RUNNING": BulkJobStatus.RUNNING,
    "COMPLETED": BulkJobStatus.COMPLETED,
    "FAILED": BulkJobStatus.FAILED,
    "EXPIRED": BulkJobStatus.FAILED,
    "CANCELING": BulkJobStatus.CANCELLING,
    "CANCELED": BulkJobStatus.CANCELLED,
}


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class BulkJob:
    """Snapshot of the current bulk operation for a credential."""
    id: Optional[str]
    status: BulkJobStatus
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    object_count: Optional[int] = None
    file_size: Optional[int] = None
    url: Optional[str] = None
    partial_data_url: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "BulkJob":
        """Build from a ``currentBulkOperation`` GraphQL object."""
        return cls(
            id=payload.get("id"),
            status=BulkJobStatus.from_api(payload.get("status")),
            created_at=_parse_datetime(payload.get("createdAt")),
            completed_at=_parse_datetime(payload.get("completedAt")),
            object_count=_parse_int(payload.get("objectCount")),
            file_size=_parse_int(payload.get("fileSize")),
            url=payload.get("url"),
            partial_data_url=payload.get("partialDataUrl"),
            error_code=payload.get("errorCode"),
        )
