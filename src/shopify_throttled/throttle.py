"""
Throttle Gate
=============

Per-credential pacing driven by the telemetry the server reports.

The server is the only source of truth for remaining budget, and its
telemetry always lags one round trip. The gate is therefore
optimistic-then-corrective: it decides from the last reported Capacity,
reserves the cost locally so that queued callers see the reduced budget,
and is corrected by fresh telemetry on release. It bounds overruns rather
than preventing all of them.

Two surfaces are paced independently for every credential:
    - REST (fixed counter): wait for the window to reset once the reported
      budget falls to the low watermark
    - GraphQL (cost based): wait exactly long enough for the restore rate to
      refill the points the next query is estimated to cost
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .log import get_logger
from .models import Capacity, Credential, Surface
from .presets import ThrottleConfig

logger = get_logger(__name__)


@dataclass(frozen=True)
class Permit:
    """
    Clearance returned by ThrottleGate.acquire.

    Attributes:
        key: Credential key the permit belongs to
        surface: API surface the request targets
        cost: Cost reserved for the request
        waited: Seconds spent waiting before clearance
    """
    key: str
    surface: Surface
    cost: float
    waited: float = 0.0


class ThrottleGate:
    """
    Serializes throttling decisions for a single credential.

    ``acquire`` holds the gate's lock from the decision through any wait
    until the reservation is recorded. Callers for one credential are
    therefore cleared one at a time in FIFO order, while gates for other
    credentials never contend.

    Args:
        key: Credential key this gate paces
        config: REST low watermark and reset estimate (default: ThrottleConfig())

    Example:
        ```python
        gate = ThrottleGate("shop.myshopify.com:my-app")

        permit = await gate.acquire(Surface.GRAPHQL, estimated_cost=10)
        try:
            response = await send()
        finally:
            gate.release(permit, CallLimitTracker.parse(response, response.json()))
        ```
    """

    def __init__(self, key: str, config: Optional[ThrottleConfig] = None):
        self._key = key
        self._config = config or ThrottleConfig()
        self._lock = asyncio.Lock()
        self._capacities: Dict[Surface, Capacity] = {}
        self._in_flight = 0
        self._waits = 0
        self._total_wait = 0.0

    @property
    def key(self) -> str:
        return self._key

    @property
    def config(self) -> ThrottleConfig:
        return self._config

    @property
    def in_flight(self) -> int:
        """Permits handed out and not yet released."""
        return self._in_flight

    def capacity(self, surface: Surface = Surface.REST) -> Capacity:
        """Last known (or locally reserved) capacity for a surface."""
        return self._capacities.get(surface, Capacity.unknown())

    def delay_for(self, surface: Surface, estimated_cost: float, now: Optional[float] = None) -> float:
        """Seconds a request of ``estimated_cost`` would have to wait right now."""
        capacity = self._capacities.get(surface)
        if capacity is None or not capacity.known:
            return 0.0
        now = time.monotonic() if now is None else now

        if capacity.cost_based:
            if capacity.restore_rate <= 0:
                logger.warning("Restore rate is not positive, not throttling", key=self._key)
                return 0.0
            # A query can never need more than a full bucket
            needed = min(estimated_cost, capacity.maximum)
            available = capacity.restored(now)
            if available >= needed:
                return 0.0
            return (needed - available) / capacity.restore_rate

        if capacity.available > self._config.low_watermark:
            return 0.0
        reset_at = capacity.observed_at + self._config.window_reset_seconds
        return max(0.0, reset_at - now)

    async def acquire(self, surface: Surface = Surface.REST, estimated_cost: float = 1) -> Permit:
        """
        Wait until the credential has budget for the request, then reserve it.

        Args:
            surface: API surface the request targets
            estimated_cost: Points the request is expected to cost (1 for REST)

        Returns:
            Permit to hand back to release()

        Raises:
            ValueError: If estimated_cost is negative
            asyncio.CancelledError: If the waiting task is cancelled
        """
        if estimated_cost < 0:
            raise ValueError("estimated_cost must be non-negative")

        async with self._lock:
            delay = self.delay_for(surface, estimated_cost)
            if delay > 0:
                self._waits += 1
                self._total_wait += delay
                logger.debug(
                    "Throttling request",
                    key=self._key,
                    surface=surface.value,
                    delay_s=round(delay, 3),
                    available=self.capacity(surface).available,
                )
                await asyncio.sleep(delay)

            # Re-read: a release may have landed fresh telemetry during the wait
            capacity = self._capacities.get(surface)
            if capacity is not None and capacity.known:
                self._capacities[surface] = self._reserve(capacity, estimated_cost, waited=delay > 0)

            self._in_flight += 1
            return Permit(self._key, surface, estimated_cost, delay)

    def _reserve(self, capacity: Capacity, cost: float, waited: bool) -> Capacity:
        now = time.monotonic()
        if capacity.cost_based:
            restored = Capacity(
                available=capacity.restored(now),
                maximum=capacity.maximum,
                restore_rate=capacity.restore_rate,
                observed_at=now,
            )
            return restored.debit(cost, now)
        # Waiting out a reset frees the slot this request is about to use
        return capacity.debit(0 if waited else cost, now)

    def release(self, permit: Permit, observed: Optional[Capacity] = None) -> None:
        """
        Record fresh telemetry after a request completes, whatever its outcome.

        Unknown telemetry keeps the current estimate rather than falling back
        to an unthrottled state.
        """
        self._in_flight = max(0, self._in_flight - 1)
        if observed is None or not observed.known:
            logger.debug(
                "No rate limit telemetry, keeping previous estimate",
                key=self._key,
                surface=permit.surface.value,
            )
            return
        self._capacities[permit.surface] = observed

    def reset(self) -> None:
        """Forget all capacity estimates and statistics."""
        self._capacities.clear()
        self._waits = 0
        self._total_wait = 0.0

    @property
    def stats(self) -> Dict[str, Any]:
        """
        Get throttling statistics.

        Returns:
            Dict with in_flight, waits, total_wait_seconds and the current
            capacity per surface.
        """
        return {
            "in_flight": self._in_flight,
            "waits": self._waits,
            "total_wait_seconds": self._total_wait,
            "capacity": {
                surface.value: {
                    "available": cap.available,
                    "maximum": cap.maximum,
                    "restore_rate": cap.restore_rate,
                }
                for surface, cap in self._capacities.items()
            },
        }

    def __repr__(self) -> str:
        return (
            f"ThrottleGate(key={self._key!r}, "
            f"low_watermark={self._config.low_watermark}, "
            f"window_reset_seconds={self._config.window_reset_seconds})"
        )


class GateRegistry:
    """
    Lazily creates and holds one ThrottleGate per credential.

    Gates live for the life of the registry. Credential churn is expected to
    be small, so they are never evicted automatically.

    Example:
        ```python
        registry = GateRegistry(ThrottleConfig(**Presets.PLUS))
        gate = registry.gate_for(credential)
        assert gate is registry.gate_for(credential)
        ```
    """

    def __init__(self, config: Optional[ThrottleConfig] = None):
        self._config = config or ThrottleConfig()
        self._gates: Dict[str, ThrottleGate] = {}

    @property
    def config(self) -> ThrottleConfig:
        return self._config

    def gate_for(self, credential: Credential) -> ThrottleGate:
        """Get the gate for a credential, creating it on first use."""
        gate = self._gates.get(credential.key)
        if gate is None:
            gate = self._gates[credential.key] = ThrottleGate(credential.key, self._config)
        return gate

    def get(self, key: str) -> ThrottleGate:
        """
        Get an existing gate by credential key.

        Raises:
            KeyError: If no gate exists for the key
        """
        if key not in self._gates:
            raise KeyError(f"No throttle gate for '{key}'.")
        return self._gates[key]

    def exists(self, key: str) -> bool:
        return key in self._gates

    def remove(self, key: str) -> bool:
        """
        Remove a gate.

        Returns:
            True if removed, False if not found
        """
        return self._gates.pop(key, None) is not None

    def reset(self, key: Optional[str] = None) -> None:
        """Remove one gate, or every gate when ``key`` is None."""
        if key is None:
            self._gates.clear()
        else:
            self._gates.pop(key, None)

    def list_keys(self) -> List[str]:
        return list(self._gates.keys())

    def stats(self, key: str) -> Dict[str, Any]:
        return self.get(key).stats

    def __len__(self) -> int:
        return len(self._gates)
