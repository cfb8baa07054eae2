"""
Tests for ThrottleGate and GateRegistry.
"""

import asyncio
import time

import pytest

from shopify_throttled import Capacity, GateRegistry, Permit, Surface, ThrottleConfig, ThrottleGate


def seed(gate: ThrottleGate, capacity: Capacity, surface: Surface = Surface.REST) -> None:
    """Record telemetry as if a previous request had just completed."""
    gate.release(Permit(gate.key, surface, 0), capacity)


class TestThrottleGateInit:

    def test_defaults(self):
        gate = ThrottleGate("shop:app")
        assert gate.key == "shop:app"
        assert gate.config.low_watermark == 2
        assert gate.config.window_reset_seconds == 1.0
        assert not gate.capacity(Surface.REST).known

    def test_repr(self):
        gate = ThrottleGate("shop:app", ThrottleConfig(low_watermark=4, window_reset_seconds=0.5))
        assert "low_watermark=4" in repr(gate)
        assert "window_reset_seconds=0.5" in repr(gate)

    @pytest.mark.asyncio
    async def test_negative_cost(self):
        with pytest.raises(ValueError, match="estimated_cost must be non-negative"):
            await ThrottleGate("k").acquire(Surface.GRAPHQL, -1)


class TestUnknownCapacity:

    @pytest.mark.asyncio
    async def test_first_request_is_not_throttled(self):
        gate = ThrottleGate("k")
        start = time.monotonic()
        permit = await gate.acquire()
        assert time.monotonic() - start < 0.05
        assert permit.waited == 0

    @pytest.mark.asyncio
    async def test_unknown_telemetry_keeps_previous_estimate(self):
        gate = ThrottleGate("k")
        seed(gate, Capacity(available=8, maximum=40))
        permit = await gate.acquire()
        gate.release(permit, Capacity.unknown())
        # Local reservation of one call survives, no reset to unknown
        assert gate.capacity(Surface.REST).available == 7
        assert gate.capacity(Surface.REST).known

    @pytest.mark.asyncio
    async def test_release_without_telemetry(self):
        gate = ThrottleGate("k")
        permit = await gate.acquire()
        gate.release(permit)
        assert gate.in_flight == 0


class TestCostBasedThrottle:

    @pytest.mark.asyncio
    async def test_waits_for_restore(self):
        """acquire must not return before (cost - available) / restore_rate."""
        gate = ThrottleGate("k")
        seed(gate, Capacity(available=5, maximum=100, restore_rate=50), Surface.GRAPHQL)

        start = time.monotonic()
        permit = await gate.acquire(Surface.GRAPHQL, estimated_cost=15)
        elapsed = time.monotonic() - start

        assert elapsed >= 0.19, f"Expected ~0.2s wait, got {elapsed:.3f}s"
        assert permit.waited == pytest.approx(0.2, abs=0.02)

    @pytest.mark.asyncio
    async def test_enough_capacity_proceeds(self):
        gate = ThrottleGate("k")
        seed(gate, Capacity(available=990, maximum=1000, restore_rate=50), Surface.GRAPHQL)
        start = time.monotonic()
        await gate.acquire(Surface.GRAPHQL, estimated_cost=10)
        assert time.monotonic() - start < 0.05

    @pytest.mark.asyncio
    async def test_reservation_debits_cost(self):
        gate = ThrottleGate("k")
        seed(gate, Capacity(available=500, maximum=1000, restore_rate=50), Surface.GRAPHQL)
        await gate.acquire(Surface.GRAPHQL, estimated_cost=100)
        assert gate.capacity(Surface.GRAPHQL).available == pytest.approx(400, abs=1)

    @pytest.mark.asyncio
    async def test_cost_above_bucket_is_capped(self):
        gate = ThrottleGate("k")
        seed(gate, Capacity(available=90, maximum=100, restore_rate=100), Surface.GRAPHQL)
        # Needs the full bucket (10 points short), never more
        assert gate.delay_for(Surface.GRAPHQL, 5000) <= 0.11

    @pytest.mark.asyncio
    async def test_surfaces_are_independent(self):
        gate = ThrottleGate("k")
        seed(gate, Capacity(available=0, maximum=1000, restore_rate=1), Surface.GRAPHQL)
        start = time.monotonic()
        await gate.acquire(Surface.REST)
        assert time.monotonic() - start < 0.05


class TestFixedCounterThrottle:

    @pytest.mark.asyncio
    async def test_at_low_watermark_waits_for_reset(self):
        gate = ThrottleGate("k", ThrottleConfig(low_watermark=2, window_reset_seconds=0.1))
        seed(gate, Capacity(available=1, maximum=40))

        start = time.monotonic()
        permit = await gate.acquire()
        elapsed = time.monotonic() - start

        assert elapsed >= 0.08
        assert permit.waited > 0

    @pytest.mark.asyncio
    async def test_above_low_watermark_proceeds(self):
        gate = ThrottleGate("k", ThrottleConfig(low_watermark=2, window_reset_seconds=1.0))
        seed(gate, Capacity(available=3, maximum=40))
        start = time.monotonic()
        await gate.acquire()
        assert time.monotonic() - start < 0.05

    @pytest.mark.asyncio
    async def test_reservations_reach_watermark(self):
        gate = ThrottleGate("k", ThrottleConfig(low_watermark=2, window_reset_seconds=0.1))
        seed(gate, Capacity(available=4, maximum=40))

        first = await gate.acquire()
        second = await gate.acquire()
        third = await gate.acquire()

        assert first.waited == 0
        assert second.waited == 0
        assert third.waited > 0


class TestSerialization:

    @pytest.mark.asyncio
    async def test_concurrent_acquires_do_not_share_budget(self):
        """Two callers cannot both spend the last known budget before a release."""
        gate = ThrottleGate("k")
        seed(gate, Capacity(available=10, maximum=100, restore_rate=100), Surface.GRAPHQL)

        first, second = await asyncio.gather(
            gate.acquire(Surface.GRAPHQL, 10),
            gate.acquire(Surface.GRAPHQL, 10),
        )

        assert first.waited == 0
        assert second.waited >= 0.09
        assert gate.in_flight == 2

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        gate = ThrottleGate("k", ThrottleConfig(low_watermark=2, window_reset_seconds=0.02))
        seed(gate, Capacity(available=0, maximum=40))
        order = []

        async def task(n):
            await gate.acquire()
            order.append(n)

        await asyncio.gather(*[task(i) for i in range(4)])
        assert order == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_gates_do_not_contend(self, credential, other_credential):
        registry = GateRegistry(ThrottleConfig(window_reset_seconds=5.0))
        blocked = registry.gate_for(credential)
        seed(blocked, Capacity(available=0, maximum=40))

        waiting = asyncio.create_task(blocked.acquire())
        await asyncio.sleep(0.01)

        start = time.monotonic()
        await registry.gate_for(other_credential).acquire()
        assert time.monotonic() - start < 0.05

        waiting.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiting

    @pytest.mark.asyncio
    async def test_wait_is_cancellable(self):
        gate = ThrottleGate("k", ThrottleConfig(window_reset_seconds=5.0))
        seed(gate, Capacity(available=0, maximum=40))

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(gate.acquire(), timeout=0.05)

        # The lock was released by the cancelled waiter
        gate.reset()
        await asyncio.wait_for(gate.acquire(), timeout=0.5)


class TestGateStats:

    @pytest.mark.asyncio
    async def test_stats(self):
        gate = ThrottleGate("k", ThrottleConfig(window_reset_seconds=0.02))
        seed(gate, Capacity(available=0, maximum=40))
        permit = await gate.acquire()

        stats = gate.stats
        assert stats["waits"] == 1
        assert stats["in_flight"] == 1
        assert stats["total_wait_seconds"] > 0
        assert stats["capacity"]["rest"]["maximum"] == 40

        gate.release(permit, Capacity(available=39, maximum=40))
        assert gate.stats["in_flight"] == 0
        assert gate.stats["capacity"]["rest"]["available"] == 39

    def test_reset(self):
        gate = ThrottleGate("k")
        seed(gate, Capacity(available=1, maximum=40))
        gate.reset()
        assert gate.stats["capacity"] == {}


class TestGateRegistry:

    def test_gate_for_is_lazy_and_stable(self, credential):
        registry = GateRegistry()
        assert len(registry) == 0
        gate = registry.gate_for(credential)
        assert registry.gate_for(credential) is gate
        assert registry.list_keys() == [credential.key]

    def test_gates_share_config(self, credential):
        config = ThrottleConfig(low_watermark=5)
        assert GateRegistry(config).gate_for(credential).config is config

    def test_get_missing(self):
        with pytest.raises(KeyError, match="No throttle gate"):
            GateRegistry().get("missing")

    def test_remove_and_reset(self, credential, other_credential):
        registry = GateRegistry()
        registry.gate_for(credential)
        registry.gate_for(other_credential)

        assert registry.remove(credential.key) is True
        assert registry.remove(credential.key) is False
        assert not registry.exists(credential.key)

        registry.reset()
        assert len(registry) == 0

    def test_stats(self, credential):
        registry = GateRegistry()
        registry.gate_for(credential)
        assert registry.stats(credential.key)["waits"] == 0
