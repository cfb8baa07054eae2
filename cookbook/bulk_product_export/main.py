"""
Throttled Shopify Export Example
================================

This example hammers the REST API from many concurrent tasks without
tripping the 429 limit, then exports the whole product catalog with a
bulk operation.

Usage:
    # Against a mock shop (no credentials needed)
    python main.py

    # Against a real shop
    export SHOPIFY_SHOP="your-shop.myshopify.com"
    export SHOPIFY_ACCESS_TOKEN="shpat_..."
    python main.py --live

The example shows:
1. Concurrent REST calls paced by the call-limit header
2. A bulk query driven to completion and decoded from JSONL
3. Request events for timing and remaining budget
"""

import argparse
import asyncio
import os
import time

from shopify_throttled import (
    Credential,
    Presets,
    RateLimited,
    RequestEvent,
    ShopifyClient,
    ThrottleConfig,
    setup_logging,
)
from utils import MockShop

PRODUCT_QUERY = """
{
  products {
    edges {
      node {
        id
        title
      }
    }
  }
}
"""


class EventStats:
    """Collects RequestEvents for a summary."""

    def __init__(self):
        self.events = []

    def __call__(self, event: RequestEvent):
        self.events.append(event)

    def summary(self) -> str:
        if not self.events:
            return "no requests"
        ok = sum(1 for e in self.events if e.success and e.status_code and e.status_code < 400)
        avg = sum(e.elapsed_ms for e in self.events) / len(self.events)
        return f"{len(self.events)} requests, {ok} succeeded, avg {avg:.1f}ms"


# =============================================================================
# Demos
# =============================================================================

async def burst_rest(client: ShopifyClient, credential: Credential, calls: int):
    """Fire ``calls`` concurrent REST requests through one credential's gate."""
    print(f"\nSending {calls} concurrent REST calls...")
    start = time.time()

    async def one(n):
        try:
            await client.get(credential, "shop.json")
            return True
        except RateLimited as e:
            print(f"  call {n} rate limited (retry_after={e.retry_after})")
            return False

    results = await asyncio.gather(*[one(n) for n in range(calls)])

    elapsed = time.time() - start
    gate = client.registry.gate_for(credential)
    print(f"  {sum(results)}/{calls} succeeded in {elapsed:.2f}s")
    print(f"  gate waits: {gate.stats['waits']}, total wait {gate.stats['total_wait_seconds']:.2f}s")


async def bulk_export(client: ShopifyClient, credential: Credential, policy_name: str):
    """Export every product with a bulk query."""
    policy = Presets.poll_policy(policy_name)
    print(f"\nRunning bulk export (poll preset '{policy_name}': "
          f"every {policy.interval}s, up to {policy.max_attempts} checks)...")
    start = time.time()

    products = await client.bulk_query(credential, PRODUCT_QUERY, policy)

    print(f"  {len(products)} products in {time.time() - start:.2f}s")
    for product in products[:3]:
        print(f"  - {product['id']}: {product.get('title')}")


async def main(live: bool, calls: int, plan: str):
    setup_logging(level="WARNING")
    stats = EventStats()
    throttle = ThrottleConfig(**Presets.get(plan))

    if live:
        credential = Credential("cookbook", os.environ["SHOPIFY_SHOP"], os.environ["SHOPIFY_ACCESS_TOKEN"])
        client = ShopifyClient(throttle=throttle)
        policy_name = "standard"
    else:
        shop = MockShop()
        credential = Credential("cookbook", "mock-shop.myshopify.com", "shpat_mock")
        client = ShopifyClient(throttle=throttle, http_client=shop.client())
        policy_name = "quick"

    print("=" * 60)
    print("Throttled Shopify Export Demo")
    print("=" * 60)
    print(f"Shop: {credential.shop_domain}")
    print(f"Throttle: {throttle}")

    async with client:
        client.add_listener(stats)
        await burst_rest(client, credential, calls)
        await bulk_export(client, credential, policy_name)

    if not live:
        await client.http_client.aclose()

    print(f"\nEvents: {stats.summary()}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Throttled Shopify export demo")
    parser.add_argument("--live", action="store_true", help="Use SHOPIFY_SHOP / SHOPIFY_ACCESS_TOKEN")
    parser.add_argument("--calls", type=int, default=45, help="Concurrent REST calls to send")
    parser.add_argument("--plan", default="standard", choices=["standard", "plus", "conservative"])
    args = parser.parse_args()

    asyncio.run(main(args.live, args.calls, args.plan))
