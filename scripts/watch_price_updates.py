#!/usr/bin/env python3
"""Helper script for watching price change notifications.

Subscribes to the price update channels and prints every event.

Usage:
    python scripts/watch_price_updates.py                  # all channels
    python scripts/watch_price_updates.py --tenant <uuid>  # one tenant
    python scripts/watch_price_updates.py --companies      # default price changes only
"""
import argparse
import asyncio
import json
import sys

import redis.asyncio as aioredis

from price_engine.config.settings import get_settings


def channel_patterns(prefix: str, tenant: str | None, companies: bool) -> list[str]:
    """Channel patterns to subscribe to for the given filters."""
    patterns = []
    if companies:
        patterns.append(f"{prefix}:companies")
    if tenant:
        patterns.append(f"{prefix}:tenant:{tenant}")
    return patterns or [f"{prefix}:*"]


def format_event(channel: str, data: str) -> str:
    """One line summary of a price:updated message."""
    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        return f"[{channel}] unparseable message: {data!r}"

    scope = f" company={event['companyId']}" if event.get("companyId") else ""
    return (
        f"[{event.get('updatedAt', '?')}] {channel}: "
        f"{event.get('productName')} ({event.get('productId')}) "
        f"{event.get('priceType')} -> {event.get('newPrice')} {event.get('currency')}{scope}"
    )


async def watch(patterns: list[str]) -> None:
    """Print events until interrupted."""
    settings = get_settings()
    client = aioredis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    pubsub = client.pubsub()

    try:
        await pubsub.psubscribe(*patterns)
        print(f"Watching {', '.join(patterns)} (Ctrl+C to stop)...")
        async for message in pubsub.listen():
            if message["type"] != "pmessage":
                continue
            print(format_event(message["channel"], message["data"]))
    finally:
        await pubsub.aclose()
        await client.aclose()


async def main():
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Watch price change notifications",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Everything published by the price engine
  python scripts/watch_price_updates.py

  # Events a single company or supplier receives
  python scripts/watch_price_updates.py --tenant 123e4567-e89b-12d3-a456-426614174000
        """
    )
    parser.add_argument("--tenant", help="Only events for this tenant id")
    parser.add_argument(
        "--companies",
        action="store_true",
        help="Only default price changes broadcast to all companies",
    )
    args = parser.parse_args()

    settings = get_settings()
    patterns = channel_patterns(settings.notification_channel_prefix, args.tenant, args.companies)

    try:
        await watch(patterns)
    except Exception as e:
        print(f"Error watching price updates: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n\nWatching stopped.")
        sys.exit(0)
