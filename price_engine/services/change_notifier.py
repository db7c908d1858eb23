"""
Change Notifier
===============

Broadcasts ``price:updated`` events after a price mutation has committed.

Channels:
    ``<prefix>:companies``      every default price change
    ``<prefix>:tenant:<id>``    the owning supplier, and the target company
                                of a private price change

Delivery is best-effort: a failed or slow publish is logged and counted,
never raised, so a committed mutation is never reported as failed.
"""

import asyncio
from typing import Protocol

import redis.asyncio as aioredis

from price_engine.api.metrics import record_notification
from price_engine.config.settings import Settings, get_settings
from price_engine.schemas.domain import PriceChangeEvent, PriceType
from price_engine.utils.logger import get_logger

logger = get_logger(__name__)


class ChangeNotifier(Protocol):
    """Anything that can broadcast a committed price change."""

    async def publish(self, event: PriceChangeEvent) -> None:
        ...


class NullChangeNotifier:
    """Notifier used when broadcasting is disabled."""

    async def publish(self, event: PriceChangeEvent) -> None:
        logger.debug("Price change not broadcast", **event.log_context())
        record_notification("skipped")


class RedisChangeNotifier:
    """
    Redis pub/sub notifier.

    Each channel publish is bounded by ``notification_timeout_seconds``.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        settings: Settings | None = None,
    ) -> None:
        """
        Initialize notifier.

        Args:
            redis_client: Async Redis client instance
            settings: Settings providing channel prefix and timeout
        """
        self._redis = redis_client
        self._settings = settings or get_settings()

    def channels_for(self, event: PriceChangeEvent) -> list[str]:
        """Channels an event is published on."""
        prefix = self._settings.notification_channel_prefix
        if event.price_type == PriceType.DEFAULT:
            return [f"{prefix}:companies", f"{prefix}:tenant:{event.supplier_id}"]

        channels = [f"{prefix}:tenant:{event.supplier_id}"]
        if event.company_id is not None:
            channels.append(f"{prefix}:tenant:{event.company_id}")
        return channels

    async def publish(self, event: PriceChangeEvent) -> None:
        message = event.to_message()

        for channel in self.channels_for(event):
            try:
                receivers = await asyncio.wait_for(
                    self._redis.publish(channel, message),
                    timeout=self._settings.notification_timeout_seconds,
                )
            except Exception as e:
                logger.warning(
                    "Price change publish failed",
                    channel=channel,
                    error=str(e) or type(e).__name__,
                    **event.log_context(),
                )
                record_notification("failed")
                continue

            logger.debug(
                "Price change published",
                channel=channel,
                receivers=receivers,
                **event.log_context(),
            )
            record_notification("published")


# Global Redis client (initialized in lifespan)
_redis_client: aioredis.Redis | None = None


async def get_redis_client() -> aioredis.Redis:
    """
    Get or create Redis client.

    Returns:
        Async Redis client
    """
    global _redis_client

    if _redis_client is None:
        settings = get_settings()
        _redis_client = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )

    return _redis_client


async def get_change_notifier() -> ChangeNotifier:
    """
    Get the configured ChangeNotifier.

    Factory function for dependency injection.
    """
    settings = get_settings()
    if not settings.notifications_enabled:
        return NullChangeNotifier()

    redis = await get_redis_client()
    return RedisChangeNotifier(redis, settings)


async def close_redis_client() -> None:
    """Close Redis client connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
