"""
Unit Tests for Change Notifier
==============================

Redis pub/sub fan-out with a mocked Redis client.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from price_engine.config.settings import Settings
from price_engine.schemas.domain import PriceChangeEvent, PriceType
from price_engine.services.change_notifier import NullChangeNotifier, RedisChangeNotifier


@pytest.fixture
def mock_redis():
    """Create mock Redis client."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    return redis


@pytest.fixture
def notifier_settings():
    return Settings(
        _env_file=None,
        notification_channel_prefix="price-updates",
        notification_timeout_seconds=0.05,
    )


@pytest.fixture
def notifier(mock_redis, notifier_settings):
    return RedisChangeNotifier(mock_redis, notifier_settings)


def make_event(price_type=PriceType.DEFAULT, company_id=None):
    return PriceChangeEvent(
        product_id=uuid4(),
        product_name="Copper cable",
        price_type=price_type,
        new_price=Decimal("100.00"),
        currency="USD",
        supplier_id=uuid4(),
        company_id=company_id,
    )


class TestChannels:
    """Test channel selection per event scope."""

    def test_default_price_goes_to_all_companies_and_supplier(self, notifier):
        event = make_event()

        assert notifier.channels_for(event) == [
            "price-updates:companies",
            f"price-updates:tenant:{event.supplier_id}",
        ]

    def test_private_price_goes_to_company_and_supplier_only(self, notifier):
        company_id = uuid4()
        event = make_event(PriceType.PRIVATE, company_id)

        channels = notifier.channels_for(event)

        assert channels == [
            f"price-updates:tenant:{event.supplier_id}",
            f"price-updates:tenant:{company_id}",
        ]
        assert "price-updates:companies" not in channels


class TestPublish:
    """Test publishing behaviour."""

    @pytest.mark.asyncio
    async def test_publishes_json_payload_on_every_channel(self, notifier, mock_redis):
        event = make_event()

        await notifier.publish(event)

        assert mock_redis.publish.await_count == 2
        channel, message = mock_redis.publish.await_args_list[0].args
        assert channel == "price-updates:companies"
        assert '"event":"price:updated"' in message
        assert str(event.product_id) in message

    @pytest.mark.asyncio
    async def test_transport_failure_is_swallowed(self, notifier, mock_redis):
        mock_redis.publish = AsyncMock(side_effect=ConnectionError("redis down"))

        await notifier.publish(make_event())

        assert mock_redis.publish.await_count == 2

    @pytest.mark.asyncio
    async def test_slow_publish_times_out_without_raising(self, notifier, mock_redis):
        async def hang(channel, message):
            await asyncio.sleep(1)

        mock_redis.publish = AsyncMock(side_effect=hang)

        await notifier.publish(make_event())

    @pytest.mark.asyncio
    async def test_one_failed_channel_does_not_skip_the_rest(self, notifier, mock_redis):
        mock_redis.publish = AsyncMock(side_effect=[ConnectionError("first"), 1])

        await notifier.publish(make_event())

        assert mock_redis.publish.await_count == 2

    @pytest.mark.asyncio
    async def test_null_notifier_is_a_no_op(self):
        await NullChangeNotifier().publish(make_event())
