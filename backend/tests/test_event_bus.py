"""
PURPOSE: Tests for EventBus publishing with and without Redis.
"""

from unittest.mock import AsyncMock

import pytest

from tradehook.events.bus import EventBus


class TestEventBus:
    """Test EventBus.publish."""

    @pytest.mark.asyncio
    async def test_publish_without_redis_returns_envelope(self):
        bus = EventBus("redis://localhost:6379/15")

        payload = await bus.publish("webhook_received", {"event_id": "e1"}, source="test")

        assert bus.connected is False
        assert payload.event_type == "webhook_received"
        assert payload.source == "test"
        assert payload.data == {"event_id": "e1"}

    @pytest.mark.asyncio
    async def test_publish_to_redis(self):
        bus = EventBus("redis://localhost:6379/15")
        bus._redis = AsyncMock()

        payload = await bus.publish("webhook_received", {"x": 1})

        channel, message = bus._redis.publish.await_args.args
        assert channel == EventBus.CHANNEL
        assert payload.correlation_id in message

    @pytest.mark.asyncio
    async def test_redis_publish_error_is_contained(self):
        bus = EventBus("redis://localhost:6379/15")
        bus._redis = AsyncMock()
        bus._redis.publish.side_effect = ConnectionError("gone")

        payload = await bus.publish("webhook_processed", {"event_id": "e2"})

        assert payload.data == {"event_id": "e2"}
