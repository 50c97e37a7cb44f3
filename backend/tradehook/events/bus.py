"""
Redis-based event bus for tradehook.

Publishes webhook lifecycle events for dashboards. Publishing is best-effort:
without a Redis connection events are dropped, and a failed publish is
logged, never raised into the pipeline.
"""

from typing import Optional

import redis.asyncio as redis

from tradehook.events.types import EventPayload
from tradehook.utils.logger import get_logger


class EventBus:
    """
    Redis pub/sub event bus.

    PURPOSE: Announce webhook_received / webhook_processed to other processes.

    CALLED BY: api/routes_webhook.py, webhook/processor.py

    Attributes:
        CHANNEL: Redis channel name for all events.
        _redis: Async Redis client instance, None until connected.
        _redis_url: Redis connection URL.
        _logger: Logger instance.
    """

    CHANNEL: str = "tradehook:events"

    def __init__(self, redis_url: str) -> None:
        """
        Initialize the event bus without connecting.

        Args:
            redis_url: Redis connection URL (e.g., 'redis://localhost:6379/0').
        """
        self._redis_url: str = redis_url
        self._redis: Optional[redis.Redis] = None
        self._logger = get_logger("events.bus")

    @property
    def connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        """
        Establish the Redis connection.

        Called during application startup; a failure leaves the bus
        unconnected and publishing becomes a no-op.
        """
        client = redis.from_url(self._redis_url, decode_responses=True)
        try:
            await client.ping()
        except Exception as e:
            self._logger.warning("redis_unavailable", error=str(e))
            await client.aclose()
            return
        self._redis = client
        self._logger.info("redis_connected", redis_url=self._redis_url)

    async def disconnect(self) -> None:
        """Close the Redis connection during application shutdown."""
        if self._redis:
            try:
                await self._redis.aclose()
                self._logger.info("redis_disconnected")
            except Exception as e:
                self._logger.error("redis_disconnection_failed", error=str(e))
            self._redis = None

    async def publish(
        self,
        event_type: str,
        data: dict,
        source: str = "unknown",
        severity: str = "INFO"
    ) -> EventPayload:
        """
        Publish an event to Redis when connected.

        Args:
            event_type: Type of event being published.
            data: Event payload dictionary.
            source: Component originating the event.
            severity: Event severity level.

        Returns:
            EventPayload: The published envelope.
        """
        payload = EventPayload(
            event_type=event_type,
            source=source,
            data=data,
            severity=severity
        )

        if self._redis:
            try:
                await self._redis.publish(self.CHANNEL, payload.model_dump_json())
                self._logger.info(
                    "event_published",
                    event_type=event_type,
                    source=source,
                    correlation_id=payload.correlation_id
                )
            except Exception as e:
                self._logger.error("redis_publish_failed", event_type=event_type, error=str(e))

        return payload


# Global event bus singleton
_bus: Optional[EventBus] = None


def set_event_bus(bus: Optional[EventBus]) -> None:
    """
    Store the connected EventBus as the global singleton.

    CALLED BY: main.py lifespan after connecting; tests to reset state.
    """
    global _bus
    _bus = bus


def get_event_bus() -> EventBus:
    """
    Get or create the global EventBus singleton.

    Returns:
        EventBus: The connected instance if one was set, otherwise a new
            unconnected instance.
    """
    global _bus
    if _bus is None:
        from tradehook.config.settings import settings
        _bus = EventBus(settings.REDIS_URL)
    return _bus
