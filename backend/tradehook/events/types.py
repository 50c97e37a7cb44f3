"""
Event payload types for the tradehook event bus.

Defines the EventPayload envelope published for webhook lifecycle events.
"""

from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from tradehook.utils.time_utils import get_utc_now


class EventPayload(BaseModel):
    """
    Standardized envelope for every event published to the bus.

    PURPOSE: Give dashboard consumers one structure for webhook lifecycle events.
    USED BY: EventBus.publish

    Attributes:
        event_type: Type of event (webhook_received, webhook_processed).
        source: Component that originated the event.
        data: Event-specific payload data.
        timestamp: When the event was created (UTC).
        correlation_id: Unique ID for tracing.
        severity: Event severity level (INFO, WARNING, ERROR).
    """

    event_type: str = Field(
        ...,
        description="Type identifier for the event"
    )
    source: str = Field(
        ...,
        description="Component that generated this event"
    )
    data: dict = Field(
        default_factory=dict,
        description="Event-specific payload data"
    )
    timestamp: datetime = Field(
        default_factory=get_utc_now,
        description="UTC timestamp when event was created"
    )
    correlation_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique correlation ID for tracing"
    )
    severity: str = Field(
        default="INFO",
        description="Severity level: INFO, WARNING or ERROR"
    )
