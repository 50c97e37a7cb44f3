"""
Webhook-related Pydantic schemas for tradehook.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class WebhookAck(BaseModel):
    """Immediate acknowledgement returned to the webhook caller."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    id: UUID
    received_at: str = Field(serialization_alias="receivedAt")


class EventResponse(BaseModel):
    """
    Schema for a stored webhook event.

    Attributes:
        id: Event identifier returned in the webhook acknowledgement
        provider: Signal provider ("chartink")
        received_at: UTC receive time
        strategy_id: Strategy that owns the webhook key
        strategy_name: Strategy name at receive time
        headers: Sanitized request headers
        payload: Normalized payload
        debug: Aggregated background-processing result, None until processed
        processed_at: UTC completion time of background processing
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider: str
    received_at: datetime
    user_id: UUID
    strategy_id: UUID
    strategy_name: str
    headers: Dict[str, Any] = Field(default_factory=dict)
    payload: Optional[Any] = None
    debug: Optional[Dict[str, Any]] = None
    processed_at: Optional[datetime] = None


class ProcessorStatus(BaseModel):
    """Webhook processor counters for the status endpoint."""

    total_received: int
    total_processed: int
    in_flight: int
    last_event_at: Optional[str] = None
