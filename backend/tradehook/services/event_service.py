"""
Event ledger service for tradehook.

PURPOSE: Persist webhook events before they are acknowledged and record the
aggregated background-processing result on them afterwards.

CALLED BY: api/routes_webhook.py, webhook/processor.py
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradehook.config.constants import DEFAULT_PROVIDER
from tradehook.models.strategy import Strategy
from tradehook.models.webhook_event import WebhookEvent
from tradehook.utils.logger import get_logger
from tradehook.utils.time_utils import to_naive_utc


logger = get_logger("services.event")


class EventService:
    """
    Service for webhook event records.

    CALLED BY: Webhook route and the background processor
    """

    @staticmethod
    async def save_event(
        db: AsyncSession,
        strategy: Strategy,
        payload: Any,
        headers: Dict[str, Any],
        received_at: datetime,
        provider: str = DEFAULT_PROVIDER,
    ) -> WebhookEvent:
        """
        Insert a webhook event; runs on the request path before the response.

        Args:
            db: Async database session
            strategy: Strategy the webhook key resolved to
            payload: Normalized payload
            headers: Sanitized request headers
            received_at: Receive time
            provider: Signal provider

        Returns:
            WebhookEvent: The persisted event
        """
        event = WebhookEvent(
            provider=provider,
            received_at=to_naive_utc(received_at),
            user_id=strategy.user_id,
            strategy_id=strategy.id,
            strategy_name=strategy.name or "",
            headers=headers,
            payload=payload,
        )
        db.add(event)
        await db.commit()
        logger.info("webhook_event_saved", event_id=str(event.id), strategy_id=str(strategy.id))
        return event

    @staticmethod
    async def update_event(
        session_factory: async_sessionmaker[AsyncSession],
        event_id: UUID,
        debug: Dict[str, Any],
        processed_at: datetime,
    ) -> bool:
        """
        Record the debug document on an event. Best-effort: never raises.

        Args:
            session_factory: Factory for a dedicated session
            event_id: Event to update
            debug: Aggregated processing result
            processed_at: Completion time

        Returns:
            bool: True if the update was committed
        """
        try:
            async with session_factory() as session:
                event = await session.get(WebhookEvent, event_id)
                if event is None:
                    logger.warning("webhook_event_missing_on_update", event_id=str(event_id))
                    return False
                event.debug = debug
                event.processed_at = to_naive_utc(processed_at)
                await session.commit()
            return True
        except Exception as e:
            logger.error("webhook_event_update_failed", event_id=str(event_id), error=str(e))
            return False

    @staticmethod
    async def get_event(db: AsyncSession, event_id: UUID) -> Optional[WebhookEvent]:
        return await db.get(WebhookEvent, event_id)

    @staticmethod
    async def list_events(
        db: AsyncSession,
        user_id: Optional[UUID] = None,
        strategy_id: Optional[UUID] = None,
        limit: int = 50,
    ) -> List[WebhookEvent]:
        """
        List events newest first, optionally filtered by owner and strategy.

        Args:
            db: Async database session
            user_id: Owner filter
            strategy_id: Strategy filter
            limit: Maximum rows (clamped to 1..500)

        Returns:
            List[WebhookEvent]
        """
        stmt = select(WebhookEvent)
        if user_id is not None:
            stmt = stmt.where(WebhookEvent.user_id == user_id)
        if strategy_id is not None:
            stmt = stmt.where(WebhookEvent.strategy_id == strategy_id)
        stmt = stmt.order_by(desc(WebhookEvent.received_at)).limit(max(1, min(limit, 500)))
        result = await db.execute(stmt)
        return list(result.scalars().all())
