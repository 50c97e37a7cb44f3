"""
PURPOSE: Concurrent, failure-tolerant Telegram notification fan-out.

One failed recipient never affects the others: every delivery is gathered
with return_exceptions=True and only the success/failure counts survive.

CALLED BY:
    - webhook/processor.py (alert and trade summary rounds)
    - api/routes_broker.py (manual trade notifications)
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradehook.models.strategy import Strategy
from tradehook.notifications.telegram import TelegramClient
from tradehook.services.subscriber_service import SubscriberService
from tradehook.services.user_service import UserService, is_plan_active
from tradehook.utils.logger import get_logger

logger = get_logger("notifications.fanout")


def summarize(results: Iterable[Any]) -> Dict[str, int]:
    """Count gathered results: exceptions are failures, everything else succeeded."""
    items = list(results)
    failure_count = sum(1 for item in items if isinstance(item, BaseException))
    return {"successCount": len(items) - failure_count, "failureCount": failure_count}


async def broadcast(
    recipients: List[str],
    send: Callable[[str], Awaitable[Any]],
) -> Dict[str, Any]:
    """
    PURPOSE: Deliver to every recipient concurrently.

    Args:
        recipients: Chat ids.
        send: Coroutine function taking a chat id.

    Returns:
        dict: {successCount, failureCount}, plus skipped=True when there are no recipients.
    """
    if not recipients:
        return {"successCount": 0, "failureCount": 0, "skipped": True}
    results = await asyncio.gather(*(send(chat_id) for chat_id in recipients), return_exceptions=True)
    for chat_id, result in zip(recipients, results):
        if isinstance(result, BaseException):
            logger.warning("telegram_delivery_failed", chat_id=chat_id, error=str(result))
    return summarize(results)


class NotificationFanout:
    """
    PURPOSE: Resolve recipients for a strategy and deliver texts to them.

    Attributes:
        _session_factory: Factory for recipient lookups.
        _telegram: Bot API client.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        telegram: Optional[TelegramClient] = None,
    ) -> None:
        self._session_factory = session_factory
        self._telegram: TelegramClient = telegram or TelegramClient()

    async def collect_recipients(self, strategy: Strategy) -> List[str]:
        """
        PURPOSE: Collect the de-duplicated chat ids to notify for a strategy.

        The strategy's own chat comes first when Telegram is enabled on it;
        the owner's active subscribers follow, only while the owner's plan is active.

        Returns:
            List[str]: Ordered unique chat ids.
        """
        recipients: List[str] = []
        if strategy.telegram_enabled and strategy.telegram_chat_id:
            recipients.append(str(strategy.telegram_chat_id))

        async with self._session_factory() as session:
            owner = await UserService.get_user(session, strategy.user_id)
            if is_plan_active(owner):
                for chat_id in await SubscriberService.list_active_chat_ids(session, strategy.user_id):
                    if chat_id not in recipients:
                        recipients.append(chat_id)
        return recipients

    async def send_text(self, recipients: List[str], text: str) -> Dict[str, Any]:
        """Broadcast one text to all recipients."""
        return await broadcast(recipients, lambda chat_id: self._telegram.send_text(chat_id, text))

    async def notify_user(self, user_id: UUID, text: str) -> Dict[str, Any]:
        """Send text to every active subscriber of user_id."""
        async with self._session_factory() as session:
            recipients = await SubscriberService.list_active_chat_ids(session, user_id)
        result = await self.send_text(recipients, text)
        logger.info("user_notified", user_id=str(user_id), **result)
        return result
