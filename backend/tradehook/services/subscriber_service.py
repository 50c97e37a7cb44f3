"""
PURPOSE: Telegram subscriber and link-token persistence.

Subscribers are chats that linked themselves to a user through a one-time
token sent with /startAlert; the notification fan-out reads the active ones.

CALLED BY:
    - notifications/fanout.py (recipient collection)
    - notifications/telegram_updates.py (/startAlert, /stopAlert)
    - api/routes_telegram.py (link-token issue and listing)
"""

import secrets
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradehook.models.telegram import TelegramSubscriber, TelegramToken
from tradehook.utils.logger import get_logger
from tradehook.utils.time_utils import get_utc_now, to_naive_utc

logger = get_logger("services.subscriber")

TOKEN_TTL = timedelta(hours=24)


class SubscriberService:
    """
    Service for Telegram subscriber records.

    CALLED BY: Notification fan-out and the Telegram update handler
    """

    @staticmethod
    async def list_active_chat_ids(db: AsyncSession, user_id: UUID) -> List[str]:
        """
        Return chat ids of the user's active subscribers, oldest first.

        Args:
            db: Async database session
            user_id: Owner whose subscribers are listed

        Returns:
            List[str]: Chat ids
        """
        stmt = (
            select(TelegramSubscriber.chat_id)
            .where(TelegramSubscriber.user_id == user_id, TelegramSubscriber.active.is_(True))
            .order_by(TelegramSubscriber.created_at)
        )
        result = await db.execute(stmt)
        return [str(chat_id) for chat_id in result.scalars().all() if chat_id]

    @staticmethod
    async def upsert_subscriber(
        db: AsyncSession,
        chat_id: str,
        user_id: UUID,
        first_name: Optional[str] = None,
        username: Optional[str] = None,
    ) -> TelegramSubscriber:
        """
        Create or reactivate the subscriber for chat_id and bind it to user_id.

        Returns:
            TelegramSubscriber: The active subscriber
        """
        stmt = select(TelegramSubscriber).where(TelegramSubscriber.chat_id == str(chat_id))
        subscriber = (await db.execute(stmt)).scalar_one_or_none()
        if subscriber is None:
            subscriber = TelegramSubscriber(chat_id=str(chat_id), user_id=user_id)
            db.add(subscriber)
        subscriber.user_id = user_id
        subscriber.first_name = first_name or ""
        subscriber.username = username or ""
        subscriber.active = True
        await db.commit()
        logger.info("telegram_subscriber_upserted", chat_id=str(chat_id), user_id=str(user_id))
        return subscriber

    @staticmethod
    async def deactivate(db: AsyncSession, chat_id: str) -> bool:
        """
        Deactivate the subscriber for chat_id.

        Returns:
            bool: True if a subscriber existed
        """
        stmt = select(TelegramSubscriber).where(TelegramSubscriber.chat_id == str(chat_id))
        subscriber = (await db.execute(stmt)).scalar_one_or_none()
        if subscriber is None:
            return False
        subscriber.active = False
        await db.commit()
        logger.info("telegram_subscriber_deactivated", chat_id=str(chat_id))
        return True

    @staticmethod
    async def create_token(
        db: AsyncSession,
        user_id: UUID,
        ttl: timedelta = TOKEN_TTL,
        expires_at: Optional[datetime] = None,
    ) -> TelegramToken:
        """
        Issue a one-time link token for user_id.

        Args:
            db: Async database session
            user_id: Owner the token links chats to
            ttl: Lifetime used when expires_at is not given
            expires_at: Explicit expiry, usually the end of the user's plan

        Returns:
            TelegramToken: The persisted token
        """
        record = TelegramToken(
            token=secrets.token_hex(16),
            user_id=user_id,
            expires_at=to_naive_utc(expires_at or get_utc_now() + ttl),
        )
        db.add(record)
        await db.commit()
        return record

    @staticmethod
    async def find_token(db: AsyncSession, token: str) -> Optional[TelegramToken]:
        stmt = select(TelegramToken).where(TelegramToken.token == token)
        return (await db.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def mark_token_used(
        db: AsyncSession,
        record: TelegramToken,
        chat_id: str,
        used_at: Optional[datetime] = None,
    ) -> None:
        """Stamp the token as consumed by chat_id."""
        record.used_at = to_naive_utc(used_at or get_utc_now())
        record.used_by_chat_id = str(chat_id)
        await db.commit()

    @staticmethod
    async def list_tokens(db: AsyncSession, user_id: UUID, limit: int = 10) -> List[TelegramToken]:
        """Return the user's most recently issued tokens, newest first."""
        stmt = (
            select(TelegramToken)
            .where(TelegramToken.user_id == user_id)
            .order_by(TelegramToken.created_at.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())
