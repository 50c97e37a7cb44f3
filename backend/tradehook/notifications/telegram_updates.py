"""
PURPOSE: Handle Telegram bot commands that manage alert subscriptions.

Commands:
    /start               reply with usage help
    /startAlert <token>  link this chat to the token owner's alerts
    /stopAlert           stop alerts for this chat

CALLED BY:
    - api/routes_telegram.py (webhook mode)
    - notifications/telegram_sync.py (polling mode)
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradehook.notifications.telegram import TelegramClient
from tradehook.services.subscriber_service import SubscriberService
from tradehook.services.user_service import UserService, is_plan_active
from tradehook.utils.logger import get_logger
from tradehook.utils.time_utils import get_utc_now, to_naive_utc

logger = get_logger("notifications.telegram_updates")

HELP_TEXT = "Welcome! To start alerts, send:\n/startAlert <token>\nTo stop: /stopAlert"
MISSING_TOKEN_TEXT = "Token missing. Use:\n/startAlert <token>"
INVALID_TOKEN_TEXT = "Invalid token. Generate a new token from your dashboard."
USED_TOKEN_TEXT = "Token already used. Generate a new token from your dashboard."
EXPIRED_TOKEN_TEXT = "Token expired. Generate a new token from your dashboard."
PLAN_INACTIVE_TEXT = "Your plan is inactive. Please renew your plan to receive alerts."
SUBSCRIBED_TEXT = "Subscribed successfully. Your alerts are now started."
STOPPED_TEXT = "Alerts stopped. You can start again with /startAlert <token>."

_MESSAGE_KEYS = ("message", "edited_message", "channel_post", "edited_channel_post")


def extract_message(update: Any) -> Optional[Dict[str, Any]]:
    """Return the message object carried by an update, if any."""
    if not isinstance(update, dict):
        return None
    for key in _MESSAGE_KEYS:
        message = update.get(key)
        if isinstance(message, dict):
            return message
    return None


class TelegramUpdateHandler:
    """
    PURPOSE: Apply one Telegram update to the subscriber store and reply.

    Attributes:
        _session_factory: Factory for the session used per update.
        _telegram: Client used for replies.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        telegram: Optional[TelegramClient] = None,
    ) -> None:
        self._session_factory = session_factory
        self._telegram: TelegramClient = telegram or TelegramClient()

    async def process_update(self, update: Any) -> Dict[str, Any]:
        """
        PURPOSE: Dispatch a bot command.

        Args:
            update: Raw Telegram update object.

        Returns:
            dict: {ok: True, action} for handled commands, {ok: True, ignored: True} otherwise.
        """
        message = extract_message(update)
        if message is None:
            return {"ok": True, "ignored": True}

        text = str(message.get("text") or "").strip()
        chat = message.get("chat") if isinstance(message.get("chat"), dict) else {}
        chat_id = chat.get("id")
        if not chat_id:
            return {"ok": True, "ignored": True}
        chat_id = str(chat_id)

        if text == "/start" or text.startswith("/start "):
            await self._reply(chat_id, HELP_TEXT)
            return {"ok": True, "action": "start_help"}

        if text.startswith("/startAlert"):
            action = await self._start_alert(chat_id, chat, text)
            return {"ok": True, "action": action}

        if text.startswith("/stopAlert"):
            async with self._session_factory() as session:
                await SubscriberService.deactivate(session, chat_id)
            await self._reply(chat_id, STOPPED_TEXT)
            return {"ok": True, "action": "stopped"}

        return {"ok": True, "ignored": True}

    async def _start_alert(self, chat_id: str, chat: Dict[str, Any], text: str) -> str:
        parts = text.split()
        token = parts[1] if len(parts) > 1 else ""
        if not token:
            await self._reply(chat_id, MISSING_TOKEN_TEXT)
            return "missing_token"

        async with self._session_factory() as session:
            record = await SubscriberService.find_token(session, token)
            if record is None:
                reply, action = INVALID_TOKEN_TEXT, "invalid_token"
            elif record.used_at is not None:
                reply, action = USED_TOKEN_TEXT, "token_used"
            elif record.expires_at is not None and record.expires_at <= to_naive_utc(get_utc_now()):
                reply, action = EXPIRED_TOKEN_TEXT, "token_expired"
            else:
                user = await UserService.get_user(session, record.user_id)
                if not is_plan_active(user):
                    reply, action = PLAN_INACTIVE_TEXT, "plan_inactive"
                else:
                    await SubscriberService.mark_token_used(session, record, chat_id)
                    await SubscriberService.upsert_subscriber(
                        session,
                        chat_id=chat_id,
                        user_id=user.id,
                        first_name=chat.get("first_name"),
                        username=chat.get("username"),
                    )
                    reply, action = SUBSCRIBED_TEXT, "subscribed"

        logger.info("telegram_start_alert", chat_id=chat_id, action=action)
        await self._reply(chat_id, reply)
        return action

    async def _reply(self, chat_id: str, text: str) -> None:
        await self._telegram.send_text(chat_id, text)
