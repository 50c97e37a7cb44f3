"""
PURPOSE: Tests for the Telegram /start, /startAlert and /stopAlert commands.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from tradehook.models.telegram import TelegramSubscriber, TelegramToken
from tradehook.notifications.telegram_updates import (
    EXPIRED_TOKEN_TEXT,
    HELP_TEXT,
    INVALID_TOKEN_TEXT,
    MISSING_TOKEN_TEXT,
    PLAN_INACTIVE_TEXT,
    STOPPED_TEXT,
    SUBSCRIBED_TEXT,
    USED_TOKEN_TEXT,
    TelegramUpdateHandler,
    extract_message,
)
from tradehook.services.subscriber_service import SubscriberService
from tradehook.utils.time_utils import get_utc_now, to_naive_utc


def _update(text: str, chat_id: int = 555) -> dict:
    return {"update_id": 1, "message": {"text": text, "chat": {"id": chat_id, "first_name": "Ann", "username": "ann"}}}


@pytest.fixture
def telegram():
    return AsyncMock()


@pytest.fixture
def handler(session_factory, telegram):
    return TelegramUpdateHandler(session_factory, telegram=telegram)


async def _token(session_factory, user, **overrides):
    async with session_factory() as session:
        record = await SubscriberService.create_token(session, user.id)
        for key, value in overrides.items():
            setattr(record, key, value)
        await session.commit()
        return record.token


class TestExtractMessage:
    """Test extract_message."""

    def test_channel_post(self):
        assert extract_message({"channel_post": {"text": "x"}}) == {"text": "x"}

    def test_no_message(self):
        assert extract_message({"callback_query": {}}) is None
        assert extract_message("nope") is None


class TestProcessUpdate:
    """Test TelegramUpdateHandler.process_update."""

    @pytest.mark.asyncio
    async def test_start_replies_help(self, handler, telegram):
        assert await handler.process_update(_update("/start")) == {"ok": True, "action": "start_help"}
        telegram.send_text.assert_awaited_once_with("555", HELP_TEXT)

    @pytest.mark.asyncio
    async def test_ignores_other_text(self, handler, telegram):
        assert await handler.process_update(_update("hello")) == {"ok": True, "ignored": True}
        assert await handler.process_update({"update_id": 2}) == {"ok": True, "ignored": True}
        telegram.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_token(self, handler, telegram):
        result = await handler.process_update(_update("/startAlert"))
        assert result["action"] == "missing_token"
        telegram.send_text.assert_awaited_once_with("555", MISSING_TOKEN_TEXT)

    @pytest.mark.asyncio
    async def test_invalid_token(self, handler, telegram):
        result = await handler.process_update(_update("/startAlert nope"))
        assert result["action"] == "invalid_token"
        telegram.send_text.assert_awaited_once_with("555", INVALID_TOKEN_TEXT)

    @pytest.mark.asyncio
    async def test_subscribes_and_consumes_token(self, handler, telegram, session_factory, make_user):
        user = await make_user()
        token = await _token(session_factory, user)

        result = await handler.process_update(_update(f"/startAlert {token}"))

        assert result["action"] == "subscribed"
        telegram.send_text.assert_awaited_once_with("555", SUBSCRIBED_TEXT)
        async with session_factory() as session:
            subscriber = (await session.execute(select(TelegramSubscriber))).scalar_one()
            record = (await session.execute(select(TelegramToken))).scalar_one()
        assert subscriber.chat_id == "555"
        assert subscriber.user_id == user.id
        assert subscriber.active is True
        assert subscriber.username == "ann"
        assert record.used_by_chat_id == "555"
        assert record.used_at is not None

    @pytest.mark.asyncio
    async def test_used_token(self, handler, telegram, session_factory, make_user):
        user = await make_user()
        token = await _token(session_factory, user, used_at=to_naive_utc(get_utc_now()))

        result = await handler.process_update(_update(f"/startAlert {token}"))

        assert result["action"] == "token_used"
        telegram.send_text.assert_awaited_once_with("555", USED_TOKEN_TEXT)

    @pytest.mark.asyncio
    async def test_expired_token(self, handler, telegram, session_factory, make_user):
        user = await make_user()
        token = await _token(session_factory, user, expires_at=to_naive_utc(get_utc_now() - timedelta(minutes=1)))

        result = await handler.process_update(_update(f"/startAlert {token}"))

        assert result["action"] == "token_expired"
        telegram.send_text.assert_awaited_once_with("555", EXPIRED_TOKEN_TEXT)

    @pytest.mark.asyncio
    async def test_inactive_plan(self, handler, telegram, session_factory, make_user):
        user = await make_user(plan_days=None)
        token = await _token(session_factory, user)

        result = await handler.process_update(_update(f"/startAlert {token}"))

        assert result["action"] == "plan_inactive"
        telegram.send_text.assert_awaited_once_with("555", PLAN_INACTIVE_TEXT)

    @pytest.mark.asyncio
    async def test_stop_alert_deactivates(self, handler, telegram, session_factory, make_user):
        user = await make_user()
        async with session_factory() as session:
            await SubscriberService.upsert_subscriber(session, chat_id="555", user_id=user.id)

        result = await handler.process_update(_update("/stopAlert"))

        assert result["action"] == "stopped"
        telegram.send_text.assert_awaited_once_with("555", STOPPED_TEXT)
        async with session_factory() as session:
            assert await SubscriberService.list_active_chat_ids(session, user.id) == []
