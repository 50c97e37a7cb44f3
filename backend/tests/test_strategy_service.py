"""
PURPOSE: Tests for StrategyService and EventService.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from tradehook.core.errors import StrategyConfigError
from tradehook.models import WebhookEvent
from tradehook.schemas.strategy import BrokerConfig, StrategyCreate, StrategyUpdate
from tradehook.services.event_service import EventService
from tradehook.services.strategy_service import TOKEN_REQUIRED, StrategyService


T0 = datetime(2026, 3, 2, 4, 0, tzinfo=timezone.utc)


class TestStrategyLifecycle:
    """Test the enabled-needs-token invariant and key lookup."""

    @pytest.mark.asyncio
    async def test_enable_without_token_rejected(self, db_session, make_user):
        user = await make_user()
        data = StrategyCreate(name="Breakout", webhook_url="https://chartink.com/x", enabled=True)

        with pytest.raises(StrategyConfigError, match=TOKEN_REQUIRED):
            await StrategyService.create_strategy(db_session, user.id, data)

    @pytest.mark.asyncio
    async def test_separate_token_merged_into_config(self, db_session, make_user):
        user = await make_user()
        data = StrategyCreate(
            name="Breakout",
            webhook_url="https://chartink.com/x",
            enabled=True,
            marketmaya_token=" mm-token ",
        )

        strategy = await StrategyService.create_strategy(db_session, user.id, data)

        assert strategy.enabled is True
        assert strategy.marketmaya["token"] == "mm-token"
        assert len(strategy.webhook_key) >= 24
        found = await StrategyService.get_by_key(db_session, strategy.webhook_key)
        assert found.id == strategy.id

    @pytest.mark.asyncio
    async def test_unknown_key(self, db_session):
        assert await StrategyService.get_by_key(db_session, "missing") is None

    @pytest.mark.asyncio
    async def test_update_enable_requires_token(self, db_session, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(user)

        with pytest.raises(StrategyConfigError):
            await StrategyService.update_strategy(db_session, strategy.id, StrategyUpdate(enabled=True))

        updated = await StrategyService.update_strategy(
            db_session,
            strategy.id,
            StrategyUpdate(enabled=True, marketmaya=BrokerConfig(token="tok", exchange="nse")),
        )
        assert updated.enabled is True
        assert updated.marketmaya["exchange"] == "NSE"

    @pytest.mark.asyncio
    async def test_disable_always_allowed(self, db_session, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(user, enabled=True, marketmaya={"token": "tok"})

        updated = await StrategyService.update_strategy(db_session, strategy.id, StrategyUpdate(enabled=False))

        assert updated.enabled is False

    @pytest.mark.asyncio
    async def test_update_missing_strategy(self, db_session):
        with pytest.raises(LookupError):
            await StrategyService.update_strategy(db_session, uuid4(), StrategyUpdate(name="x"))

    @pytest.mark.asyncio
    async def test_delete_removes_events(self, db_session, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(user)
        await EventService.save_event(db_session, strategy, {"stocks": "SBIN"}, {}, T0)

        assert await StrategyService.delete_strategy(db_session, strategy.id) is True

        count = (await db_session.execute(select(func.count()).select_from(WebhookEvent))).scalar_one()
        assert count == 0
        assert await StrategyService.get_strategy(db_session, strategy.id) is None
        assert await StrategyService.delete_strategy(db_session, strategy.id) is False


class TestEventService:
    """Test the webhook event ledger."""

    @pytest.mark.asyncio
    async def test_save_snapshots_strategy(self, db_session, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(user, name="Momentum")

        event = await EventService.save_event(db_session, strategy, {"stocks": "SBIN"}, {"host": "x"}, T0)

        assert event.strategy_name == "Momentum"
        assert event.user_id == user.id
        assert event.provider == "chartink"
        assert event.received_at == T0.replace(tzinfo=None)
        assert event.debug is None
        assert event.processed_at is None

    @pytest.mark.asyncio
    async def test_update_records_debug(self, db_session, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(user)
        event = await EventService.save_event(db_session, strategy, {}, {}, T0)

        ok = await EventService.update_event(session_factory, event.id, {"telegram": {"sent": 0}}, T0)

        assert ok is True
        async with session_factory() as session:
            stored = await EventService.get_event(session, event.id)
        assert stored.debug == {"telegram": {"sent": 0}}
        assert stored.processed_at == T0.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_update_missing_event(self, session_factory):
        assert await EventService.update_event(session_factory, uuid4(), {}, T0) is False

    @pytest.mark.asyncio
    async def test_list_newest_first_with_filters(self, db_session, make_user, make_strategy):
        user = await make_user()
        other = await make_user()
        first = await make_strategy(user, name="A")
        second = await make_strategy(user, name="B")
        foreign = await make_strategy(other, name="C")
        await EventService.save_event(db_session, first, {}, {}, T0)
        await EventService.save_event(db_session, second, {}, {}, T0 + timedelta(minutes=1))
        await EventService.save_event(db_session, foreign, {}, {}, T0 + timedelta(minutes=2))

        mine = await EventService.list_events(db_session, user_id=user.id)
        assert [e.strategy_name for e in mine] == ["B", "A"]

        only_first = await EventService.list_events(db_session, strategy_id=first.id)
        assert [e.strategy_name for e in only_first] == ["A"]

        assert len(await EventService.list_events(db_session, limit=0)) == 1
