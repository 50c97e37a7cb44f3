"""
PURPOSE: Tests for strategy auto-trade dispatch.

The broker client is an AsyncMock; attempts are asserted in the database.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from tradehook.models.trade_attempt import TradeAttempt
from tradehook.trading.dispatcher import NO_SYMBOL_FOUND, TOKEN_NOT_CONFIGURED, TradeDispatcher
from tradehook.trading.gate import TradeGate

LIVE_OK = {"ok": True, "dryRun": False, "result": {"ok": True, "status": 200, "payload": {}}}


def _dispatcher(session_factory, response=None) -> tuple:
    client = AsyncMock()
    client.custom_trade = AsyncMock(return_value=response or LIVE_OK)
    return TradeDispatcher(session_factory, client=client, gate=TradeGate("Asia/Kolkata")), client


async def _attempts(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(TradeAttempt).order_by(TradeAttempt.created_at))
        return list(result.scalars().all())


class TestExecuteStrategyTrades:
    """Test TradeDispatcher.execute_strategy_trades."""

    @pytest.mark.asyncio
    async def test_missing_token_skips(self, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(user, enabled=True, marketmaya={})
        dispatcher, client = _dispatcher(session_factory)

        outcome = await dispatcher.execute_strategy_trades(strategy, {"stocks": "SBIN"})

        assert outcome.skipped
        assert outcome.error == TOKEN_NOT_CONFIGURED
        client.custom_trade.assert_not_awaited()
        assert await _attempts(session_factory) == []

    @pytest.mark.asyncio
    async def test_each_symbol_dispatched_and_recorded(self, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(
            user,
            enabled=True,
            marketmaya={"token": "tok", "symbolMode": "stocksAll", "qtyValue": "1"},
            marketmaya_url="https://broker.example",
        )
        dispatcher, client = _dispatcher(session_factory)

        outcome = await dispatcher.execute_strategy_trades(strategy, {"stocks": "sbin,tcs"})

        assert outcome.ok
        assert outcome.execute is True
        assert outcome.total == 2
        assert outcome.success_count == 2
        assert [t.symbol for t in outcome.trades] == ["SBIN", "TCS"]
        first_call = client.custom_trade.await_args_list[0]
        assert first_call.args[0] == "tok"
        assert first_call.args[1]["symbol"] == "SBIN"
        assert first_call.args[2] is True
        assert first_call.args[3] == "https://broker.example"

        attempts = await _attempts(session_factory)
        assert len(attempts) == 2
        assert all(a.execute and a.ok for a in attempts)
        assert {a.symbol for a in attempts} == {"SBIN", "TCS"}

    @pytest.mark.asyncio
    async def test_invalid_params_recorded_without_broker_call(self, session_factory, make_user, make_strategy):
        """A target whose derived params fail validation is recorded as a failure."""
        user = await make_user()
        strategy = await make_strategy(
            user,
            enabled=True,
            marketmaya={"token": "tok", "payloadMap": {"exchange": "exch"}},
        )
        dispatcher, client = _dispatcher(session_factory)

        outcome = await dispatcher.execute_strategy_trades(strategy, {"stocks": "SBIN", "exch": False})

        assert not outcome.ok
        assert outcome.failure_count == 1
        assert outcome.trades[0].error == "Auto trade skipped: exchange is required"
        client.custom_trade.assert_not_awaited()
        attempts = await _attempts(session_factory)
        assert len(attempts) == 1
        assert attempts[0].ok is False
        assert attempts[0].error == "Auto trade skipped: exchange is required"

    @pytest.mark.asyncio
    async def test_broker_failure_counted(self, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(user, enabled=True, marketmaya={"token": "tok"})
        rejected = {"ok": False, "dryRun": False, "status": 401, "error": "Invalid token"}
        dispatcher, _ = _dispatcher(session_factory, response=rejected)

        outcome = await dispatcher.execute_strategy_trades(strategy, {"stocks": "SBIN"})

        assert outcome.failure_count == 1
        assert outcome.trades[0].error == "Invalid token"

    @pytest.mark.asyncio
    async def test_quota_truncates_targets(self, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(
            user,
            enabled=True,
            marketmaya={"token": "tok", "symbolMode": "stocksAll", "dailyTradeLimit": 2},
        )
        dispatcher, client = _dispatcher(session_factory)

        first = await dispatcher.execute_strategy_trades(strategy, {"stocks": "A,B,C"})
        second = await dispatcher.execute_strategy_trades(strategy, {"stocks": "D"})

        assert first.total == 2
        assert second.skipped
        assert second.error == "Daily trade limit reached (2)"
        assert client.custom_trade.await_count == 2

    @pytest.mark.asyncio
    async def test_window_closed(self, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(
            user,
            enabled=True,
            marketmaya={"token": "tok", "tradeWindowStart": "09:15", "tradeWindowEnd": "15:30"},
        )
        dispatcher, client = _dispatcher(session_factory)
        # 11:00 UTC is 16:30 IST
        received_at = datetime(2024, 2, 19, 11, 0, tzinfo=timezone.utc)

        outcome = await dispatcher.execute_strategy_trades(strategy, {"stocks": "SBIN"}, received_at)

        assert outcome.skipped
        assert outcome.error == "Trade window closed (09:15-15:30)"
        client.custom_trade.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_symbol(self, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(user, enabled=True, marketmaya={"token": "tok"})
        dispatcher, _ = _dispatcher(session_factory)

        outcome = await dispatcher.execute_strategy_trades(strategy, {"alert_name": "Breakout"})

        assert outcome.skipped
        assert outcome.error == NO_SYMBOL_FOUND

    @pytest.mark.asyncio
    async def test_dry_run_config_previews(self, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(user, enabled=True, marketmaya={"token": "tok", "dryRun": True})
        preview = {"ok": True, "dryRun": True, "request": {}}
        dispatcher, client = _dispatcher(session_factory, response=preview)

        outcome = await dispatcher.execute_strategy_trades(strategy, {"symbol_code": "777"})

        assert outcome.execute is False
        assert outcome.trades[0].dry_run is True
        assert outcome.trades[0].symbol_code == "777"
        assert client.custom_trade.await_args.args[2] is False
        attempts = await _attempts(session_factory)
        assert attempts[0].execute is False

    @pytest.mark.asyncio
    async def test_mixed_valid_and_invalid_targets(self, session_factory, make_user, make_strategy, monkeypatch):
        """Only the target that fails validation is skipped; the other still trades."""
        user = await make_user()
        strategy = await make_strategy(
            user, enabled=True, marketmaya={"token": "tok", "symbolMode": "stocksAll"}
        )
        verdicts = iter([None, "call_type is required"])
        monkeypatch.setattr(
            "tradehook.trading.dispatcher.validate_minimum_params", lambda params: next(verdicts)
        )
        dispatcher, client = _dispatcher(session_factory)

        outcome = await dispatcher.execute_strategy_trades(strategy, {"stocks": "SBIN,TCS"})

        assert outcome.total == 2
        assert outcome.success_count == 1
        assert outcome.failure_count == 1
        assert outcome.trades[0].ok is True
        assert outcome.trades[1].error == "Auto trade skipped: call_type is required"
        client.custom_trade.assert_awaited_once()
        assert client.custom_trade.await_args.args[1]["symbol"] == "SBIN"

        attempts = {a.symbol: a for a in await _attempts(session_factory)}
        assert attempts["SBIN"].ok is True
        assert attempts["TCS"].ok is False
        assert attempts["TCS"].error == "Auto trade skipped: call_type is required"

    @pytest.mark.asyncio
    async def test_window_applies_to_dry_run(self, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(
            user,
            enabled=True,
            marketmaya={"token": "tok", "dryRun": True, "tradeWindowStart": "09:15", "tradeWindowEnd": "15:30"},
        )
        dispatcher, client = _dispatcher(session_factory)
        received_at = datetime(2024, 2, 19, 11, 0, tzinfo=timezone.utc)

        outcome = await dispatcher.execute_strategy_trades(strategy, {"stocks": "SBIN"}, received_at)

        assert outcome.skipped
        assert outcome.execute is False
        assert outcome.error == "Trade window closed (09:15-15:30)"
        client.custom_trade.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_quota_ignored_for_dry_run(self, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(
            user, enabled=True, marketmaya={"token": "tok", "dryRun": True, "dailyTradeLimit": 1}
        )
        preview = {"ok": True, "dryRun": True, "request": {}}
        dispatcher, client = _dispatcher(session_factory, response=preview)

        await dispatcher.execute_strategy_trades(strategy, {"stocks": "SBIN"})
        second = await dispatcher.execute_strategy_trades(strategy, {"stocks": "TCS"})

        assert not second.skipped
        assert client.custom_trade.await_count == 2

    @pytest.mark.asyncio
    async def test_malformed_stored_window_counts_as_unset(self, session_factory, make_user, make_strategy):
        user = await make_user()
        strategy = await make_strategy(
            user, enabled=True, marketmaya={"token": "tok", "tradeWindowStart": "9am", "tradeWindowEnd": "25:99"}
        )
        dispatcher, client = _dispatcher(session_factory)

        outcome = await dispatcher.execute_strategy_trades(strategy, {"stocks": "SBIN"})

        assert outcome.ok
        client.custom_trade.assert_awaited_once()
