"""
PURPOSE: Execute a strategy's auto trades for one webhook signal.

Resolves the token, applies the trade gate, resolves targets, then derives,
validates and dispatches each target sequentially. Every target leaves a
TradeAttempt audit record, including the ones that never reached the broker.

CALLED BY:
    - webhook/processor.py (trade stage of background processing)
"""

from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradehook.models.strategy import Strategy
from tradehook.models.trade_attempt import TradeAttempt
from tradehook.schemas.strategy import BrokerConfig
from tradehook.schemas.trade import TradeEntry, TradeOutcome, TradeTarget
from tradehook.trading.broker import DEFAULT_ERROR, MarketMayaClient, resolve_token
from tradehook.trading.gate import TradeGate
from tradehook.trading.params import derive_trade_params, validate_minimum_params
from tradehook.trading.symbols import resolve_targets
from tradehook.utils.logger import get_logger
from tradehook.utils.payload import normalize_string
from tradehook.utils.time_utils import get_utc_now, to_naive_utc

logger = get_logger("trading.dispatcher")

TOKEN_NOT_CONFIGURED = "Market Maya token is not configured (strategy or env)"
NO_SYMBOL_FOUND = "No symbol found in webhook payload (symbol/symbol_code/stocks)"


class TradeDispatcher:
    """
    PURPOSE: Turn one signal into zero or more broker trade attempts.

    Attributes:
        _session_factory: Factory for the short-lived sessions used per write.
        _client: Market Maya client.
        _gate: Trade window / quota gate.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: Optional[MarketMayaClient] = None,
        gate: Optional[TradeGate] = None,
    ) -> None:
        self._session_factory = session_factory
        self._client: MarketMayaClient = client or MarketMayaClient()
        self._gate: TradeGate = gate or TradeGate()

    async def execute_strategy_trades(
        self,
        strategy: Strategy,
        payload: Mapping[str, Any],
        received_at: Optional[datetime] = None,
    ) -> TradeOutcome:
        """
        PURPOSE: Run the full auto-trade round for a strategy.

        Args:
            strategy: Strategy that received the signal.
            payload: Normalized webhook payload.
            received_at: Signal receive time; defaults to now.

        Returns:
            TradeOutcome: Skipped with a reason, or per-target results with counts.
        """
        config = BrokerConfig.from_strategy_json(strategy.marketmaya)
        execute = bool(strategy.enabled) and not config.dry_run
        moment = received_at or get_utc_now()
        base_url = normalize_string(strategy.marketmaya_url) or None

        token = resolve_token(config.token)
        if not token:
            return TradeOutcome.skip(execute, TOKEN_NOT_CONFIGURED)

        async with self._session_factory() as session:
            decision = await self._gate.evaluate(session, strategy.id, config, execute, moment)
        if not decision.allowed:
            return TradeOutcome.skip(execute, decision.reason or "Trade gate closed")

        targets = resolve_targets(payload if isinstance(payload, Mapping) else {}, config, decision.remaining)
        if not targets:
            return TradeOutcome.skip(execute, NO_SYMBOL_FOUND)

        trades = []
        for target in targets:
            params = derive_trade_params(config, payload, target)
            min_error = validate_minimum_params(params)
            if min_error:
                error = f"Auto trade skipped: {min_error}"
                entry = TradeEntry(
                    symbol=target.symbol,
                    symbol_code=target.symbol_code,
                    ok=False,
                    dry_run=not execute,
                    error=error,
                    params=params,
                )
                response = entry.model_dump(by_alias=True, exclude={"response"})
            else:
                response = await self._client.custom_trade(token, params, execute, base_url)
                entry = TradeEntry(
                    symbol=target.symbol,
                    symbol_code=target.symbol_code,
                    ok=bool(response.get("ok")),
                    dry_run=bool(response.get("dryRun", not execute)),
                    error=None if response.get("ok") else response.get("error") or DEFAULT_ERROR,
                    params=params,
                    response=response,
                )
            trades.append(entry)
            await self._record_attempt(strategy, target, execute, moment, params, response, entry)

        success_count = sum(1 for trade in trades if trade.ok)
        failure_count = len(trades) - success_count
        logger.info(
            "strategy_trades_dispatched",
            strategy_id=str(strategy.id),
            execute=execute,
            total=len(trades),
            success_count=success_count,
            failure_count=failure_count,
        )
        return TradeOutcome(
            ok=failure_count == 0,
            skipped=False,
            execute=execute,
            total=len(trades),
            success_count=success_count,
            failure_count=failure_count,
            trades=trades,
        )

    async def _record_attempt(
        self,
        strategy: Strategy,
        target: TradeTarget,
        execute: bool,
        received_at: datetime,
        params: Dict[str, Any],
        response: Dict[str, Any],
        entry: TradeEntry,
    ) -> None:
        """Persist one TradeAttempt in its own session; failures are logged only."""
        try:
            async with self._session_factory() as session:
                session.add(
                    TradeAttempt(
                        user_id=strategy.user_id,
                        strategy_id=strategy.id,
                        strategy_name=strategy.name or "",
                        received_at=to_naive_utc(received_at),
                        created_at=to_naive_utc(get_utc_now()),
                        execute=execute,
                        symbol=target.symbol,
                        symbol_code=target.symbol_code,
                        params=params,
                        response=response,
                        ok=entry.ok,
                        error=entry.error,
                    )
                )
                await session.commit()
        except Exception as e:
            logger.error(
                "trade_attempt_persist_failed",
                strategy_id=str(strategy.id),
                symbol=target.symbol or target.symbol_code,
                error=str(e),
            )
