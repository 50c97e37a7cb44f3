"""
PURPOSE: Trade window and daily quota gating for strategy auto trades.

Windows are local "HH:mm" times in the configured trading timezone and may
wrap midnight. The daily quota counts live (execute=True) attempts recorded
for the strategy during the local calendar day.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradehook.config.settings import settings
from tradehook.models.trade_attempt import TradeAttempt
from tradehook.schemas.strategy import BrokerConfig
from tradehook.utils.logger import get_logger
from tradehook.utils.payload import normalize_string
from tradehook.utils.time_utils import local_day_range_utc, local_minutes, parse_hhmm

logger = get_logger("trading.gate")


@dataclass
class GateDecision:
    """
    Result of a gate check.

    Attributes:
        allowed: Whether trading may proceed.
        reason: Human-readable skip reason when not allowed.
        remaining: Remaining daily quota, None when no quota applies.
    """

    allowed: bool
    reason: Optional[str] = None
    remaining: Optional[int] = None


def describe_window(start: str, end: str) -> str:
    """Label a window as "X-Y", "from X" or "until Y"."""
    if start and end:
        return f"{start}-{end}"
    if start:
        return f"from {start}"
    if end:
        return f"until {end}"
    return ""


class TradeGate:
    """
    PURPOSE: Decide whether a strategy may trade right now.

    CALLED BY: TradeDispatcher.execute_strategy_trades

    Attributes:
        _tz_name: IANA timezone the window and trading day are evaluated in.
    """

    def __init__(self, tz_name: Optional[str] = None) -> None:
        self._tz_name: str = tz_name or settings.TRADE_TIMEZONE

    def check_window(self, moment: datetime, start: Optional[str], end: Optional[str]) -> GateDecision:
        """
        PURPOSE: Check moment against a local trade window.

        Args:
            moment: Signal receive time (aware, or naive UTC).
            start: Window start "HH:mm"; blank or malformed means unset.
            end: Window end "HH:mm"; blank or malformed means unset.

        Returns:
            GateDecision: allowed, or closed with "Trade window closed (...)".
        """
        start_raw = normalize_string(start)
        end_raw = normalize_string(end)
        start_min = parse_hhmm(start_raw)
        end_min = parse_hhmm(end_raw)
        if start_min is None and end_min is None:
            return GateDecision(allowed=True)

        now_min = local_minutes(moment, self._tz_name)
        if start_min is not None and end_min is not None:
            if start_min == end_min:
                allowed = True
            elif start_min < end_min:
                allowed = start_min <= now_min <= end_min
            else:
                # Overnight window
                allowed = now_min >= start_min or now_min <= end_min
        elif start_min is not None:
            allowed = now_min >= start_min
        else:
            allowed = now_min <= end_min

        if allowed:
            return GateDecision(allowed=True)
        label = describe_window(start_raw, end_raw)
        reason = f"Trade window closed ({label})" if label else "Trade window closed"
        return GateDecision(allowed=False, reason=reason)

    async def remaining_quota(
        self,
        session: AsyncSession,
        strategy_id: UUID,
        limit: int,
        moment: datetime,
    ) -> int:
        """
        PURPOSE: Return how many live trades the strategy may still place today.

        Args:
            session: Database session.
            strategy_id: Strategy whose attempts are counted.
            limit: Daily trade limit (> 0).
            moment: Signal receive time selecting the local day.

        Returns:
            int: max(limit - used, 0).
        """
        start, end = local_day_range_utc(moment, self._tz_name)
        stmt = (
            select(func.count())
            .select_from(TradeAttempt)
            .where(
                TradeAttempt.strategy_id == strategy_id,
                TradeAttempt.execute.is_(True),
                TradeAttempt.created_at >= start,
                TradeAttempt.created_at < end,
            )
        )
        used = (await session.execute(stmt)).scalar_one()
        return max(limit - int(used), 0)

    async def evaluate(
        self,
        session: AsyncSession,
        strategy_id: UUID,
        config: BrokerConfig,
        execute: bool,
        moment: datetime,
    ) -> GateDecision:
        """
        PURPOSE: Apply the window check, then the daily quota for live strategies.

        Returns:
            GateDecision: With `remaining` set when a quota applied.
        """
        if config.trade_window_start or config.trade_window_end:
            window = self.check_window(moment, config.trade_window_start, config.trade_window_end)
            if not window.allowed:
                return window

        limit = config.daily_trade_limit
        if not limit or limit <= 0 or not execute:
            return GateDecision(allowed=True)

        remaining = await self.remaining_quota(session, strategy_id, limit, moment)
        if remaining <= 0:
            logger.info("daily_trade_limit_reached", strategy_id=str(strategy_id), limit=limit)
            return GateDecision(
                allowed=False,
                reason=f"Daily trade limit reached ({limit})",
                remaining=0,
            )
        return GateDecision(allowed=True, remaining=remaining)
