"""
PURPOSE: Background processing of received Chartink webhook events.

The webhook route persists the event and responds immediately; this module
then runs the rest of the pipeline in a detached asyncio task per event:
signal alert, signal email and auto trades concurrently, then the trade
summary, then the aggregated debug document is written back to the event.

CALLED BY:
    - api/routes_webhook.py (POST /api/webhook/chartink, GET /api/webhook/status)
    - main.py lifespan (wait_idle on shutdown)
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradehook.config.constants import DEFAULT_PROVIDER, EventType
from tradehook.core.errors import EmailDeliveryError
from tradehook.events.bus import EventBus, get_event_bus
from tradehook.models.strategy import Strategy
from tradehook.notifications.email import EmailSender
from tradehook.notifications.fanout import NotificationFanout
from tradehook.notifications.telegram import format_alert_message, format_trade_summary
from tradehook.schemas.trade import TradeOutcome
from tradehook.services.event_service import EventService
from tradehook.services.user_service import UserService, is_plan_active
from tradehook.trading.dispatcher import TradeDispatcher
from tradehook.utils.logger import get_logger
from tradehook.utils.payload import normalize_string
from tradehook.utils.time_utils import get_utc_now, isoformat_utc

logger = get_logger("webhook.processor")

STRATEGY_DISABLED = "Strategy disabled"
TRADE_FAILED = "Market Maya trade failed"


def _trade_debug(outcome: TradeOutcome) -> Dict[str, Any]:
    """Project a TradeOutcome onto the marketMaya section of the debug document."""
    section: Dict[str, Any] = {
        "execute": outcome.execute,
        "ok": outcome.ok,
        "skipped": outcome.skipped,
        "total": outcome.total,
        "successCount": outcome.success_count,
        "failureCount": outcome.failure_count,
    }
    if outcome.error:
        section["error"] = outcome.error
    if not outcome.skipped:
        section["trades"] = [
            {
                "symbol": trade.symbol,
                "symbolCode": trade.symbol_code,
                "ok": trade.ok,
                "dryRun": trade.dry_run,
                "error": trade.error,
                "params": trade.params,
            }
            for trade in outcome.trades
        ]
    return section


class WebhookProcessor:
    """
    PURPOSE: Own the detached background task of every received webhook event.

    Attributes:
        _session_factory: Factory for the dedicated sessions used in the background.
        _dispatcher: Auto-trade dispatcher.
        _fanout: Telegram notification fan-out.
        _email: SMTP sender for the owner's signal email.
        _event_bus: Optional bus for lifecycle events (defaults to the global one).
        _tasks: Strong references to in-flight tasks.
        _total_received: Events scheduled since start.
        _total_processed: Events whose task finished (successfully or not).
        _last_event_at: ISO receive time of the most recent event.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: Optional[TradeDispatcher] = None,
        fanout: Optional[NotificationFanout] = None,
        email_sender: Optional[EmailSender] = None,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        """
        PURPOSE: Wire the processor to its collaborators.

        CALLED BY: Module-level singleton factory get_webhook_processor(), tests
        """
        self._session_factory = session_factory
        self._dispatcher: TradeDispatcher = dispatcher or TradeDispatcher(session_factory)
        self._fanout: NotificationFanout = fanout or NotificationFanout(session_factory)
        self._email: EmailSender = email_sender or EmailSender()
        self._event_bus: Optional[EventBus] = event_bus
        self._tasks: Set[asyncio.Task] = set()
        self._total_received: int = 0
        self._total_processed: int = 0
        self._last_event_at: Optional[str] = None

    # ════════════════════════════════════════════════════════════════
    # Public API
    # ════════════════════════════════════════════════════════════════

    def schedule(
        self,
        event_id: UUID,
        strategy: Strategy,
        payload: Any,
        received_at: datetime,
    ) -> asyncio.Task:
        """
        PURPOSE: Start background processing of one event without awaiting it.

        CALLED BY: POST /api/webhook/chartink, after the event is persisted

        Returns:
            asyncio.Task: The detached task (tests may await it).
        """
        self._total_received += 1
        self._last_event_at = isoformat_utc(received_at)
        task = asyncio.create_task(
            self._run(event_id, strategy, payload, received_at),
            name=f"webhook-event-{event_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def process_event(
        self,
        event_id: UUID,
        strategy: Strategy,
        payload: Any,
        received_at: datetime,
    ) -> Dict[str, Any]:
        """
        PURPOSE: Run notifications and auto trades for one event and record the result.

        Args:
            event_id: Persisted WebhookEvent id.
            strategy: Strategy the webhook key resolved to.
            payload: Normalized payload.
            received_at: Receive time of the webhook.

        Returns:
            dict: The debug document written to the event.
        """
        received_iso = isoformat_utc(received_at)
        await self._publish(EventType.WEBHOOK_RECEIVED, event_id, strategy, received_iso)

        debug: Dict[str, Any] = {
            "provider": DEFAULT_PROVIDER,
            "receivedAt": received_iso,
            "telegram": {"enabled": bool(strategy.telegram_enabled), "recipients": 0},
            "email": {},
            "marketMaya": {"enabled": bool(strategy.enabled)},
        }

        recipients: List[str] = []
        try:
            recipients = await self._fanout.collect_recipients(strategy)
        except Exception as e:
            logger.error("recipient_lookup_failed", event_id=str(event_id), error=str(e))
            debug["telegram"]["error"] = str(e)
        debug["telegram"]["recipients"] = len(recipients)

        outcome_holder: List[TradeOutcome] = []

        async def alert_round() -> None:
            try:
                text = format_alert_message(strategy.name, payload, received_iso)
                debug["telegram"]["alert"] = await self._fanout.send_text(recipients, text)
            except Exception as e:
                logger.error("alert_round_failed", event_id=str(event_id), error=str(e))
                debug["telegram"]["alert"] = {"error": str(e)}

        async def email_task() -> None:
            try:
                debug["email"] = await self._send_signal_email(strategy, payload, received_iso)
            except Exception as e:
                logger.error("signal_email_failed", event_id=str(event_id), error=str(e))
                debug["email"] = {"sent": False, "error": str(e)}

        async def trade_stage() -> None:
            if not strategy.enabled:
                debug["marketMaya"].update({"skipped": True, "reason": STRATEGY_DISABLED})
                return
            try:
                outcome = await self._dispatcher.execute_strategy_trades(strategy, payload, received_at)
            except Exception as e:
                logger.error("trade_stage_failed", event_id=str(event_id), error=str(e))
                debug["marketMaya"].update({"skipped": True, "error": str(e) or TRADE_FAILED})
                return
            outcome_holder.append(outcome)
            debug["marketMaya"].update(_trade_debug(outcome))

        await asyncio.gather(alert_round(), email_task(), trade_stage())

        if recipients and outcome_holder:
            try:
                summary = format_trade_summary(strategy.name, received_iso, outcome_holder[0])
                debug["telegram"]["summary"] = await self._fanout.send_text(recipients, summary)
            except Exception as e:
                logger.error("summary_round_failed", event_id=str(event_id), error=str(e))
                debug["telegram"]["summary"] = {"error": str(e)}

        await EventService.update_event(self._session_factory, event_id, debug, get_utc_now())
        await self._publish(EventType.WEBHOOK_PROCESSED, event_id, strategy, received_iso, debug)
        logger.info(
            "webhook_event_processed",
            event_id=str(event_id),
            strategy_id=str(strategy.id),
            recipients=len(recipients),
            trades=debug["marketMaya"].get("total", 0),
        )
        return debug

    def get_status(self) -> Dict[str, Any]:
        """
        PURPOSE: Return processor counters for the status endpoint.

        Returns:
            dict: total_received, total_processed, in_flight and last_event_at.
        """
        return {
            "total_received": self._total_received,
            "total_processed": self._total_processed,
            "in_flight": len(self._tasks),
            "last_event_at": self._last_event_at,
        }

    async def wait_idle(self) -> None:
        """Await every in-flight task, including ones scheduled while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ════════════════════════════════════════════════════════════════
    # Internals
    # ════════════════════════════════════════════════════════════════

    async def _run(self, event_id: UUID, strategy: Strategy, payload: Any, received_at: datetime) -> None:
        try:
            await self.process_event(event_id, strategy, payload, received_at)
        except Exception as e:
            logger.error("webhook_processing_failed", event_id=str(event_id), error=str(e))
        finally:
            self._total_processed += 1

    async def _send_signal_email(self, strategy: Strategy, payload: Any, received_iso: str) -> Dict[str, Any]:
        """Send the owner's signal email; every failure becomes a debug entry."""
        try:
            async with self._session_factory() as session:
                owner = await UserService.get_user(session, strategy.user_id)
        except Exception as e:
            logger.error("email_owner_lookup_failed", strategy_id=str(strategy.id), error=str(e))
            return {"sent": False, "error": str(e)}

        if owner is None or not is_plan_active(owner):
            return {"sent": False, "skipped": True, "reason": "plan_inactive"}
        if not owner.email:
            return {"sent": False, "skipped": True, "reason": "no_email"}
        if not self._email.configured:
            return {"sent": False, "skipped": True, "reason": "smtp_not_configured"}

        data = payload if isinstance(payload, dict) else {}
        try:
            await self._email.send_signal_email(
                to=owner.email,
                name=owner.name,
                strategy_name=strategy.name,
                alert_name=normalize_string(data.get("alert_name") or data.get("alertName")) or None,
                scan_name=normalize_string(data.get("scan_name") or data.get("scanName")) or None,
                stocks=normalize_string(data.get("stocks")) or None,
                received_at=received_iso,
            )
        except EmailDeliveryError as e:
            return {"sent": False, "error": str(e)}
        return {"sent": True}

    async def _publish(
        self,
        event_type: EventType,
        event_id: UUID,
        strategy: Strategy,
        received_iso: str,
        debug: Optional[Dict[str, Any]] = None,
    ) -> None:
        bus = self._event_bus or get_event_bus()
        data: Dict[str, Any] = {
            "event_id": str(event_id),
            "strategy_id": str(strategy.id),
            "user_id": str(strategy.user_id),
            "received_at": received_iso,
        }
        if debug is not None:
            data["debug"] = debug
        try:
            await bus.publish(event_type.value, data, source="webhook.processor")
        except Exception as e:
            logger.warning("event_publish_failed", event_type=event_type.value, error=str(e))


# ════════════════════════════════════════════════════════════════
# Module-level singleton
# ════════════════════════════════════════════════════════════════

_processor: Optional[WebhookProcessor] = None


def get_webhook_processor() -> WebhookProcessor:
    """
    PURPOSE: Return the module-level WebhookProcessor singleton, creating it on first call.

    CALLED BY: api/routes_webhook.py (FastAPI dependency), main.py lifespan

    Returns:
        WebhookProcessor: The shared processor instance.
    """
    global _processor
    if _processor is None:
        from tradehook.db.engine import AsyncSessionLocal

        _processor = WebhookProcessor(AsyncSessionLocal)
    return _processor
