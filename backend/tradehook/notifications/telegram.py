"""
PURPOSE: Telegram Bot API client and message formatting.

Formats the signal alert and trade summary texts and delivers them through
the Bot API. A rejected message raises TelegramDeliveryError so the
fan-out can count it as a failure.

CALLED BY:
    - notifications/fanout.py
    - notifications/telegram_sync.py (getUpdates / setWebhook / deleteWebhook)
    - notifications/telegram_updates.py (command replies)
"""

from typing import Any, Dict, List, Mapping, Optional

import httpx

from tradehook.config.constants import SUMMARY_SYMBOL_LIMIT
from tradehook.config.settings import settings
from tradehook.core.errors import TelegramDeliveryError
from tradehook.schemas.trade import TradeOutcome
from tradehook.utils.logger import get_logger
from tradehook.utils.payload import normalize_string, split_symbols

logger = get_logger("notifications.telegram")

HTTP_TIMEOUT = 15.0


# ════════════════════════════════════════════════════════════════
# Message formatting
# ════════════════════════════════════════════════════════════════


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value:
            return value
    return None


def format_alert_message(strategy_name: str, payload: Any, received_at: str) -> str:
    """
    PURPOSE: Build the signal alert text sent to every recipient.

    Args:
        strategy_name: Strategy that received the signal.
        payload: Normalized webhook payload.
        received_at: ISO receive time.

    Returns:
        str: Multi-line alert text.
    """
    data = payload if isinstance(payload, Mapping) else {}
    alert_name = normalize_string(_first(data, "alert_name", "alertName")) or "Alert"
    scan_name = normalize_string(_first(data, "scan_name", "scanName")) or "Chartink"
    triggered_at = normalize_string(_first(data, "triggered_at", "triggeredAt"))
    stock_count = len(split_symbols(data.get("stocks")))

    lines = [
        f"ALERT: {alert_name}",
        f"Strategy: {strategy_name}",
        f"Scan: {scan_name}",
    ]
    if triggered_at:
        lines.append(f"Triggered: {triggered_at}")
    if stock_count:
        lines.append(f"Stocks: {stock_count}")
    lines.append(f"Received: {received_at}")
    return "\n".join(lines)


def format_trade_summary(strategy_name: str, received_at: str, outcome: TradeOutcome) -> str:
    """
    PURPOSE: Build the post-trade summary text.

    Args:
        strategy_name: Strategy that traded.
        received_at: ISO receive time of the signal.
        outcome: Aggregate trade outcome.

    Returns:
        str: Mode, status or symbols/result lines, and the receive time.
    """
    mode = "LIVE" if outcome.execute else "DRY-RUN"
    lines = [f"TRADE: {strategy_name}", f"Mode: {mode}"]

    if outcome.skipped:
        lines.append("Status: SKIPPED")
        if outcome.error:
            lines.append(f"Reason: {outcome.error}")
        lines.append(f"Received: {received_at}")
        return "\n".join(lines)

    unique: List[str] = []
    for trade in outcome.trades:
        symbol = trade.symbol or trade.symbol_code
        if symbol and symbol not in unique:
            unique.append(symbol)
    if unique:
        shown = ", ".join(unique[:SUMMARY_SYMBOL_LIMIT])
        extra = len(unique) - SUMMARY_SYMBOL_LIMIT
        lines.append(f"Symbols: {shown}{f' +{extra} more' if extra > 0 else ''}")

    lines.append(f"Result: {outcome.success_count} ok / {outcome.failure_count} failed")
    if outcome.failure_count > 0:
        first_error = next((t.error for t in outcome.trades if not t.ok and t.error), None)
        if first_error:
            lines.append(f"Error: {first_error}")

    lines.append(f"Received: {received_at}")
    return "\n".join(lines)


def format_manual_trade(title: str, params: Mapping[str, Any], result: Mapping[str, Any], sent_at: str) -> str:
    """Build the notification text for a manually placed trade."""
    exchange = str(params.get("exchange") or "").strip().upper()
    segment = str(params.get("segment") or "").strip().upper()
    call_type = str(params.get("call_type") or "").strip().upper()
    symbol = str(params.get("symbol") or "").strip() or str(params.get("symbol_code") or "").strip()

    lines = [f"{title}: {call_type or 'TRADE'} {symbol}".strip()]
    if exchange or segment:
        lines.append("Market: " + " · ".join(part for part in (exchange, segment) if part))
    lines.append(f"Mode: {'DRY-RUN' if result.get('dryRun') else 'LIVE'}")
    lines.append(f"Status: {'SUCCESS' if result.get('ok') else 'FAILED'}")
    if not result.get("ok") and result.get("error"):
        lines.append(f"Error: {result['error']}")
    lines.append(f"Time: {sent_at}")
    return "\n".join(lines)


# ════════════════════════════════════════════════════════════════
# Bot API client
# ════════════════════════════════════════════════════════════════


class TelegramClient:
    """
    PURPOSE: Minimal async Telegram Bot API client.

    Attributes:
        _bot_token: Bot token; empty disables delivery.
        _api_url: Bot API base URL.
        _transport: Optional httpx transport (tests inject httpx.MockTransport).
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._bot_token: str = (settings.TELEGRAM_BOT_TOKEN if bot_token is None else bot_token).strip()
        self._api_url: str = (api_url or settings.TELEGRAM_API_URL).rstrip("/")
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._bot_token)

    async def send_text(self, chat_id: str, text: str) -> None:
        """
        PURPOSE: Send a plain-text message to a chat.

        Raises:
            TelegramDeliveryError: If the bot is not configured or the API rejects the message.
        """
        if not self._bot_token:
            raise TelegramDeliveryError("TELEGRAM_BOT_TOKEN is not set")
        await self._call("sendMessage", {"chat_id": str(chat_id), "text": text})

    async def get_updates(self, offset: Optional[int], timeout: int) -> List[Dict[str, Any]]:
        """Long-poll for updates after offset."""
        body: Dict[str, Any] = {"timeout": timeout}
        if offset is not None:
            body["offset"] = offset
        data = await self._call("getUpdates", body, request_timeout=timeout + 10)
        result = data.get("result")
        return result if isinstance(result, list) else []

    async def set_webhook(self, url: str) -> Dict[str, Any]:
        return await self._call("setWebhook", {"url": url})

    async def delete_webhook(self) -> Dict[str, Any]:
        return await self._call("deleteWebhook", {"drop_pending_updates": False})

    async def _call(
        self,
        method: str,
        body: Dict[str, Any],
        request_timeout: float = HTTP_TIMEOUT,
    ) -> Dict[str, Any]:
        url = f"{self._api_url}/bot{self._bot_token}/{method}"
        try:
            async with httpx.AsyncClient(timeout=request_timeout, transport=self._transport) as client:
                response = await client.post(url, json=body)
        except httpx.HTTPError as e:
            raise TelegramDeliveryError(f"Telegram {method} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {"description": response.text}

        if not response.is_success or (isinstance(data, dict) and data.get("ok") is False):
            description = data.get("description") if isinstance(data, dict) else None
            logger.warning("telegram_api_rejected", method=method, status=response.status_code)
            raise TelegramDeliveryError(description or "Telegram send failed")
        return data if isinstance(data, dict) else {}
