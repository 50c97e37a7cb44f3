"""
PURPOSE: Keep the Telegram bot connected in exactly one mode.

At startup the mode is chosen once: long polling when TELEGRAM_POLLING is on
and a bot token exists, otherwise registering the public webhook URL with
the Bot API. The instance is created in the app lifespan and owns the
polling task.

CALLED BY:
    - main.py lifespan (start/stop)
    - api/routes_telegram.py, api/routes_webhook.py (get_status)
"""

import asyncio
import re
from typing import Any, Dict, Optional

from tradehook.config.settings import settings
from tradehook.notifications.telegram import TelegramClient
from tradehook.notifications.telegram_updates import TelegramUpdateHandler
from tradehook.utils.logger import get_logger
from tradehook.utils.time_utils import get_utc_now, isoformat_utc

logger = get_logger("notifications.telegram_sync")

POLL_TIMEOUT_SECONDS = 25
POLL_ERROR_BACKOFF_SECONDS = 3.0
WEBHOOK_PATH = "/api/telegram/webhook"

_LOCAL_URL_RE = re.compile(r"localhost|127\.0\.0\.1", re.IGNORECASE)


def resolve_webhook_url(explicit: Optional[str] = None, public_base_url: Optional[str] = None) -> str:
    """Return TELEGRAM_WEBHOOK_URL, else PUBLIC_BASE_URL + the webhook path, else ""."""
    url = (settings.TELEGRAM_WEBHOOK_URL if explicit is None else explicit).strip()
    if url:
        return url
    base = (settings.PUBLIC_BASE_URL if public_base_url is None else public_base_url).strip()
    if not base:
        return ""
    return f"{base.rstrip('/')}{WEBHOOK_PATH}"


class TelegramSync:
    """
    PURPOSE: Own the Telegram polling loop or the webhook registration.

    Attributes:
        _telegram: Bot API client.
        _handler: Update handler used in polling mode.
        _polling_enabled: Whether polling mode was requested.
        _task: Running polling task, if any.
        _last_update_id: Highest update id seen.
        _last_poll_at: ISO time of the last completed poll.
        _last_error: Last polling or webhook error.
        _webhook_result: Outcome of the webhook sync in webhook mode.
    """

    def __init__(
        self,
        telegram: TelegramClient,
        handler: TelegramUpdateHandler,
        polling: Optional[bool] = None,
        webhook_url: Optional[str] = None,
    ) -> None:
        self._telegram = telegram
        self._handler = handler
        self._polling_enabled: bool = settings.TELEGRAM_POLLING if polling is None else polling
        self._webhook_url: str = resolve_webhook_url() if webhook_url is None else webhook_url
        self._task: Optional[asyncio.Task] = None
        self._running: bool = False
        self._last_update_id: int = 0
        self._last_poll_at: Optional[str] = None
        self._last_error: Optional[str] = None
        self._webhook_result: Optional[Dict[str, Any]] = None

    @property
    def mode(self) -> str:
        return "polling" if self._polling_enabled and self._telegram.configured else "webhook"

    # ════════════════════════════════════════════════════════════════
    # Lifecycle
    # ════════════════════════════════════════════════════════════════

    async def start(self) -> None:
        """Start polling or sync the webhook, depending on the configured mode."""
        if self.mode == "polling":
            if self._task is not None:
                return
            self._running = True
            self._task = asyncio.create_task(self._poll_loop(), name="telegram-polling")
            logger.info("telegram_polling_started")
            return

        self._webhook_result = await self.sync_webhook()
        logger.info("telegram_webhook_sync", **self._webhook_result)

    async def stop(self) -> None:
        """Stop the polling loop, if running."""
        self._running = False
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("telegram_polling_stopped")

    async def sync_webhook(self) -> Dict[str, Any]:
        """
        PURPOSE: Register the public webhook URL with the Bot API.

        Returns:
            dict: {ok: True, url}, {ok: False, skipped: reason} or {ok: False, error}.
        """
        if self._polling_enabled:
            return {"ok": False, "skipped": "polling_enabled"}
        if not self._telegram.configured:
            return {"ok": False, "skipped": "no_token"}
        url = self._webhook_url
        if not url:
            return {"ok": False, "skipped": "no_url"}
        if _LOCAL_URL_RE.search(url):
            return {"ok": False, "skipped": "local_url"}
        try:
            await self._telegram.set_webhook(url)
        except Exception as e:
            self._last_error = str(e)
            return {"ok": False, "error": str(e) or "Failed to set webhook"}
        return {"ok": True, "url": url}

    def get_status(self) -> Dict[str, Any]:
        """Return the polling/webhook status for the status endpoints."""
        return {
            "mode": self.mode,
            "enabled": self._polling_enabled,
            "active": self._task is not None and not self._task.done(),
            "lastPollAt": self._last_poll_at,
            "lastError": self._last_error,
            "lastUpdateId": self._last_update_id,
            "webhook": self._webhook_result,
        }

    # ════════════════════════════════════════════════════════════════
    # Polling
    # ════════════════════════════════════════════════════════════════

    async def poll_once(self) -> int:
        """
        PURPOSE: Fetch and handle one batch of updates.

        Returns:
            int: Number of updates handled.
        """
        updates = await self._telegram.get_updates(self._last_update_id + 1, POLL_TIMEOUT_SECONDS)
        self._last_poll_at = isoformat_utc(get_utc_now())
        for update in updates:
            update_id = update.get("update_id") if isinstance(update, dict) else None
            if isinstance(update_id, int):
                self._last_update_id = update_id
            try:
                await self._handler.process_update(update)
            except Exception as e:
                logger.warning("telegram_update_failed", update_id=update_id, error=str(e))
        self._last_error = None
        return len(updates)

    async def _poll_loop(self) -> None:
        try:
            await self._telegram.delete_webhook()
        except Exception as e:
            logger.warning("telegram_delete_webhook_failed", error=str(e))

        while self._running:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._last_error = str(e) or "Polling error"
                logger.warning("telegram_poll_failed", error=self._last_error)
                await asyncio.sleep(POLL_ERROR_BACKOFF_SECONDS)
