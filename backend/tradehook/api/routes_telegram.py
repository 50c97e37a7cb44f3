"""
PURPOSE: Telegram bot routes.

POST /telegram/webhook receives Bot API updates when the bot runs in webhook
mode. It always acknowledges with {"ok": true}; failures are logged so
Telegram does not redeliver the same update forever.

POST /telegram/token issues the one-time token a user sends with /startAlert
to link a chat; GET /telegram/token lists the user's recent tokens.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradehook.api.auth import api_key_auth
from tradehook.api.routes_webhook import get_telegram_sync, read_webhook_body
from tradehook.core.rate_limit import limiter, READ_LIMIT, WEBHOOK_LIMIT, WRITE_LIMIT
from tradehook.db.engine import AsyncSessionLocal, get_db
from tradehook.notifications.telegram_sync import TelegramSync
from tradehook.notifications.telegram_updates import TelegramUpdateHandler
from tradehook.schemas.telegram import TelegramTokenCreate, TelegramTokenEntry
from tradehook.services.subscriber_service import SubscriberService
from tradehook.services.user_service import UserService, is_plan_active
from tradehook.utils.logger import get_logger
from tradehook.utils.time_utils import isoformat_utc

logger = get_logger(__name__)

router = APIRouter(prefix="/telegram", tags=["telegram"])


def get_update_handler(request: Request) -> TelegramUpdateHandler:
    """Return the app's update handler, creating one on first use."""
    handler = getattr(request.app.state, "telegram_handler", None)
    if handler is None:
        handler = TelegramUpdateHandler(AsyncSessionLocal)
        request.app.state.telegram_handler = handler
    return handler


@router.post("/webhook")
@limiter.limit(WEBHOOK_LIMIT)
async def telegram_webhook(
    request: Request,
    handler: TelegramUpdateHandler = Depends(get_update_handler),
) -> Dict[str, Any]:
    """Apply one Telegram update."""
    update = await read_webhook_body(request)
    try:
        result = await handler.process_update(update)
        logger.debug("telegram_update_processed", **result)
    except Exception as e:
        logger.error("telegram_update_failed", error=str(e), exception_type=type(e).__name__)
    return {"ok": True}


@router.get("/status")
@limiter.limit(READ_LIMIT)
async def telegram_status(
    request: Request,
    telegram_sync: Optional[TelegramSync] = Depends(get_telegram_sync),
    _auth: str = Depends(api_key_auth),
) -> Dict[str, Any]:
    """Return polling/webhook mode and the last sync state."""
    if telegram_sync is None:
        return {"mode": None, "enabled": False, "active": False}
    return telegram_sync.get_status()


# ════════════════════════════════════════════════════════════════
# Link tokens
# ════════════════════════════════════════════════════════════════

@router.post("/token", status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
async def create_telegram_token(
    request: Request,
    body: TelegramTokenCreate,
    db: AsyncSession = Depends(get_db),
    _auth: str = Depends(api_key_auth),
) -> Dict[str, Any]:
    """
    PURPOSE: Issue a /startAlert link token for a user with an active plan.

    The token expires with the user's plan; admins without a plan expiry get
    the default token lifetime.

    Returns:
        dict: {"ok": True, "token": ..., "expiresAt": ...}
    """
    user = await UserService.get_user(db, body.user_id)
    if not is_plan_active(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Plan expired")

    record = await SubscriberService.create_token(db, user.id, expires_at=user.plan_expires_at)
    logger.info("telegram_token_issued", user_id=str(user.id))
    return {"ok": True, "token": record.token, "expiresAt": isoformat_utc(record.expires_at)}


@router.get("/token")
@limiter.limit(READ_LIMIT)
async def list_telegram_tokens(
    request: Request,
    user_id: UUID = Query(alias="userId"),
    db: AsyncSession = Depends(get_db),
    _auth: str = Depends(api_key_auth),
) -> Dict[str, Any]:
    """List the user's ten most recent link tokens, newest first."""
    records = await SubscriberService.list_tokens(db, user_id, limit=10)
    tokens = [
        TelegramTokenEntry.model_validate(record).model_dump(mode="json")
        for record in records
    ]
    return {"ok": True, "tokens": tokens}
