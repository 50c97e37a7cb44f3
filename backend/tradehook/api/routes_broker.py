"""
PURPOSE: Manual Market Maya broker routes.

Lets an operator place (or preview) a custom trade and query call history
and symbol positions. All routes require the X-API-Key header.

A live manual trade can notify a user's Telegram subscribers; delivery runs
after the response is sent and never affects it.
"""

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from tradehook.api.auth import api_key_auth
from tradehook.core.errors import TradeParamError
from tradehook.core.rate_limit import limiter, WRITE_LIMIT
from tradehook.db.engine import AsyncSessionLocal
from tradehook.notifications.fanout import NotificationFanout
from tradehook.notifications.telegram import format_manual_trade
from tradehook.schemas.trade import BrokerQueryRequest, ManualTradeRequest
from tradehook.trading.broker import MarketMayaClient
from tradehook.trading.params import normalize_manual_params, validate_manual_params
from tradehook.utils.logger import get_logger
from tradehook.utils.payload import is_truthy
from tradehook.utils.time_utils import get_utc_now, isoformat_utc

logger = get_logger(__name__)

router = APIRouter(prefix="/broker", tags=["broker"])

MANUAL_TRADE_TITLE = "MANUAL TRADE"


def get_broker_client() -> MarketMayaClient:
    """FastAPI dependency returning a broker client; overridden in tests."""
    return MarketMayaClient()


def get_notification_fanout() -> NotificationFanout:
    """FastAPI dependency returning the fan-out used for manual trade notices."""
    return NotificationFanout(AsyncSessionLocal)


def _raise_on_preview_error(result: Dict[str, Any]) -> None:
    """A failed dry-run carrying an error is a client error."""
    if not result.get("ok") and result.get("dryRun") and result.get("error"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result["error"])


async def _notify_manual_trade(fanout: NotificationFanout, user_id: UUID, text: str) -> None:
    try:
        await fanout.notify_user(user_id, text)
    except Exception as e:
        logger.warning("manual_trade_notify_failed", user_id=str(user_id), error=str(e))


@router.post("/trade")
@limiter.limit(WRITE_LIMIT)
async def manual_trade(
    request: Request,
    body: ManualTradeRequest,
    background_tasks: BackgroundTasks,
    client: MarketMayaClient = Depends(get_broker_client),
    fanout: NotificationFanout = Depends(get_notification_fanout),
    _auth: str = Depends(api_key_auth),
) -> Dict[str, Any]:
    """
    PURPOSE: Place or preview a custom trade.

    The trade is previewed unless execute is truthy. Parameters are
    normalized and validated before anything reaches the broker.

    Raises:
        HTTP 400: Invalid parameters, or a failed preview.
    """
    params = normalize_manual_params(body.trade_params())
    try:
        validate_manual_params(params)
    except TradeParamError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    result = await client.custom_trade(body.token, params, body.execute, body.base_url)
    _raise_on_preview_error(result)

    logger.info(
        "manual_trade",
        ok=result.get("ok"),
        dry_run=result.get("dryRun"),
        segment=params.get("segment"),
    )

    if body.notify_user_id and is_truthy(body.execute) and not result.get("dryRun"):
        try:
            user_id = UUID(str(body.notify_user_id))
        except ValueError:
            logger.warning("manual_trade_notify_invalid_user", user_id=body.notify_user_id)
        else:
            text = format_manual_trade(
                MANUAL_TRADE_TITLE, params, result, isoformat_utc(get_utc_now())
            )
            background_tasks.add_task(_notify_manual_trade, fanout, user_id, text)

    return result


@router.post("/call-history")
@limiter.limit(WRITE_LIMIT)
async def call_history(
    request: Request,
    body: BrokerQueryRequest,
    client: MarketMayaClient = Depends(get_broker_client),
    _auth: str = Depends(api_key_auth),
) -> Dict[str, Any]:
    """Fetch Market Maya call history; executes unless execute is falsy."""
    result = await client.get_call_history(body.token, body.execute, body.base_url)
    _raise_on_preview_error(result)
    return result


@router.post("/symbol-position")
@limiter.limit(WRITE_LIMIT)
async def symbol_position(
    request: Request,
    body: BrokerQueryRequest,
    client: MarketMayaClient = Depends(get_broker_client),
    _auth: str = Depends(api_key_auth),
) -> Dict[str, Any]:
    """Fetch Market Maya symbol positions; executes unless execute is falsy."""
    result = await client.get_symbol_position(body.token, body.execute, body.base_url)
    _raise_on_preview_error(result)
    return result
