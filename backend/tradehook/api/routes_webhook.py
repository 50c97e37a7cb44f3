"""
PURPOSE: Chartink webhook API routes for tradehook.

Provides the public inbound endpoint Chartink posts scan alerts to, and
API-key protected endpoints to inspect stored events and processor status.

The POST /chartink endpoint cannot use the API key: Chartink only lets users
configure a URL. A strategy is identified by its opaque key (X-Strategy-Key
header or ?key=), and an optional global token (X-Webhook-Token or ?token=)
is checked when CHARTINK_WEBHOOK_TOKEN is set.

CALLED BY:
    - Chartink scan alert webhooks (POST, public)
    - Operators and dashboards (GET, X-API-Key)
"""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradehook.api.auth import api_key_auth
from tradehook.config.constants import MAX_BODY_SIZE
from tradehook.config.settings import settings
from tradehook.core.rate_limit import limiter, READ_LIMIT, WEBHOOK_LIMIT
from tradehook.db.engine import get_db
from tradehook.notifications.telegram_sync import TelegramSync
from tradehook.schemas.webhook import EventResponse, ProcessorStatus, WebhookAck
from tradehook.services.event_service import EventService
from tradehook.services.strategy_service import StrategyService
from tradehook.utils.logger import get_logger
from tradehook.utils.time_utils import get_utc_now, isoformat_utc
from tradehook.webhook.normalizer import normalize_payload, sanitize_headers
from tradehook.webhook.processor import WebhookProcessor, get_webhook_processor

logger = get_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


# ════════════════════════════════════════════════════════════════
# Internal Helpers
# ════════════════════════════════════════════════════════════════


def _validate_webhook_token(header_token: Optional[str], query_token: Optional[str]) -> None:
    """
    PURPOSE: Enforce the global webhook token when one is configured.

    Raises:
        HTTPException: 401 if CHARTINK_WEBHOOK_TOKEN is set and not matched.
    """
    expected = settings.CHARTINK_WEBHOOK_TOKEN
    if not expected:
        return
    provided = header_token or query_token
    if provided != expected:
        logger.warning("webhook_auth_failed", has_header=bool(header_token), has_query=bool(query_token))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def _parse_form(raw: str) -> Dict[str, Any]:
    """Decode a urlencoded body; repeated keys become lists."""
    parsed = parse_qs(raw, keep_blank_values=True)
    return {key: values[0] if len(values) == 1 else values for key, values in parsed.items()}


async def read_webhook_body(request: Request) -> Any:
    """
    PURPOSE: Read and decode a webhook body of any supported content type.

    JSON bodies must parse; form bodies are decoded; anything else is tried
    as JSON and otherwise wrapped as {"raw": text}.

    Raises:
        HTTPException: 413 when the body exceeds MAX_BODY_SIZE, 400 on invalid JSON.
    """
    chunks = bytearray()
    async for chunk in request.stream():
        chunks.extend(chunk)
        if len(chunks) > MAX_BODY_SIZE:
            raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Payload too large")

    raw = chunks.decode("utf-8", errors="replace")
    if not raw:
        return {}

    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    if "application/x-www-form-urlencoded" in content_type:
        return _parse_form(raw)

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return {"raw": raw}


def _raise_webhook_route_error(action: str, error: Exception) -> None:
    """
    PURPOSE: Raise a consistent HTTP 500 response for webhook route failures.

    CALLED BY: Route handlers on unexpected exceptions

    Raises:
        HTTPException: Always raises HTTP 500.
    """
    logger.error(
        "webhook_route_failed",
        action=action,
        error=str(error),
        exception_type=type(error).__name__,
    )
    raise HTTPException(
        status_code=500,
        detail=f"Failed to {action}",
    )


def get_telegram_sync(request: Request) -> Optional[TelegramSync]:
    """Return the app's TelegramSync, if the lifespan created one."""
    return getattr(request.app.state, "telegram_sync", None)


# ════════════════════════════════════════════════════════════════
# Public Inbound Endpoint
# ════════════════════════════════════════════════════════════════


@router.post("/chartink")
@limiter.limit(WEBHOOK_LIMIT)
async def chartink_webhook(
    request: Request,
    key: Optional[str] = Query(None),
    token: Optional[str] = Query(None),
    x_strategy_key: Optional[str] = Header(None, alias="X-Strategy-Key"),
    x_webhook_token: Optional[str] = Header(None, alias="X-Webhook-Token"),
    db: AsyncSession = Depends(get_db),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> Dict[str, Any]:
    """
    PURPOSE: Receive a Chartink alert, persist it and acknowledge immediately.

    On receipt the webhook is:
      1. Token-checked when CHARTINK_WEBHOOK_TOKEN is set (HTTP 401).
      2. Resolved to a strategy by key (HTTP 400 missing, 404 unknown).
      3. Parsed and normalized (HTTP 400 invalid JSON, 413 too large).
      4. Stored as a WebhookEvent.
      5. Acknowledged; notifications and trades run in the background.

    Rate limit: 120 requests/minute per IP address.

    Returns:
        dict: {"ok": true, "id": "<uuid>", "receivedAt": "<iso>"}
    """
    _validate_webhook_token(x_webhook_token, token)

    strategy_key = x_strategy_key or key
    if not strategy_key:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Strategy key is required")

    strategy = await StrategyService.get_by_key(db, strategy_key)
    if strategy is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Strategy not found")

    payload = normalize_payload(await read_webhook_body(request))
    received_at = get_utc_now()

    try:
        event = await EventService.save_event(
            db,
            strategy=strategy,
            payload=payload,
            headers=sanitize_headers(request.headers),
            received_at=received_at,
        )
    except Exception as e:
        _raise_webhook_route_error("store webhook event", e)

    logger.info("webhook_received", event_id=str(event.id), strategy_id=str(strategy.id))
    processor.schedule(event.id, strategy, payload, received_at)

    ack = WebhookAck(id=event.id, received_at=isoformat_utc(received_at))
    return ack.model_dump(mode="json", by_alias=True)


# ════════════════════════════════════════════════════════════════
# Authenticated Read Endpoints
# ════════════════════════════════════════════════════════════════


@router.get("/events", response_model=List[EventResponse])
@limiter.limit(READ_LIMIT)
async def list_webhook_events(
    request: Request,
    user_id: Optional[UUID] = Query(None),
    strategy_id: Optional[UUID] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    _auth: str = Depends(api_key_auth),
) -> List[EventResponse]:
    """
    PURPOSE: List stored webhook events, newest first.

    CALLED BY: Dashboards, operators debugging a strategy
    """
    try:
        events = await EventService.list_events(db, user_id=user_id, strategy_id=strategy_id, limit=limit)
        return [EventResponse.model_validate(event) for event in events]
    except Exception as e:
        _raise_webhook_route_error("list webhook events", e)


@router.get("/events/{event_id}", response_model=EventResponse)
@limiter.limit(READ_LIMIT)
async def get_webhook_event(
    request: Request,
    event_id: UUID,
    db: AsyncSession = Depends(get_db),
    _auth: str = Depends(api_key_auth),
) -> EventResponse:
    """
    PURPOSE: Return one event including its debug document.

    Raises:
        HTTP 404: Unknown event id.
    """
    event = await EventService.get_event(db, event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return EventResponse.model_validate(event)


@router.get("/status")
@limiter.limit(READ_LIMIT)
async def get_webhook_status(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
    telegram_sync: Optional[TelegramSync] = Depends(get_telegram_sync),
    _auth: str = Depends(api_key_auth),
) -> Dict[str, Any]:
    """
    PURPOSE: Return background processor counters and Telegram sync status.

    CALLED BY: Dashboards, operators
    """
    status_data = ProcessorStatus(**processor.get_status()).model_dump()
    status_data["telegram"] = telegram_sync.get_status() if telegram_sync else None
    status_data["webhook_url_hint"] = "/api/webhook/chartink?key=<strategy-key>"
    return status_data
