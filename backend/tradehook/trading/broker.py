"""
PURPOSE: Async HTTP client for the Market Maya custom-trade REST API.

All calls are GET requests with the token and parameters in the query
string. When not executing, the client returns a preview of the request it
would have sent instead of touching the network.

CALLED BY:
    - trading/dispatcher.py (auto trades)
    - api/routes_broker.py (manual trades, call history, symbol position)
"""

import json
from typing import Any, Dict, Mapping, Optional

import httpx

from tradehook.config.constants import (
    MARKETMAYA_CALL_HISTORY_PATH,
    MARKETMAYA_SYMBOL_POSITION_PATH,
    MARKETMAYA_TRADE_PATH,
)
from tradehook.config.settings import settings
from tradehook.utils.logger import get_logger
from tradehook.utils.payload import is_truthy, normalize_string

logger = get_logger("trading.broker")

DEFAULT_BASE_URL = "https://restapi.marketmaya.com"
DEFAULT_ERROR = "Market Maya request failed"
TOKEN_MISSING_ERROR = "MARKETMAYA_TOKEN is not set"

_ERROR_KEYS = ("message", "error", "description", "msg", "detail")


def _strip_slash(value: Any) -> str:
    text = normalize_string(value)
    return text[:-1] if text.endswith("/") else text


def resolve_base_url(override: Optional[str] = None) -> str:
    """Resolve the broker base URL: override, then MARKETMAYA_BASE_URL, then the default."""
    return _strip_slash(override) or _strip_slash(settings.MARKETMAYA_BASE_URL) or DEFAULT_BASE_URL


def resolve_token(token: Optional[str] = None) -> Optional[str]:
    """Return the strategy token, falling back to MARKETMAYA_TOKEN, or None."""
    return normalize_string(token) or normalize_string(settings.MARKETMAYA_TOKEN) or None


def clean_params(params: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """
    PURPOSE: Convert derived params to query-string values.

    None, blank strings, NaN and False are dropped; True becomes "true";
    everything else is stringified (strings are stripped).
    """
    cleaned: Dict[str, str] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            if value:
                cleaned[key] = "true"
            continue
        if isinstance(value, str):
            trimmed = value.strip()
            if trimmed:
                cleaned[key] = trimmed
            continue
        if isinstance(value, float):
            if value != value:
                continue
            cleaned[key] = str(int(value)) if value.is_integer() else str(value)
            continue
        cleaned[key] = str(value)
    return cleaned


def extract_error_message(payload: Any) -> str:
    """Pick a human-readable error out of a broker response body."""
    if not payload:
        return DEFAULT_ERROR
    if isinstance(payload, str):
        return payload
    if not isinstance(payload, dict):
        return str(payload)
    for key in _ERROR_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    try:
        return json.dumps(payload)
    except (TypeError, ValueError):
        return DEFAULT_ERROR


class MarketMayaClient:
    """
    PURPOSE: Thin async client over the Market Maya REST endpoints.

    Attributes:
        _timeout: Request timeout in seconds.
        _transport: Optional httpx transport (tests inject httpx.MockTransport).
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout: float = timeout if timeout is not None else settings.broker_timeout_seconds()
        self._transport = transport

    # ════════════════════════════════════════════════════════════════
    # Public API
    # ════════════════════════════════════════════════════════════════

    async def custom_trade(
        self,
        token: Optional[str],
        params: Mapping[str, Any],
        execute: Any,
        base_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        PURPOSE: Place (or preview) a custom trade.

        Args:
            token: Strategy/request token; MARKETMAYA_TOKEN is the fallback.
            params: Derived trade parameters.
            execute: Truthy to send a live order, otherwise preview only.
            base_url: Optional per-strategy base URL override.

        Returns:
            dict: {ok, dryRun, request} preview, or {ok, dryRun, status?, error?, result}.
        """
        resolved = resolve_token(token)
        if not resolved:
            return {"ok": False, "dryRun": True, "error": TOKEN_MISSING_ERROR}
        if not is_truthy(execute):
            return self._preview(MARKETMAYA_TRADE_PATH, resolved, params, base_url)
        return await self._send(MARKETMAYA_TRADE_PATH, resolved, params, base_url)

    async def get_call_history(
        self,
        token: Optional[str],
        execute: Any = None,
        base_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Fetch call history; executes unless execute is explicitly falsy."""
        return await self._query(MARKETMAYA_CALL_HISTORY_PATH, token, execute, base_url)

    async def get_symbol_position(
        self,
        token: Optional[str],
        execute: Any = None,
        base_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Fetch symbol positions; executes unless execute is explicitly falsy."""
        return await self._query(MARKETMAYA_SYMBOL_POSITION_PATH, token, execute, base_url)

    # ════════════════════════════════════════════════════════════════
    # Internals
    # ════════════════════════════════════════════════════════════════

    async def _query(
        self,
        path: str,
        token: Optional[str],
        execute: Any,
        base_url: Optional[str],
    ) -> Dict[str, Any]:
        resolved = resolve_token(token)
        if not resolved:
            return {"ok": False, "dryRun": True, "error": TOKEN_MISSING_ERROR}
        if execute is None or is_truthy(execute):
            return await self._send(path, resolved, {}, base_url)
        return self._preview(path, resolved, {}, base_url)

    @staticmethod
    def _preview(
        path: str,
        token: str,
        params: Mapping[str, Any],
        base_url: Optional[str],
    ) -> Dict[str, Any]:
        return {
            "ok": True,
            "dryRun": True,
            "request": {
                "baseUrl": resolve_base_url(base_url),
                "path": path,
                "tokenConfigured": bool(token),
                "params": clean_params(params),
            },
        }

    async def _send(
        self,
        path: str,
        token: str,
        params: Mapping[str, Any],
        base_url: Optional[str],
    ) -> Dict[str, Any]:
        url = f"{resolve_base_url(base_url)}{path}"
        query = {"token": token, **clean_params(params)}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url, params=query, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            logger.error("marketmaya_request_failed", path=path, error=str(e))
            return {"ok": False, "dryRun": False, "error": str(e) or DEFAULT_ERROR}

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                payload: Any = response.json()
            except ValueError:
                payload = {}
        else:
            payload = response.text

        result = {
            "ok": response.is_success,
            "status": response.status_code,
            "contentType": content_type,
            "payload": payload,
        }
        if not response.is_success:
            error = extract_error_message(payload)
            logger.warning("marketmaya_request_rejected", path=path, status=response.status_code, error=error)
            return {
                "ok": False,
                "dryRun": False,
                "status": response.status_code,
                "error": error,
                "result": result,
            }

        logger.info("marketmaya_request_ok", path=path, status=response.status_code)
        return {"ok": True, "dryRun": False, "result": result}
