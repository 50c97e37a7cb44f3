"""
PURPOSE: Derive Market Maya order parameters from a signal and a strategy config.

Every function here is pure: it takes mappings and returns a new dict, so the
same (config, payload, target) always yields the same parameters. Payload
values win over strategy defaults; segment rules then strip fields that the
instrument segment does not accept.

CALLED BY:
    - trading/dispatcher.py (auto trades)
    - api/routes_broker.py (manual trades, via the *_manual_params helpers)
"""

import math
from typing import Any, Dict, Mapping, Optional

from tradehook.config.constants import (
    CONTRACT_FIELDS,
    DEFAULT_CALL_TYPE_KEY,
    DEFAULT_EXCHANGE,
    DEFAULT_SEGMENT,
    OPTION_FIELDS,
    Segment,
)
from tradehook.core.errors import TradeParamError
from tradehook.schemas.strategy import BrokerConfig
from tradehook.schemas.trade import TradeTarget
from tradehook.utils.payload import (
    is_truthy,
    normalize_string,
    read_first_payload_value,
    read_payload_value,
    to_upper,
)

_DERIVATIVE_SEGMENTS = (Segment.FUT.value, Segment.OPT.value)


# ════════════════════════════════════════════════════════════════
# Ratio targets
# ════════════════════════════════════════════════════════════════


def _to_number(raw: str) -> Optional[float]:
    try:
        number = float(raw)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_ratio_multiplier(value: Any) -> Optional[float]:
    """
    PURPOSE: Parse a risk:reward ratio into a target multiplier.

    Args:
        value: "a:b", "a/b" or a plain positive number.

    Returns:
        Optional[float]: b/a for ratios, the number itself otherwise, or None
            when any part is missing, non-numeric or non-positive.
    """
    raw = normalize_string(value)
    if not raw:
        return None
    if ":" in raw or "/" in raw:
        divider = ":" if ":" in raw else "/"
        parts = [part.strip() for part in raw.split(divider)]
        left = _to_number(parts[0])
        right = _to_number(parts[1]) if len(parts) > 1 else None
        if left is None or right is None or left <= 0 or right <= 0:
            return None
        return right / left

    numeric = _to_number(raw)
    if numeric is None or numeric <= 0:
        return None
    return numeric


def format_decimal(value: float) -> str:
    """Render value rounded to 6 decimals without trailing zeros ("15", "7.5")."""
    text = f"{round(value, 6):.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def compute_target_from_ratio(sl_value: Any, ratio_value: Any) -> Optional[str]:
    """
    PURPOSE: Compute a target as stop-loss times the ratio multiplier.

    Args:
        sl_value: Stop-loss distance (must be a positive number).
        ratio_value: Ratio accepted by parse_ratio_multiplier.

    Returns:
        Optional[str]: Formatted target, or None if it cannot be computed.
    """
    sl = _to_number(normalize_string(sl_value))
    if sl is None or sl <= 0:
        return None
    multiplier = parse_ratio_multiplier(ratio_value)
    if not multiplier:
        return None
    target = sl * multiplier
    if not math.isfinite(target):
        return None
    return format_decimal(target)


# ════════════════════════════════════════════════════════════════
# Derivation steps
# ════════════════════════════════════════════════════════════════


def _pick(payload: Mapping[str, Any], keys: tuple, fallback: Any) -> str:
    """Return the first payload value among keys as a string, else the config fallback."""
    return normalize_string(read_first_payload_value(payload, keys)) or normalize_string(fallback)


def _pick_upper(payload: Mapping[str, Any], keys: tuple, fallback: Any) -> str:
    return to_upper(read_first_payload_value(payload, keys)) or to_upper(fallback)


def build_base_params(config: BrokerConfig, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    PURPOSE: Build the base order parameters for a strategy signal.

    extraParams are laid down first and overwritten by the standard fields.
    Optional fields are only present when they resolve to a non-blank value.

    Args:
        config: Strategy broker configuration.
        payload: Normalized webhook payload.

    Returns:
        Dict[str, Any]: Base parameters without symbol or segment-specific fields.
    """
    exchange = _pick_upper(payload, ("exchange", "Exchange"), config.exchange) or DEFAULT_EXCHANGE
    segment = _pick_upper(payload, ("segment", "Segment"), config.segment) or DEFAULT_SEGMENT

    call_type_key = normalize_string(config.call_type_key) or DEFAULT_CALL_TYPE_KEY
    call_type = _pick_upper(
        payload,
        (call_type_key, "call_type", "callType", "action", "side"),
        config.call_type_fallback,
    )

    order_type = _pick_upper(payload, ("order_type", "orderType"), config.order_type)
    limit_price = _pick(payload, ("limit_price", "limitPrice"), config.limit_price)
    qty_distribution = _pick(payload, ("qty_distribution", "qtyDistribution"), config.qty_distribution)
    qty_value = _pick(payload, ("qty_value", "qtyValue"), config.qty_value)
    target_by = _pick(payload, ("target_by", "targetBy"), config.target_by)
    target = _pick(payload, ("target",), config.target)
    sl_by = _pick(payload, ("sl_by", "slBy"), config.sl_by)
    sl = _pick(payload, ("sl",), config.sl)

    if target_by.lower() == "ratio":
        computed = compute_target_from_ratio(sl, target)
        if computed:
            target = computed
            target_by = sl_by
        else:
            target = ""
            target_by = ""

    trail_raw = read_first_payload_value(payload, ("is_trail_sl", "isTrailSl", "trailSl"))
    trail_sl = is_truthy(trail_raw) if trail_raw is not None else config.trail_sl
    sl_move = _pick(payload, ("sl_move", "slMove"), config.sl_move)
    profit_move = _pick(payload, ("profit_move", "profitMove"), config.profit_move)

    params: Dict[str, Any] = dict(config.extra_params)
    params["exchange"] = exchange
    params["segment"] = segment
    optional = (
        ("call_type", call_type),
        ("order_type", order_type),
        ("price", limit_price if order_type == "LIMIT" else ""),
        ("qty_distribution", qty_distribution),
        ("qty_value", qty_value),
        ("target_by", target_by),
        ("target", target),
        ("sl_by", sl_by),
        ("sl", sl),
    )
    for key, value in optional:
        if value:
            params[key] = value
    if trail_sl:
        params["is_trail_sl"] = True
    if sl_move:
        params["sl_move"] = sl_move
    if profit_move:
        params["profit_move"] = profit_move
    return params


def apply_payload_map(
    params: Mapping[str, Any],
    config: BrokerConfig,
    payload: Mapping[str, Any],
) -> Dict[str, Any]:
    """
    PURPOSE: Overwrite params from explicitly mapped payload fields.

    Each payloadMap entry maps a broker param name to a payload key; a
    non-blank payload value replaces the param unconditionally.
    """
    merged = dict(params)
    for param_name, payload_key in config.payload_map.items():
        key = normalize_string(payload_key)
        if not key:
            continue
        value = read_payload_value(payload, key)
        if value is None:
            continue
        merged[param_name] = value
    return merged


def apply_segment_rules(
    params: Mapping[str, Any],
    config: BrokerConfig,
    payload: Mapping[str, Any],
) -> Dict[str, Any]:
    """
    PURPOSE: Apply derivative defaults and strip fields the segment does not take.

    FUT/OPT: expiry_date wins over contract + expiry. OPT: strike_price wins
    over atm. Every other segment loses all contract and option fields.
    """
    segment = to_upper(params.get("segment"))
    merged = dict(params)

    if segment in _DERIVATIVE_SEGMENTS:
        expiry_date = _pick(payload, ("expiry_date", "expiryDate"), config.expiry_date)
        if expiry_date:
            merged["expiry_date"] = expiry_date
            merged.pop("contract", None)
            merged.pop("expiry", None)
        else:
            contract = _pick_upper(payload, ("contract",), config.contract)
            expiry = _pick_upper(payload, ("expiry",), config.expiry)
            if contract:
                merged["contract"] = contract
            if expiry:
                merged["expiry"] = expiry
    else:
        for field in CONTRACT_FIELDS:
            merged.pop(field, None)

    if segment == Segment.OPT.value:
        option_type = _pick_upper(payload, ("option_type", "optionType"), config.option_type)
        if option_type:
            merged["option_type"] = option_type
        strike_price = _pick(payload, ("strike_price", "strikePrice"), config.strike_price)
        atm = _pick(payload, ("atm",), config.atm)
        if strike_price:
            merged["strike_price"] = strike_price
            merged.pop("atm", None)
        elif atm:
            merged["atm"] = atm
            merged.pop("strike_price", None)
    else:
        for field in OPTION_FIELDS:
            merged.pop(field, None)

    return merged


def inject_symbol(params: Mapping[str, Any], target: TradeTarget) -> Dict[str, Any]:
    """Set exactly one of symbol / symbol_code from the target."""
    merged = dict(params)
    if target.symbol_code:
        merged["symbol_code"] = target.symbol_code
        merged.pop("symbol", None)
    elif target.symbol:
        merged["symbol"] = target.symbol
        merged.pop("symbol_code", None)
    return merged


def derive_trade_params(
    config: BrokerConfig,
    payload: Mapping[str, Any],
    target: TradeTarget,
) -> Dict[str, Any]:
    """
    PURPOSE: Compose the full derivation pipeline for one trade target.

    CALLED BY: TradeDispatcher.execute_strategy_trades

    Args:
        config: Strategy broker configuration.
        payload: Normalized webhook payload.
        target: Instrument to trade.

    Returns:
        Dict[str, Any]: Parameters ready for MarketMayaClient.custom_trade.
    """
    params = build_base_params(config, payload)
    params = apply_payload_map(params, config, payload)
    params = apply_segment_rules(params, config, payload)
    return inject_symbol(params, target)


def validate_minimum_params(params: Mapping[str, Any]) -> Optional[str]:
    """
    PURPOSE: Check the fields every broker order needs.

    Returns:
        Optional[str]: First failure message, or None when valid.
    """
    if not normalize_string(params.get("exchange")):
        return "exchange is required"
    if not normalize_string(params.get("call_type")):
        return "call_type is required"
    if not normalize_string(params.get("symbol_code")) and not normalize_string(params.get("symbol")):
        return "symbol or symbol_code is required"
    return None


# ════════════════════════════════════════════════════════════════
# Manual trades
# ════════════════════════════════════════════════════════════════


def normalize_manual_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """
    PURPOSE: Normalize caller-supplied manual trade params.

    A symbol_code makes the order self-describing, so segment, symbol and all
    contract/option fields are dropped. Otherwise codes are uppercased and
    fields that do not belong to the segment are removed.

    CALLED BY: POST /api/broker/trade
    """
    normalized = dict(params)

    if "exchange" in normalized:
        normalized["exchange"] = to_upper(normalized["exchange"])
    if "call_type" in normalized:
        normalized["call_type"] = to_upper(normalized["call_type"])
    if not is_truthy(normalized.get("is_trail_sl")):
        normalized.pop("is_trail_sl", None)

    symbol_code = normalize_string(normalized.get("symbol_code"))
    if symbol_code:
        normalized["symbol_code"] = symbol_code
        for field in ("segment", "symbol") + CONTRACT_FIELDS + OPTION_FIELDS:
            normalized.pop(field, None)
        return normalized

    segment = to_upper(normalized.get("segment"))
    if segment:
        normalized["segment"] = segment
    symbol = to_upper(normalized.get("symbol"))
    if symbol:
        normalized["symbol"] = symbol
    for field in ("contract", "expiry"):
        if field in normalized:
            normalized[field] = to_upper(normalized[field])

    if segment == Segment.EQ.value:
        for field in CONTRACT_FIELDS + OPTION_FIELDS:
            normalized.pop(field, None)
        return normalized

    if segment in _DERIVATIVE_SEGMENTS:
        expiry_date = normalize_string(normalized.get("expiry_date"))
        if expiry_date:
            normalized["expiry_date"] = expiry_date
            normalized.pop("contract", None)
            normalized.pop("expiry", None)

    if segment == Segment.FUT.value:
        for field in OPTION_FIELDS:
            normalized.pop(field, None)
    elif segment == Segment.OPT.value:
        if "option_type" in normalized:
            normalized["option_type"] = to_upper(normalized["option_type"])
        strike = normalize_string(normalized.get("strike_price"))
        atm = normalize_string(normalized.get("atm"))
        if strike:
            normalized["strike_price"] = strike
            normalized.pop("atm", None)
        elif atm:
            normalized["atm"] = atm
            normalized.pop("strike_price", None)

    return normalized


def validate_manual_params(params: Mapping[str, Any]) -> None:
    """
    PURPOSE: Strictly validate manual trade params before they reach the broker.

    Raises:
        TradeParamError: With the first failing rule as its message.
    """
    if not normalize_string(params.get("exchange")):
        raise TradeParamError("exchange is required")
    if not normalize_string(params.get("call_type")):
        raise TradeParamError("call_type is required")
    if normalize_string(params.get("symbol_code")):
        return

    segment = to_upper(params.get("segment"))
    if not segment:
        raise TradeParamError("segment is required when symbol_code is not provided")
    if not normalize_string(params.get("symbol")):
        raise TradeParamError("symbol is required when symbol_code is not provided")

    if segment in _DERIVATIVE_SEGMENTS:
        has_contract = normalize_string(params.get("contract")) and normalize_string(params.get("expiry"))
        if not normalize_string(params.get("expiry_date")) and not has_contract:
            raise TradeParamError("contract + expiry (or expiry_date) is required for FUT/OPT")

    if segment == Segment.OPT.value:
        if not normalize_string(params.get("option_type")):
            raise TradeParamError("option_type is required for OPT")
        if not normalize_string(params.get("atm")) and not normalize_string(params.get("strike_price")):
            raise TradeParamError("atm or strike_price is required for OPT")
