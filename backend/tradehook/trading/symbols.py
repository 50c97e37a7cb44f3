"""
PURPOSE: Resolve which instruments a webhook signal should trade.

A signal may name a single broker symbol code, a symbol field, or a Chartink
comma-separated `stocks` list; the strategy's symbol mode picks which one is
read and how many symbols are kept.
"""

import math
from typing import Any, List, Mapping, Optional

from tradehook.config.constants import DEFAULT_MAX_SYMBOLS, MAX_SYMBOLS_CEILING, SymbolMode
from tradehook.schemas.strategy import BrokerConfig
from tradehook.schemas.trade import TradeTarget
from tradehook.utils.payload import normalize_string, read_first_payload_value, split_symbols


def clamp_max_symbols(value: Any) -> int:
    """
    PURPOSE: Bound the per-signal symbol cap.

    Args:
        value: Configured maxSymbols (any type).

    Returns:
        int: DEFAULT_MAX_SYMBOLS for missing, non-numeric or non-positive
            values, otherwise floor(value) clamped to [1, MAX_SYMBOLS_CEILING].
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_MAX_SYMBOLS
    if not math.isfinite(number) or number <= 0:
        return DEFAULT_MAX_SYMBOLS
    return max(1, min(math.floor(number), MAX_SYMBOLS_CEILING))


def extract_symbols(payload: Mapping[str, Any], config: BrokerConfig) -> tuple[str, List[str]]:
    """
    PURPOSE: Pull the symbol code or the uppercased symbol list out of a payload.

    Returns:
        tuple[str, List[str]]: (symbol_code, symbols); at most one is non-empty.
    """
    symbol_code = normalize_string(read_first_payload_value(payload, ("symbol_code", "symbolCode")))
    if symbol_code:
        return symbol_code, []

    if config.symbol_mode == SymbolMode.PAYLOAD_SYMBOL.value:
        raw = read_first_payload_value(payload, (config.symbol_key, "symbol", "Symbol"))
        return "", [s.upper() for s in split_symbols(raw)]

    symbols = [s.upper() for s in split_symbols(read_first_payload_value(payload, ("stocks", "Stocks")))]
    if config.symbol_mode == SymbolMode.STOCKS_ALL.value:
        return "", symbols
    return "", symbols[:1]


def resolve_targets(
    payload: Mapping[str, Any],
    config: BrokerConfig,
    remaining: Optional[int] = None,
) -> List[TradeTarget]:
    """
    PURPOSE: Build the ordered list of trade targets for one signal.

    CALLED BY: TradeDispatcher.execute_strategy_trades

    Args:
        payload: Normalized webhook payload.
        config: Strategy broker configuration.
        remaining: Remaining daily quota, or None when unlimited.

    Returns:
        List[TradeTarget]: A single symbol-code target, or plain targets
            truncated to the symbol cap and then to `remaining`.
    """
    if not isinstance(payload, Mapping):
        return []

    symbol_code, symbols = extract_symbols(payload, config)
    if symbol_code:
        targets = [TradeTarget(symbol_code=symbol_code)]
    else:
        cap = clamp_max_symbols(config.max_symbols)
        targets = [TradeTarget(symbol=symbol) for symbol in symbols[:cap]]

    if remaining is not None:
        targets = targets[: max(0, remaining)]
    return targets
