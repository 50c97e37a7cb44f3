"""
PURPOSE: Shared constants and enums for the tradehook pipeline.

Keeps payload keys, symbol-extraction modes, instrument segments and
pipeline limits in one place so the normalizer, resolver, derivation
engine and dispatcher agree on them.
"""

from enum import Enum


class SymbolMode(str, Enum):
    """How tradable symbols are extracted from a webhook payload."""

    PAYLOAD_SYMBOL = "payloadSymbol"
    STOCKS_FIRST = "stocksFirst"
    STOCKS_ALL = "stocksAll"


class Segment(str, Enum):
    """Instrument segment governing which derivative fields apply."""

    EQ = "EQ"
    FUT = "FUT"
    OPT = "OPT"


class EventType(str, Enum):
    """Event bus event types published by the webhook pipeline."""

    WEBHOOK_RECEIVED = "webhook_received"
    WEBHOOK_PROCESSED = "webhook_processed"


# Top-level keys that mark a payload as an unwrapped Chartink signal
DIRECT_SIGNAL_KEYS = ("stocks", "symbol", "symbol_code", "alert_name", "scan_name")

# Request headers never persisted on the event record
BLOCKED_HEADERS = frozenset({"authorization", "cookie"})

DEFAULT_PROVIDER = "chartink"
DEFAULT_EXCHANGE = "NSE"
DEFAULT_SEGMENT = Segment.EQ.value
DEFAULT_CALL_TYPE_KEY = "call_type"
DEFAULT_CALL_TYPE_FALLBACK = "BUY"
DEFAULT_SYMBOL_KEY = "symbol"

DEFAULT_MAX_SYMBOLS = 5
MAX_SYMBOLS_CEILING = 25

# Parameters that only make sense for derivative segments
CONTRACT_FIELDS = ("contract", "expiry", "expiry_date")
OPTION_FIELDS = ("option_type", "atm", "strike_price")

# Trade summary shows at most this many symbols before "+N more"
SUMMARY_SYMBOL_LIMIT = 10

# Webhook body size ceiling (bytes)
MAX_BODY_SIZE = 1_000_000

MARKETMAYA_TRADE_PATH = "/custom-trade"
MARKETMAYA_CALL_HISTORY_PATH = "/custom-trade/getcallhistory"
MARKETMAYA_SYMBOL_POSITION_PATH = "/custom-trade/getsymbolposition"
