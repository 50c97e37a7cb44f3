"""
Strategy-related Pydantic schemas for tradehook.

BrokerConfig is the typed view over a strategy's stored `marketmaya` JSON.
It accepts camelCase, snake_case and a few legacy spellings, and normalizes
codes to uppercase so the derivation engine can rely on clean values.
"""

import json
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from tradehook.config.constants import (
    DEFAULT_CALL_TYPE_FALLBACK,
    DEFAULT_CALL_TYPE_KEY,
    DEFAULT_SYMBOL_KEY,
    SymbolMode,
)
from tradehook.utils.payload import is_truthy, normalize_string
from tradehook.utils.time_utils import is_valid_hhmm

_STRING_FIELDS = (
    "token", "exchange", "segment", "symbol_mode", "symbol_key", "call_type_key",
    "call_type_fallback", "contract", "expiry", "expiry_date", "option_type", "atm",
    "strike_price", "order_type", "limit_price", "qty_distribution", "qty_value",
    "target_by", "target", "sl_by", "sl", "sl_move", "profit_move",
    "trade_window_start", "trade_window_end",
)

_UPPER_FIELDS = (
    "exchange", "segment", "call_type_fallback", "contract", "expiry",
    "option_type", "order_type",
)

# Validation context flag set when parsing a strategy's persisted config
STORED_CONTEXT = "stored"


def _is_stored(info: ValidationInfo) -> bool:
    return bool(info.context and info.context.get(STORED_CONTEXT))


class BrokerConfig(BaseModel):
    """
    Schema for a strategy's Market Maya configuration.

    Blank strings are normalized to None so "unset" has exactly one spelling.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    token: Optional[str] = None
    exchange: Optional[str] = None
    segment: Optional[str] = None
    symbol_mode: str = SymbolMode.STOCKS_FIRST.value
    symbol_key: str = DEFAULT_SYMBOL_KEY
    call_type_key: str = DEFAULT_CALL_TYPE_KEY
    call_type_fallback: str = DEFAULT_CALL_TYPE_FALLBACK

    contract: Optional[str] = None
    expiry: Optional[str] = None
    expiry_date: Optional[str] = None
    option_type: Optional[str] = None
    atm: Optional[str] = None
    strike_price: Optional[str] = None

    order_type: Optional[str] = None
    limit_price: Optional[str] = None
    qty_distribution: Optional[str] = None
    qty_value: Optional[str] = None
    target_by: Optional[str] = None
    target: Optional[str] = None
    sl_by: Optional[str] = None
    sl: Optional[str] = None
    trail_sl: bool = Field(
        default=False,
        validation_alias=AliasChoices("trailSl", "trail_sl", "isTrailSl", "is_trail_sl"),
    )
    sl_move: Optional[str] = None
    profit_move: Optional[str] = None

    trade_window_start: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "tradeWindowStart", "trade_window_start", "tradeStart", "trade_start",
            "tradeStartTime", "trade_start_time", "startTime", "start_time",
        ),
    )
    trade_window_end: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "tradeWindowEnd", "trade_window_end", "tradeEnd", "trade_end",
            "tradeEndTime", "trade_end_time", "endTime", "end_time",
        ),
    )
    daily_trade_limit: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices(
            "dailyTradeLimit", "daily_trade_limit", "tradeLimit", "trade_limit",
        ),
    )
    max_symbols: Optional[float] = None
    dry_run: bool = False

    extra_params: Dict[str, Any] = Field(default_factory=dict)
    payload_map: Dict[str, Any] = Field(default_factory=dict)

    @field_validator(*_STRING_FIELDS, mode="before")
    @classmethod
    def coerce_string(cls, v: Any) -> Optional[str]:
        """Strip strings, stringify numbers, and map blanks to None."""
        text = normalize_string(v)
        return text or None

    @field_validator(*_UPPER_FIELDS)
    @classmethod
    def uppercase_codes(cls, v: Optional[str]) -> Optional[str]:
        """Uppercase exchange/segment/contract-style codes."""
        return v.upper() if v else v

    @field_validator("symbol_mode", mode="before")
    @classmethod
    def default_symbol_mode(cls, v: Any) -> str:
        return normalize_string(v) or SymbolMode.STOCKS_FIRST.value

    @field_validator("symbol_key", mode="before")
    @classmethod
    def default_symbol_key(cls, v: Any) -> str:
        return normalize_string(v) or DEFAULT_SYMBOL_KEY

    @field_validator("call_type_key", mode="before")
    @classmethod
    def default_call_type_key(cls, v: Any) -> str:
        return normalize_string(v) or DEFAULT_CALL_TYPE_KEY

    @field_validator("call_type_fallback", mode="before")
    @classmethod
    def default_call_type_fallback(cls, v: Any) -> str:
        return normalize_string(v).upper() or DEFAULT_CALL_TYPE_FALLBACK

    @field_validator("trail_sl", "dry_run", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        return is_truthy(v)

    @field_validator("trade_window_start", "trade_window_end")
    @classmethod
    def validate_window_time(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        """Validate that trade window bounds are HH:mm (24h); stored configs drop bad bounds."""
        if v is not None and not is_valid_hhmm(v):
            if _is_stored(info):
                return None
            raise ValueError("trade window times must be in HH:mm (24h)")
        return v

    @field_validator("daily_trade_limit", mode="before")
    @classmethod
    def positive_limit(cls, v: Any) -> Optional[int]:
        """Keep only finite positive limits, floored to an int."""
        try:
            number = float(v)
        except (TypeError, ValueError):
            return None
        if number != number or number <= 0 or number == float("inf"):
            return None
        return int(number)

    @field_validator("max_symbols", mode="before")
    @classmethod
    def numeric_max_symbols(cls, v: Any) -> Optional[float]:
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @field_validator("extra_params", "payload_map", mode="before")
    @classmethod
    def parse_json_object(cls, v: Any, info: ValidationInfo) -> Dict[str, Any]:
        """Accept a dict or a JSON-encoded object string; stored configs drop anything else."""
        if v is None or v == "":
            return {}
        if isinstance(v, dict):
            return v
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
            except json.JSONDecodeError:
                if _is_stored(info):
                    return {}
                raise ValueError("must be a valid JSON object")
            if isinstance(parsed, dict):
                return parsed
        if _is_stored(info):
            return {}
        raise ValueError("must be an object or JSON object string")

    @classmethod
    def from_strategy_json(cls, raw: Optional[Dict[str, Any]]) -> "BrokerConfig":
        """
        Parse a stored config, treating missing or non-dict values as empty.

        Malformed window bounds and JSON objects become unset instead of
        failing, so a bad stored value never blocks the trade stage.
        """
        return cls.model_validate(raw if isinstance(raw, dict) else {}, context={STORED_CONTEXT: True})

    def to_storage(self) -> Dict[str, Any]:
        """Dump as camelCase JSON for the strategies.marketmaya column."""
        return self.model_dump(by_alias=True, exclude_none=True)


class StrategyCreate(BaseModel):
    """
    Schema for creating a strategy.

    Attributes:
        name: Display name, also snapshotted onto each event
        webhook_url: Chartink webhook URL the user configured
        marketmaya_url: Optional broker base URL override
        enabled: Whether signals trigger auto trades
        telegram_enabled: Whether the strategy's own chat receives alerts
        telegram_chat_id: Strategy-level chat id
        marketmaya: Broker configuration
        marketmaya_token: Token supplied outside the config block
    """

    name: str
    webhook_url: str
    marketmaya_url: str = ""
    enabled: bool = False
    telegram_enabled: bool = False
    telegram_chat_id: Optional[str] = None
    marketmaya: BrokerConfig = Field(default_factory=BrokerConfig)
    marketmaya_token: Optional[str] = None

    @field_validator("name", "webhook_url")
    @classmethod
    def require_text(cls, v: str) -> str:
        """Validate that required text fields are not blank."""
        if not v or not v.strip():
            raise ValueError("field is required")
        return v.strip()


class StrategyUpdate(BaseModel):
    """Partial update; None means "leave unchanged"."""

    name: Optional[str] = None
    enabled: Optional[bool] = None
    telegram_enabled: Optional[bool] = None
    telegram_chat_id: Optional[str] = None
    marketmaya_url: Optional[str] = None
    marketmaya: Optional[BrokerConfig] = None
