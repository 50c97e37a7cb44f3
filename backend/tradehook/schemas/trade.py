"""
Trade-related Pydantic schemas for tradehook.

TradeTarget and TradeOutcome describe one auto-trade round; ManualTradeRequest
is the body of the authenticated manual broker endpoints.
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class TradeTarget(BaseModel):
    """One instrument to trade: a plain symbol or a broker symbol code."""

    symbol: str = ""
    symbol_code: str = ""

    @property
    def is_code(self) -> bool:
        return bool(self.symbol_code)


class TradeEntry(BaseModel):
    """
    Per-target dispatch result embedded in the outcome and the debug payload.

    Attributes:
        symbol: Plain symbol, empty for symbol-code targets
        symbol_code: Broker symbol code, empty for plain targets
        ok: Whether the broker accepted (or previewed) the trade
        dry_run: True when no live order was sent
        error: Failure reason, if any
        params: Derived parameters sent (or previewed)
        response: Raw broker client result
    """

    model_config = ConfigDict(populate_by_name=True)

    symbol: str = ""
    symbol_code: str = Field(default="", serialization_alias="symbolCode")
    ok: bool = False
    dry_run: bool = Field(default=True, serialization_alias="dryRun")
    error: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    response: Optional[Dict[str, Any]] = None


class TradeOutcome(BaseModel):
    """Aggregate result of one strategy auto-trade round."""

    ok: bool = False
    skipped: bool = False
    execute: bool = False
    error: Optional[str] = None
    total: int = 0
    success_count: int = 0
    failure_count: int = 0
    trades: List[TradeEntry] = Field(default_factory=list)

    @classmethod
    def skip(cls, execute: bool, reason: str) -> "TradeOutcome":
        """Build a skipped outcome carrying reason."""
        return cls(ok=False, skipped=True, execute=execute, error=reason)


class ManualTradeRequest(BaseModel):
    """
    Body of POST /api/broker/trade.

    Trade fields are accepted in snake_case or camelCase; anything else is
    ignored so arbitrary client fields never reach the broker.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("token", "marketMayaToken", "marketmayaToken"),
    )
    execute: Any = None
    notify_user_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("notifyUserId", "notify_user_id", "userId"),
    )
    base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("baseUrl", "base_url"),
    )

    exchange: Any = None
    symbol_code: Any = Field(default=None, validation_alias=AliasChoices("symbol_code", "symbolCode"))
    segment: Any = None
    symbol: Any = None
    contract: Any = None
    expiry: Any = None
    expiry_date: Any = Field(default=None, validation_alias=AliasChoices("expiry_date", "expiryDate"))
    option_type: Any = Field(default=None, validation_alias=AliasChoices("option_type", "optionType"))
    atm: Any = None
    strike_price: Any = Field(default=None, validation_alias=AliasChoices("strike_price", "strikePrice"))
    call_type: Any = Field(default=None, validation_alias=AliasChoices("call_type", "callType"))
    qty_distribution: Any = Field(
        default=None, validation_alias=AliasChoices("qty_distribution", "qtyDistribution")
    )
    qty_value: Any = Field(default=None, validation_alias=AliasChoices("qty_value", "qtyValue"))
    target_by: Any = Field(default=None, validation_alias=AliasChoices("target_by", "targetBy"))
    target: Any = None
    sl_by: Any = Field(default=None, validation_alias=AliasChoices("sl_by", "slBy"))
    sl: Any = None
    is_trail_sl: Any = Field(default=None, validation_alias=AliasChoices("is_trail_sl", "isTrailSl"))
    sl_move: Any = Field(default=None, validation_alias=AliasChoices("sl_move", "slMove"))
    profit_move: Any = Field(default=None, validation_alias=AliasChoices("profit_move", "profitMove"))

    def trade_params(self) -> Dict[str, Any]:
        """Return only the trade fields the caller actually supplied."""
        excluded = {"token", "execute", "notify_user_id", "base_url"}
        return {
            key: value
            for key, value in self.model_dump(exclude=excluded).items()
            if value is not None
        }


class BrokerQueryRequest(BaseModel):
    """Body of the call-history and symbol-position endpoints."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("token", "marketMayaToken", "marketmayaToken"),
    )
    execute: Any = None
    base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("baseUrl", "base_url"),
    )
