"""
Pydantic schemas for tradehook request/response payloads.
"""

from tradehook.schemas.strategy import BrokerConfig, StrategyCreate, StrategyUpdate
from tradehook.schemas.system import HealthCheck, VersionInfo
from tradehook.schemas.telegram import TelegramTokenCreate, TelegramTokenEntry
from tradehook.schemas.trade import (
    BrokerQueryRequest,
    ManualTradeRequest,
    TradeEntry,
    TradeOutcome,
    TradeTarget,
)
from tradehook.schemas.webhook import EventResponse, ProcessorStatus, WebhookAck

__all__ = [
    "BrokerConfig",
    "StrategyCreate",
    "StrategyUpdate",
    "HealthCheck",
    "VersionInfo",
    "TelegramTokenCreate",
    "TelegramTokenEntry",
    "BrokerQueryRequest",
    "ManualTradeRequest",
    "TradeEntry",
    "TradeOutcome",
    "TradeTarget",
    "EventResponse",
    "ProcessorStatus",
    "WebhookAck",
]
