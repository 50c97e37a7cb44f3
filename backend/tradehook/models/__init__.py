"""Database models for tradehook.

Import all models here so Alembic can detect them during migration generation.
"""

from tradehook.models.user import User
from tradehook.models.strategy import Strategy
from tradehook.models.webhook_event import WebhookEvent
from tradehook.models.trade_attempt import TradeAttempt
from tradehook.models.telegram import TelegramSubscriber, TelegramToken

__all__ = [
    "User",
    "Strategy",
    "WebhookEvent",
    "TradeAttempt",
    "TelegramSubscriber",
    "TelegramToken",
]
