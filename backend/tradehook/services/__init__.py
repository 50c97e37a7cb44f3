"""
Business logic services for tradehook.
"""

from tradehook.services.event_service import EventService
from tradehook.services.strategy_service import StrategyService
from tradehook.services.subscriber_service import SubscriberService
from tradehook.services.user_service import UserService, is_plan_active

__all__ = [
    "EventService",
    "StrategyService",
    "SubscriberService",
    "UserService",
    "is_plan_active",
]
