"""
Event bus module for tradehook.

Exports EventBus, EventPayload and the singleton accessors.
"""

from tradehook.events.types import EventPayload
from tradehook.events.bus import EventBus, get_event_bus, set_event_bus

__all__ = [
    "EventBus",
    "EventPayload",
    "get_event_bus",
    "set_event_bus",
]
