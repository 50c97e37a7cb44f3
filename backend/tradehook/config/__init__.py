"""
PURPOSE: Export configuration settings and constants for tradehook.

This module centralizes access to all configuration settings and constants
used throughout the signal relay.
"""

from .constants import (
    DEFAULT_MAX_SYMBOLS,
    DIRECT_SIGNAL_KEYS,
    MAX_SYMBOLS_CEILING,
    EventType,
    Segment,
    SymbolMode,
)
from .settings import settings

__all__ = [
    "settings",
    "EventType",
    "Segment",
    "SymbolMode",
    "DIRECT_SIGNAL_KEYS",
    "DEFAULT_MAX_SYMBOLS",
    "MAX_SYMBOLS_CEILING",
]
