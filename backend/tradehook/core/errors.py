"""
PURPOSE: Domain exceptions for tradehook.

Background pipeline stages catch these at the narrowest scope and turn them
into structured failure entries; only request-path code lets them surface as
HTTP errors.
"""


class TradehookError(Exception):
    """Base class for all tradehook domain errors."""


class StrategyConfigError(TradehookError):
    """Raised when a strategy configuration violates an invariant."""


class TradeParamError(TradehookError):
    """Raised when manual trade parameters fail validation."""


class TelegramDeliveryError(TradehookError):
    """Raised when the Telegram Bot API rejects a message."""


class EmailDeliveryError(TradehookError):
    """Raised when an email cannot be handed to the SMTP server."""
