"""
Chartink webhook ingestion for tradehook.
"""

from tradehook.webhook.normalizer import normalize_payload, sanitize_headers
from tradehook.webhook.processor import WebhookProcessor, get_webhook_processor

__all__ = [
    "normalize_payload",
    "sanitize_headers",
    "WebhookProcessor",
    "get_webhook_processor",
]
