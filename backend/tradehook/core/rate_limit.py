"""
PURPOSE: Rate limiting configuration for the tradehook API using slowapi.

Provides a shared Limiter instance keyed by client IP address and
pre-defined rate limit strings for different endpoint categories:
    - WEBHOOK_LIMIT: inbound Chartink webhooks (120/minute)
    - WRITE_LIMIT:   moderate (30/minute): manual broker calls, Telegram token issue
    - READ_LIMIT:    relaxed  (60/minute): event history, status
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Shared limiter instance: keyed by client IP
limiter = Limiter(key_func=get_remote_address)

# ── Rate limit tiers ──────────────────────────────────────────
WEBHOOK_LIMIT = "120/minute"
WRITE_LIMIT = "30/minute"
READ_LIMIT = "60/minute"
