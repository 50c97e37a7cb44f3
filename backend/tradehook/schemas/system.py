"""
PURPOSE: Pydantic schemas for system health and version endpoints.
"""

from typing import Any, Dict

from pydantic import BaseModel


class HealthCheck(BaseModel):
    """Health report; status is "ok" or "degraded"."""

    status: str
    version: str
    uptime_seconds: float
    services: Dict[str, Dict[str, Any]]


class VersionInfo(BaseModel):
    """Version, codename and last update time from version.json."""

    version: str
    codename: str
    updated_at: str
