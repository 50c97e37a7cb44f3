"""
PURPOSE: System-level API routes for tradehook.

Provides the health check used by load balancers and the version endpoint.
"""

import time
from datetime import datetime

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradehook.core.rate_limit import limiter, READ_LIMIT
from tradehook.db.engine import get_db
from tradehook.events.bus import get_event_bus
from tradehook.schemas import HealthCheck, VersionInfo
from tradehook.utils.logger import get_logger
from tradehook.version import get_version


logger = get_logger(__name__)
router = APIRouter(prefix="/system", tags=["system"])

_startup_time = time.time()


# ════════════════════════════════════════════════════════════════
# Health Check
# ════════════════════════════════════════════════════════════════


@router.get("/health", response_model=HealthCheck, tags=["health"])
@limiter.limit(READ_LIMIT)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    PURPOSE: Report service health.

    The database ping decides the status code: 200 when it answers,
    503 otherwise. Redis is reported but never degrades the check, since
    event publishing without Redis is a no-op.
    """
    services = {}
    overall_status = "ok"

    try:
        await db.execute(select(1))
        services["database"] = {"status": "connected"}
    except Exception as e:
        logger.warning("health_db_ping_failed", error=str(e))
        services["database"] = {"status": "disconnected", "error": str(e)}
        overall_status = "degraded"

    services["redis"] = {"status": "connected" if get_event_bus().connected else "disconnected"}

    report = HealthCheck(
        status=overall_status,
        version=get_version().get("version", "unknown"),
        uptime_seconds=round(time.time() - _startup_time, 1),
        services=services,
    )
    code = status.HTTP_200_OK if overall_status == "ok" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=report.model_dump())


# ════════════════════════════════════════════════════════════════
# Version Info
# ════════════════════════════════════════════════════════════════


@router.get("/version", response_model=VersionInfo, tags=["version"])
@limiter.limit(READ_LIMIT)
async def get_system_version(request: Request) -> VersionInfo:
    """Retrieve system version information."""
    version_data = get_version()
    return VersionInfo(
        version=version_data.get("version", "unknown"),
        codename=version_data.get("codename", "Relay"),
        updated_at=version_data.get("updated_at", datetime.utcnow().isoformat()),
    )
