"""
PURPOSE: API router initialization and exports for tradehook.

This module aggregates all API routers (webhook, broker, telegram, system)
into a single api_router that is included in the main FastAPI application.
"""

from fastapi import APIRouter

from tradehook.api.routes_broker import router as broker_router
from tradehook.api.routes_system import router as system_router
from tradehook.api.routes_telegram import router as telegram_router
from tradehook.api.routes_webhook import router as webhook_router

# Create the main API router
api_router = APIRouter(prefix="/api", tags=["api"])

# Include all sub-routers
api_router.include_router(webhook_router, tags=["webhook"])
api_router.include_router(broker_router, tags=["broker"])
api_router.include_router(telegram_router, tags=["telegram"])
api_router.include_router(system_router, tags=["system"])

__all__ = ["api_router"]
