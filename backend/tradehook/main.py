"""
PURPOSE: Main FastAPI application factory and lifecycle management for tradehook.

Initializes the FastAPI application with:
- All API routers (webhook, broker, telegram, system)
- CORS middleware
- Exception handlers for common errors
- Startup events (logging, EventBus connection, Telegram polling/webhook sync)
- Shutdown events (draining in-flight webhook tasks, resource cleanup)
- Metadata from version.json
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from tradehook.core.rate_limit import limiter
from tradehook.api import api_router
from tradehook.config.settings import settings
from tradehook.db.engine import AsyncSessionLocal
from tradehook.events.bus import get_event_bus, set_event_bus
from tradehook.notifications.telegram import TelegramClient
from tradehook.notifications.telegram_sync import TelegramSync
from tradehook.notifications.telegram_updates import TelegramUpdateHandler
from tradehook.utils.logger import setup_logging, get_logger
from tradehook.version import get_version
from tradehook.webhook.processor import get_webhook_processor


logger = get_logger(__name__)


# ════════════════════════════════════════════════════════════════
# Lifecycle Events
# ════════════════════════════════════════════════════════════════


async def on_startup(app: FastAPI) -> None:
    """
    PURPOSE: Execute startup tasks.

    CALLED BY: FastAPI lifespan startup

    Tasks:
        1. Setup logging with configured level
        2. Connect to EventBus (Redis); publishing is a no-op when Redis is down
        3. Start Telegram polling or register the Telegram webhook
    """
    try:
        setup_logging(settings.LOG_LEVEL)
        logger.info(
            "application_startup_starting",
            version=get_version().get("version"),
            log_level=settings.LOG_LEVEL,
            trade_timezone=settings.TRADE_TIMEZONE,
        )

        # Warn about insecure default credentials in dev mode
        insecure = settings.get_insecure_defaults()
        if insecure:
            logger.warning(
                "insecure_default_credentials",
                message="Default credentials detected. Change these before deploying.",
                settings=insecure,
            )

        event_bus = get_event_bus()
        await event_bus.connect()
        set_event_bus(event_bus)

        telegram = TelegramClient()
        handler = TelegramUpdateHandler(AsyncSessionLocal, telegram=telegram)
        telegram_sync = TelegramSync(telegram, handler)
        app.state.telegram_handler = handler
        app.state.telegram_sync = telegram_sync
        await telegram_sync.start()
        logger.info("telegram_sync_started", mode=telegram_sync.mode)

        logger.info("application_startup_complete")

    except Exception as e:
        logger.critical("application_startup_failed", error=str(e))
        raise


async def on_shutdown(app: FastAPI) -> None:
    """
    PURPOSE: Execute shutdown tasks to gracefully close resources.

    CALLED BY: FastAPI lifespan shutdown

    Tasks:
        1. Stop Telegram polling
        2. Let in-flight webhook tasks finish
        3. Disconnect from EventBus
    """
    try:
        logger.info("application_shutdown_starting")

        telegram_sync = getattr(app.state, "telegram_sync", None)
        if telegram_sync is not None:
            await telegram_sync.stop()

        await get_webhook_processor().wait_idle()

        event_bus = get_event_bus()
        await event_bus.disconnect()
        logger.info("event_bus_disconnected")

        logger.info("application_shutdown_complete")

    except Exception as e:
        logger.error("application_shutdown_error", error=str(e))
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    PURPOSE: Manage application lifespan with startup and shutdown events.

    CALLED BY: FastAPI during application startup and shutdown

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    await on_startup(app)

    yield

    await on_shutdown(app)


# ════════════════════════════════════════════════════════════════
# Exception Handlers
# ════════════════════════════════════════════════════════════════


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    PURPOSE: Handle Pydantic validation errors with consistent JSON response.

    CALLED BY: FastAPI when request validation fails

    Args:
        request: HTTP request that failed validation
        exc: RequestValidationError with validation details

    Returns:
        JSONResponse: Formatted error response with validation details
    """
    logger.warning(
        "request_validation_failed",
        path=request.url.path,
        method=request.method,
        error_count=len(exc.errors())
    )

    safe_errors = jsonable_encoder(
        exc.errors(),
        custom_encoder={
            ValueError: lambda e: str(e),
            Exception: lambda e: str(e),
        },
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": "error",
            "detail": "Request validation failed",
            "errors": safe_errors,
        },
    )


async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    PURPOSE: Handle unexpected exceptions with logging and safe error response.

    CALLED BY: FastAPI exception handler middleware

    Returns:
        JSONResponse: Safe error response without exposing internals
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exception_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "status": "error",
            "detail": "Internal server error",
        },
    )


# ════════════════════════════════════════════════════════════════
# FastAPI Application Factory
# ════════════════════════════════════════════════════════════════


def create_app() -> FastAPI:
    """
    PURPOSE: Create and configure FastAPI application with all routers, middleware, and handlers.

    CALLED BY: Application entrypoint (uvicorn, docker), tests

    Returns:
        FastAPI: Configured FastAPI application ready to run
    """
    # Fail fast if non-dev config still has insecure defaults.
    settings.validate_credentials()

    try:
        version_data = get_version()
        version = version_data.get("version", "unknown")
        description = f"Chartink signal relay - {version_data.get('codename', 'Relay')}"
    except Exception as e:
        logger.warning("version_data_unavailable", error=str(e))
        version = "unknown"
        description = "Chartink signal relay"

    app = FastAPI(
        title="tradehook",
        description=description,
        version=version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # ────────────────────────────────────────────────────────────
    # Middleware
    # ────────────────────────────────────────────────────────────

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:8000",
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-API-Key",
            "X-Strategy-Key",
            "X-Webhook-Token",
            "X-Request-ID",
        ],
    )

    # ────────────────────────────────────────────────────────────
    # Routes
    # ────────────────────────────────────────────────────────────

    app.include_router(api_router)

    @app.get("/", tags=["root"])
    async def root():
        """
        PURPOSE: Root endpoint for API availability check.

        CALLED BY: Load balancers, basic connectivity tests
        """
        return {
            "status": "ok",
            "service": "tradehook",
            "version": version,
        }

    # ────────────────────────────────────────────────────────────
    # Exception Handlers
    # ────────────────────────────────────────────────────────────

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info(
        "fastapi_application_created",
        version=version,
        api_prefix="/api"
    )

    return app


# Create the application
app = create_app()


if __name__ == "__main__":
    """
    PURPOSE: Run FastAPI application with Uvicorn server.

    Usage:
        uvicorn tradehook.main:app --host 0.0.0.0 --port 8000
    """
    import uvicorn

    uvicorn.run(
        "tradehook.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
    )
