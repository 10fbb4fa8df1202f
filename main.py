"""
Custom Design Fulfillment - Main Application

FastAPI application entry point.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog
from datetime import datetime
import logging

from config import settings, check_connection
from exceptions import AppError
from integrations.shopify import get_shopify_client

# Configure structured logging
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

WEBHOOK_CALLBACK_PATH = "/webhooks/orders-create"


def register_webhook() -> None:
    """Point the shop's ORDERS_CREATE subscription at this service."""
    if not settings.public_host:
        logger.error("webhook_registration_skipped", reason="PUBLIC_HOST not set")
        return

    callback_url = settings.public_host.rstrip("/") + WEBHOOK_CALLBACK_PATH
    try:
        get_shopify_client().register_orders_create_webhook(callback_url)
    except AppError as e:
        logger.error("webhook_registration_failed", error=e.message, code=e.code)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: Check storage buckets, optionally register the webhook
    Shutdown: Clean up resources
    """
    # Startup
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug
    )

    storage_status = check_connection()
    if storage_status["status"] == "healthy":
        logger.info(
            "storage_connected",
            templates_bucket=storage_status["templates_bucket"],
            designs_bucket=storage_status["designs_bucket"]
        )
    else:
        logger.error(
            "storage_connection_failed",
            error=storage_status.get("error")
        )

    if settings.register_webhook_on_startup:
        register_webhook()

    yield

    # Shutdown
    logger.info("application_shutting_down")


# Create FastAPI app
app = FastAPI(
    title="Custom Design Fulfillment",
    description="Personalized design files for custom merchandise orders",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Storage reachability and which integrations are configured
    """
    storage_status = check_connection()

    return {
        "status": "healthy" if storage_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
        "storage": storage_status,
        "shopify_configured": settings.shopify_configured,
        "telegram_configured": settings.telegram_configured,
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Return the standard error format for domain errors raised outside routes."""
    logger.warning(
        "app_error",
        path=request.url.path,
        code=exc.code,
        error=exc.message
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler.

    Catches unhandled exceptions and returns standard error format.
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )


# ===================
# INCLUDE ROUTERS
# ===================
from routes.webhooks import router as webhooks_router
from routes.fulfillment import router as fulfillment_router

app.include_router(webhooks_router)  # Prefix already in router
app.include_router(fulfillment_router)  # Prefix already in router


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
