"""
Main FastAPI application for the Balances webhook ingest service.
"""
import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import settings
from .. import __version__
from ..core.exceptions import WebhookError
from ..core.logging import set_correlation_id, setup_logging
from ..models.database import check_db_connection, init_db
from .routes import router, v2_router

setup_logging(settings.log_level, settings.log_json)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="Ingests bank notifications and structured webhooks into deduplicated transactions",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Timestamp", "X-API-Key", "X-Correlation-ID"],
)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Tag the request with a correlation id and add processing time header to responses."""
    correlation_id = set_correlation_id(request.headers.get("X-Correlation-ID"))
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


@app.exception_handler(WebhookError)
async def webhook_error_handler(request: Request, exc: WebhookError):
    """Map application errors raised by management endpoints to their status code."""
    logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "error": "Internal server error"}
    )


@app.on_event("startup")
async def startup_event():
    """Application startup event."""
    logger.info(f"Starting {settings.app_name} v{__version__}")

    if not settings.webhook_secret:
        logger.warning("WEBHOOK_SECRET is not set; webhook endpoints will answer 500 until it is")

    if check_db_connection():
        init_db()
    else:
        logger.warning("Application will start, but the database is unreachable")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event."""
    logger.info(f"Shutting down {settings.app_name}")


# Include API routes
app.include_router(router, prefix="/api/v1", tags=["api"])
app.include_router(v2_router, prefix="/api/v2", tags=["webhooks"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Balances Webhook Ingest API",
        "version": __version__,
        "docs": "/docs",
        "health": "/api/v1/health"
    }


def main():
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    # Prefer platform-provided PORT and HOST, fall back to settings
    port = int(os.environ.get("PORT", settings.app_port))
    host = os.environ.get("HOST", settings.app_host) or settings.app_host

    uvicorn.run(
        "balances_webhook.api.main:app",
        host=host,
        port=port,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
