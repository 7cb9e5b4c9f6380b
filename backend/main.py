"""
FastAPI application entry point for the license engine.

Starts the license watcher on startup and stops it on shutdown. The engine
handle lives on app.state.license_watcher; routes reach it through the
get_license_watcher dependency.

Authentication is handled upstream: the auth layer sets request.state
user_id, tenant_id and roles before these routes run.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from license_engine.api.routes import licenses
from license_engine.config.license_policy import get_license_policy
from license_engine.licensing.channel import create_push_channel
from license_engine.licensing.watcher import initialize_watcher, reset_watcher

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting license engine API")

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        logger.error(
            "DATABASE_URL is not set. The license watcher cannot start and "
            "license endpoints will return 503."
        )
        app.state.license_watcher = None
    else:
        masked = database_url.split("@")[-1] if "@" in database_url else "(local)"
        logger.info("DATABASE_URL configured", extra={"host_db": masked})

        policy = get_license_policy()
        channel = create_push_channel(topic_prefix=policy.topic_prefix)
        app.state.license_watcher = initialize_watcher(channel, config=policy)

    yield

    # Shutdown
    logger.info("Shutting down license engine API")
    watcher = app.state.license_watcher
    reset_watcher()
    if watcher is not None:
        watcher.channel.close()


# Create FastAPI app
app = FastAPI(
    title="License Engine API",
    description="License lifecycle and real-time enforcement for colleges",
    version="0.1.0",
    lifespan=lifespan
)

# Include admin license routes (requires super admin)
app.include_router(licenses.router)

# Include license access check for the caller's tenant
app.include_router(licenses.access_router)


@app.get("/health", include_in_schema=False)
async def health(request: Request):
    watcher = getattr(request.app.state, "license_watcher", None)
    return {
        "status": "ok",
        "license_watcher_running": bool(watcher and watcher.is_running),
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "tenant_id": getattr(request.state, "tenant_id", "unknown"),
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
