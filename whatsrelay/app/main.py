"""
whatsrelay - WhatsApp <-> n8n relay

FastAPI application entry point.

uvicorn turns SIGINT/SIGTERM into a graceful shutdown: the lifespan
exit path shuts the lifecycle controller down (cancelling timers and
logging out) before the process exits with status 0.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from whatsrelay import __version__
from whatsrelay.app.api import health_router, messages_router, qr_router
from whatsrelay.app.dependencies import get_settings, initialize_services, shutdown_services
from whatsrelay.errors import RelayError

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    """Uncaught task errors are logged, never fatal."""
    error = context.get("exception")
    message = context.get("message", "Unhandled exception in event loop")
    logger.error(f"Uncaught exception: {message}", exc_info=error)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

    # Startup
    logger.info(f"Server running on port {settings.port}")
    try:
        await initialize_services()
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")
    try:
        await shutdown_services()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)


app = FastAPI(
    title="whatsrelay",
    description="Relay WhatsApp messages to an n8n webhook and send replies back",
    version=__version__,
    lifespan=lifespan,
    debug=not settings.is_production,
)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Map request-scoped errors onto their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(health_router)
app.include_router(messages_router)
app.include_router(qr_router)


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "whatsrelay.app.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
