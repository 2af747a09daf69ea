"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from acn_gateway import __version__
from acn_gateway.api.dependencies import app_state
from acn_gateway.api.routes import router as api_router
from acn_gateway.api.websocket import router as ws_router
from acn_gateway.core.cache import StatusCache
from acn_gateway.core.config import Settings, setup_logging
from acn_gateway.core.errors import TransportOpenError
from acn_gateway.core.models import HealthResponse
from acn_gateway.protocol.handler import DeviceHandler
from acn_gateway.serial.connection import create_connection

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = app_state.settings or Settings()
    app_state.settings = settings

    setup_logging(settings.log_level)
    logger.info(f"Starting ACN Gateway v{__version__}")

    # Initialize components
    app_state.cache = StatusCache()
    app_state.connection = create_connection(settings)
    app_state.handler = DeviceHandler(
        connection=app_state.connection,
        cache=app_state.cache,
        poll_interval=settings.poll_interval,
    )

    try:
        await app_state.connection.open()
        logger.info(f"Connected to {settings.serial_port}")
    except TransportOpenError as e:
        logger.warning(f"Failed to connect to {settings.serial_port}: {e}")
        # Keep retrying in the background until the device shows up
        app_state.connection.start_reconnect()

    # Always start handler - poll loop waits for connection
    await app_state.handler.start()

    yield

    # Shutdown
    logger.info("Shutting down...")
    if app_state.handler is not None:
        await app_state.handler.stop()
    if app_state.connection is not None:
        await app_state.connection.shutdown()


app = FastAPI(
    title="ACN Gateway",
    description="Local REST API gateway for ACN wireless nodes",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(api_router)
app.include_router(ws_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "ACN Gateway",
        "version": __version__,
        "status": "running",
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    handler = app_state.handler
    cache = app_state.cache

    if handler is None or cache is None:
        return HealthResponse(
            status="unhealthy",
            device_connected=False,
            connection_state="closed",
            last_update=None,
        )

    connected = handler.connected
    status = "healthy" if connected and cache.count > 0 else ("degraded" if connected else "unhealthy")

    return HealthResponse(
        status=status,
        device_connected=connected,
        connection_state=handler.connection.state.value,
        last_update=cache.last_update,
    )


def main():
    """Run the application (for CLI entry point)."""
    import uvicorn

    settings = Settings()
    setup_logging(settings.log_level)
    app_state.settings = settings

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
