"""FastAPI dependency injection for shared application state."""

from acn_gateway.core.cache import StatusCache
from acn_gateway.core.config import Settings
from acn_gateway.protocol.handler import DeviceHandler
from acn_gateway.serial.connection import AcnConnection


class AppState:
    """Holds shared application state instances.

    Created during app startup and accessed via FastAPI dependencies.
    """

    def __init__(self) -> None:
        self.settings: Settings | None = None
        self.connection: AcnConnection | None = None
        self.cache: StatusCache | None = None
        self.handler: DeviceHandler | None = None


# Global app state singleton
app_state = AppState()


def get_cache() -> StatusCache:
    """Get the status cache instance."""
    assert app_state.cache is not None, "App not initialized"
    return app_state.cache


def get_handler() -> DeviceHandler:
    """Get the device handler instance."""
    assert app_state.handler is not None, "App not initialized"
    return app_state.handler

