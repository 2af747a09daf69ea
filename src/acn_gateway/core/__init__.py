"""Core application functionality."""

from acn_gateway.core.cache import StatusCache
from acn_gateway.core.config import Settings, setup_logging
from acn_gateway.core.models import CommandResult

__all__ = [
    "CommandResult",
    "Settings",
    "StatusCache",
    "setup_logging",
]
