"""Serial communication layer."""

from acn_gateway.serial.connection import (
    AcnConnection,
    ConnectionEvent,
    ConnectionNotice,
    ConnectionState,
    create_connection,
)
from acn_gateway.serial.master import Master, MasterEvent, MasterResponse, PymodbusMaster, list_ports

__all__ = [
    "AcnConnection",
    "ConnectionEvent",
    "ConnectionNotice",
    "ConnectionState",
    "Master",
    "MasterEvent",
    "MasterResponse",
    "PymodbusMaster",
    "create_connection",
    "list_ports",
]
