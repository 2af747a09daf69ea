"""ACN register protocol implementation."""

from acn_gateway.protocol.codec import (
    mac_to_string,
    short_address_to_string,
    string_to_mac,
)
from acn_gateway.protocol.commands import COMMANDS, ScanType, command_code
from acn_gateway.protocol.constants import FunctionCode, ObjectId
from acn_gateway.protocol.register_map import RegisterMap
from acn_gateway.protocol.registers import CompositeRegister, ObjectRegister, Register, RegisterKind

# DeviceHandler imported lazily to avoid circular import with serial.connection
# (serial.connection -> protocol.register_map -> protocol.__init__ -> handler -> serial.connection)


def __getattr__(name: str):
    if name == "DeviceHandler":
        from acn_gateway.protocol.handler import DeviceHandler

        return DeviceHandler
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "COMMANDS",
    "CompositeRegister",
    "DeviceHandler",
    "FunctionCode",
    "ObjectId",
    "ObjectRegister",
    "Register",
    "RegisterKind",
    "RegisterMap",
    "ScanType",
    "command_code",
    "mac_to_string",
    "short_address_to_string",
    "string_to_mac",
]
