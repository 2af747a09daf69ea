"""Command vocabulary and command-specific payloads."""

import struct
from enum import IntEnum
from typing import Any

from acn_gateway.core.errors import DataIntegrityError, EncodingError, UnknownCommandError
from acn_gateway.protocol.codec import string_to_short_address
from acn_gateway.protocol.constants import DEFAULT_SCAN_DURATION
from acn_gateway.protocol.telemetry import decode_scan_result

# Order matters: the command code is the position in this tuple.
COMMANDS = (
    "reset",
    "save",
    "restore",
    "pair",
    "clear",
    "broadcast",
    "scan",
    "ping",
    "unlock",
)

UNLOCK_KEY = b"\xac\x4e"


class ScanType(IntEnum):
    NOISE = 1
    ACTIVE = 2
    BOTH = 3


def command_code(name: str) -> int:
    """
    Resolve a symbolic command name to its code.

    Raises:
        UnknownCommandError: If the name is not in the vocabulary

    Example:
        >>> command_code("pair")
        3
    """
    try:
        return COMMANDS.index(name)
    except ValueError:
        raise UnknownCommandError(f"Unknown command: {name!r}") from None


def parse_scan_type(value: str | int | None) -> ScanType:
    """Map 'noise' / 'active' / 'both' (or the numeric code) to a ScanType.

    Anything unrecognised falls back to a noise scan.
    """
    if isinstance(value, ScanType):
        return value
    if isinstance(value, int):
        try:
            return ScanType(value)
        except ValueError:
            return ScanType.NOISE
    if isinstance(value, str):
        try:
            return ScanType[value.strip().upper()]
        except KeyError:
            pass
    return ScanType.NOISE


def build_scan_payload(scan_type: str | int | None, duration: int | None = None) -> bytes:
    """Scan payload: [type, duration seconds]."""
    if duration is None:
        duration = DEFAULT_SCAN_DURATION
    if isinstance(duration, bool) or not isinstance(duration, int) or not 1 <= duration <= 255:
        raise EncodingError(f"Scan duration must be 1-255 seconds, got {duration!r}")
    return bytes([parse_scan_type(scan_type), duration])


def parse_scan_response(values: bytes) -> list[dict[str, Any]]:
    """Scan responses carry scan result entries."""
    return decode_scan_result(values)


def build_ping_payload(address: str | int) -> bytes:
    """Ping payload: target short address, little-endian."""
    return struct.pack("<H", string_to_short_address(address))


def parse_ping_result(address: str | int, values: bytes) -> dict[str, Any]:
    """Decode a ping answer: status byte, then optional RSSI and LQI."""
    if not values:
        raise DataIntegrityError("Empty ping response")

    status = values[0]
    return {
        "address": f"{string_to_short_address(address):04x}",
        "status": status,
        "success": status == 0,
        "rssi": values[1] if len(values) > 1 else None,
        "lqi": values[2] if len(values) > 2 else None,
    }


def build_unlock_payload() -> bytes:
    return UNLOCK_KEY


def payload_from_ints(values: list[int]) -> bytes:
    """Convert a list of byte values (e.g. from the CLI or HTTP) to bytes."""
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 255:
            raise EncodingError(f"Invalid data value: {value!r}")
    return bytes(values)
