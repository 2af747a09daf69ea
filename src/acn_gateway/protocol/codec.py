"""Binary primitives for ACN register and object payloads."""

import math
import re
import struct
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from acn_gateway.core.errors import DataIntegrityError, EncodingError
from acn_gateway.protocol.constants import (
    CHARGE_MODES,
    CS1108_SERIAL_MARKER,
    CS1108_SERIAL_MAX,
    MAC_LEN,
    OUTPUT_DUTY_CYCLES,
    OUTPUT_PERIOD_STEP,
    ROLE_NAMES,
    SYSTEM_STATE_NAMES,
)

_HEX_BYTE_RE = re.compile(r"^[0-9a-fA-F]{1,2}$")


def zero_pad(value: Any, length: int) -> str:
    """Left-pad the string form of *value* with zeros to *length* characters.

    Longer strings are truncated to their rightmost *length* characters.
    """
    return str(value).rjust(length, "0")[-length:]


# ============================================================================
# Addresses
# ============================================================================


def mac_to_string(buffer: bytes, offset: int = 0, length: int = MAC_LEN) -> str:
    """
    Format *length* bytes as colon separated hex.

    Args:
        buffer: Bytes containing the address
        offset: Offset of the first address byte
        length: Number of bytes to format

    Returns:
        String like '00:13:a2:00:40:0a:12:34'

    Raises:
        DataIntegrityError: If the buffer is too short

    Example:
        >>> mac_to_string(b'\\x00\\x01\\x02\\x03\\x04\\x05\\x06\\xff')
        '00:01:02:03:04:05:06:ff'
    """
    if offset < 0 or offset + length > len(buffer):
        raise DataIntegrityError(f"Address field at {offset}+{length} outside {len(buffer)} byte buffer")
    return ":".join(f"{b:02x}" for b in buffer[offset : offset + length])


def string_to_mac(text: str) -> bytes:
    """
    Parse a string like '11:22:33:44:55:66:77:88' into 8 bytes.

    Raises:
        EncodingError: Unless the string is exactly 8 colon separated hex bytes
    """
    if not isinstance(text, str):
        raise EncodingError(f"MAC address must be a string, got {type(text).__name__}")

    tokens = text.split(":")
    if len(tokens) != MAC_LEN or not all(_HEX_BYTE_RE.match(t) for t in tokens):
        raise EncodingError(f"Invalid MAC address: {text!r}")

    return bytes(int(t, 16) for t in tokens)


def short_address_to_string(buffer: bytes, offset: int = 0) -> str:
    """Read a little-endian 16-bit value and render it as 4 hex digits.

    Example:
        >>> short_address_to_string(b'\\x34\\x12')
        '1234'
    """
    if offset < 0 or offset + 2 > len(buffer):
        raise DataIntegrityError(f"Short address at {offset} outside {len(buffer)} byte buffer")
    return f"{struct.unpack_from('<H', buffer, offset)[0]:04x}"


def string_to_short_address(value: str | int) -> int:
    """Parse a short address given as an int or 1-4 hex digits ('0x' optional)."""
    if isinstance(value, bool):
        raise EncodingError(f"Invalid short address: {value!r}")
    if isinstance(value, int):
        address = value
    elif isinstance(value, str):
        text = value.strip().lower().removeprefix("0x")
        if not re.fullmatch(r"[0-9a-f]{1,4}", text):
            raise EncodingError(f"Invalid short address: {value!r}")
        address = int(text, 16)
    else:
        raise EncodingError(f"Invalid short address: {value!r}")

    if not 0 <= address <= 0xFFFF:
        raise EncodingError(f"Short address out of range: {value!r}")
    return address


# ============================================================================
# 16-bit word helpers
# ============================================================================


def check_uint16(value: Any) -> int:
    """Validate and return a raw register value."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"Register value must be an integer, got {value!r}")
    if not 0 <= value <= 0xFFFF:
        raise EncodingError(f"Register value out of range: {value}")
    return value


def value_to_hex16(value: int) -> str:
    """Render a register value as '0x%04X'."""
    return f"0x{value:04X}"


def hex16_to_value(value: str | int) -> int:
    """Inverse of value_to_hex16; also accepts plain integers."""
    if isinstance(value, str):
        text = value.strip()
        try:
            parsed = int(text, 16)
        except ValueError:
            raise EncodingError(f"Invalid hex value: {value!r}") from None
        return check_uint16(parsed)
    return check_uint16(value)


def uint16_to_bool_array(value: int) -> list[bool]:
    """Expand a 16-bit word into 16 booleans, bit 0 first."""
    return [bool(value & (1 << bit)) for bit in range(16)]


def uint8_to_bool_array(value: int) -> list[bool]:
    """Expand a byte into 8 booleans, bit 0 first."""
    return [bool(value & (1 << bit)) for bit in range(8)]


def bool_array_to_uint16(value: Iterable[Any] | int) -> int:
    """Pack up to 16 booleans (bit 0 first) into a word."""
    if isinstance(value, int) and not isinstance(value, bool):
        return check_uint16(value)
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise EncodingError(f"Expected a list of booleans, got {value!r}")

    bits = list(value)
    if len(bits) > 16:
        raise EncodingError(f"Too many bits for a 16-bit register: {len(bits)}")

    word = 0
    for bit, flag in enumerate(bits):
        if flag:
            word |= 1 << bit
    return word


# ============================================================================
# Bit fields
# ============================================================================


def decode_capability(byte: int) -> dict[str, Any]:
    """Decode the capability byte of a scan result entry."""
    return {
        "role": byte & 0x03,
        "sleep": bool(byte & 0x04),
        "securityEnable": bool(byte & 0x08),
        "repeatEnable": bool(byte & 0x10),
        "allowJoin": bool(byte & 0x20),
        "direct": bool(byte & 0x40),
        "altSourceAddress": bool(byte & 0x80),
    }


def decode_connection_status(byte: int) -> dict[str, bool]:
    """Decode the status byte of a connection table entry (bit 6 is reserved)."""
    return {
        "rxOnWhenIdle": bool(byte & 0x01),
        "directConnection": bool(byte & 0x02),
        "longAddressValid": bool(byte & 0x04),
        "shortAddressValid": bool(byte & 0x08),
        "finishJoin": bool(byte & 0x10),
        "isFamily": bool(byte & 0x20),
        "isValid": bool(byte & 0x80),
    }


def decode_remote_quality(value: int) -> dict[str, int]:
    """RSSI is carried in the low byte, LQI in the high byte."""
    return {"rssi": value & 0xFF, "lqi": (value >> 8) & 0xFF}


def decode_output_config(value: int) -> dict[str, Any]:
    """Decode an output configuration word (banks 3 and 4)."""
    duty = (value & 0x06) >> 1
    period = (value & 0xF8) >> 3
    return {
        "active": bool(value & 0x01),
        "duty": OUTPUT_DUTY_CYCLES[duty],
        "period": (period + 1) * OUTPUT_PERIOD_STEP,
    }


def encode_output_config(config: Mapping[str, Any]) -> int:
    """Inverse of decode_output_config."""
    if not isinstance(config, Mapping):
        raise EncodingError(f"Output config must be an object, got {config!r}")
    try:
        active = bool(config["active"])
        duty = config["duty"]
        period = config["period"]
    except KeyError as e:
        raise EncodingError(f"Output config missing field {e.args[0]!r}") from None

    if duty not in OUTPUT_DUTY_CYCLES:
        raise EncodingError(f"Invalid duty cycle {duty}; expected one of {OUTPUT_DUTY_CYCLES}")
    if (
        not isinstance(period, int)
        or period % OUTPUT_PERIOD_STEP
        or not OUTPUT_PERIOD_STEP <= period <= 32 * OUTPUT_PERIOD_STEP
    ):
        raise EncodingError(f"Invalid output period {period}")

    return int(active) | (OUTPUT_DUTY_CYCLES.index(duty) << 1) | ((period // OUTPUT_PERIOD_STEP - 1) << 3)


def decode_state_flags(byte: int) -> dict[str, Any]:
    """Decode the CS1108 controller state byte."""
    return {
        "charging": byte & 0x0F,
        "chargeMode": CHARGE_MODES.get(byte & 0x0F, "Not Charging"),
        "inUse": bool(byte & 0x10),
    }


def role_to_string(code: int) -> str:
    return ROLE_NAMES.get(code, "Unknown")


def system_state_to_string(code: int) -> str:
    return SYSTEM_STATE_NAMES.get(code, "Unknown")


# ============================================================================
# Fixed point
# ============================================================================


def voltage(value: int) -> float:
    """Convert a raw CS1108 battery reading to volts."""
    return value * 1469 / 3 / 16777216.0 * 24


def cs1108_hours(fraction: int, hours: int) -> float:
    """Combine the fractional and whole hour words, rounded half up to 0.1 h."""
    return math.floor((hours + fraction / 65536) * 10 + 0.5) / 10


def cs1108_serial(values: bytes) -> str:
    """
    Decode a 4 byte CS1108 serial number field.

    The field is only valid when the top nibble of the first byte is the
    0x2 marker; otherwise the serial number is not programmed.

    Example:
        >>> cs1108_serial(b'\\x20\\x00\\x30\\x39')
        'S0012345'
    """
    if len(values) != 4:
        raise DataIntegrityError(f"Serial number field must be 4 bytes, got {len(values)}")
    if (values[0] & 0xF0) != CS1108_SERIAL_MARKER:
        return ""
    number = (values[1] << 16) | (values[2] << 8) | values[3]
    return "S" + zero_pad(number, 7)


def string_to_cs1108_serial(text: str) -> bytes:
    """Inverse of cs1108_serial for programmed serial numbers."""
    if not isinstance(text, str):
        raise EncodingError(f"Serial number must be a string, got {text!r}")
    match = re.fullmatch(r"S?(\d+)", text.strip(), re.IGNORECASE)
    if match is None:
        raise EncodingError(f"Invalid serial number: {text!r}")
    number = int(match.group(1))
    if number > CS1108_SERIAL_MAX:
        raise EncodingError(f"Serial number out of range: {text!r}")
    return bytes([CS1108_SERIAL_MARKER]) + number.to_bytes(3, "big")


# ============================================================================
# Record arrays
# ============================================================================


def decode_record_array(
    buffer: bytes,
    entry_size: int,
    decode_entry: Callable[[bytes], dict[str, Any] | None],
) -> list[dict[str, Any]]:
    """
    Split *buffer* into fixed size entries and decode each one.

    Trailing bytes that do not fill a whole entry are ignored. Entries for
    which *decode_entry* returns None (unused slot, validity bit clear) are
    dropped without error.
    """
    entries = []
    for index in range(len(buffer) // entry_size):
        start = index * entry_size
        entry = decode_entry(bytes(buffer[start : start + entry_size]))
        if entry is not None:
            entries.append(entry)
    return entries
