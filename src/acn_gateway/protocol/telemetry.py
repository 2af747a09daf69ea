"""Decoders for ACN device objects.

Object layouts (all multi-byte address fields are little-endian):

- Network status (6 bytes): short address, parent, PAN ID, channel
- Scan result: 15 byte entries, channel 0 or 255 marks an unused slot
- Connection table: 14 byte entries, bit 0x80 of the status byte marks a
  valid entry
- Coordinator status (18 bytes): routing table, error counters,
  coordinator bitmask, role
- Sensor data: type byte + 39 byte type-specific payload + 6 byte trailer
"""

import re
import struct
from collections.abc import Mapping
from typing import Any

from acn_gateway.core.errors import DataIntegrityError, EncodingError
from acn_gateway.protocol.codec import (
    cs1108_hours,
    cs1108_serial,
    decode_capability,
    decode_connection_status,
    decode_record_array,
    decode_state_flags,
    mac_to_string,
    role_to_string,
    short_address_to_string,
    string_to_mac,
    uint8_to_bool_array,
    voltage,
)
from acn_gateway.protocol.constants import (
    CONNECTION_ENTRY_SIZE,
    CONNECTION_VALID_BIT,
    COORD_STATUS_SIZE,
    FACTORY_CONFIG_SIZE,
    MAC_LEN,
    NETWORK_STATUS_SIZE,
    ROUTING_TABLE_SIZE,
    SCAN_CHANNEL_UNUSED,
    SCAN_ENTRY_SIZE,
    SENSOR_FRAME_MIN_LEN,
    SENSOR_PAYLOAD_LEN,
    SERIAL_NUMBER_LEN,
    SensorDataType,
)

# ============================================================================
# Network objects
# ============================================================================


def decode_network_status(buffer: bytes) -> dict[str, Any]:
    """
    Decode the network status object.

    Example:
        >>> decode_network_status(bytes([0x34, 0x12, 0x07, 0xCD, 0xAB, 0x0B]))
        {'shortAddress': '1234', 'parent': 7, 'panId': 'abcd', 'currentChannel': 11}
    """
    if len(buffer) != NETWORK_STATUS_SIZE:
        raise DataIntegrityError(f"Network status must be {NETWORK_STATUS_SIZE} bytes, got {len(buffer)}")

    return {
        "shortAddress": short_address_to_string(buffer, 0),
        "parent": buffer[2],
        "panId": short_address_to_string(buffer, 3),
        "currentChannel": buffer[5],
    }


def _decode_scan_entry(entry: bytes) -> dict[str, Any] | None:
    channel = entry[0]
    if channel in SCAN_CHANNEL_UNUSED:
        return None

    return {
        "channel": channel,
        "address": mac_to_string(entry, 1, MAC_LEN),
        "panId": short_address_to_string(entry, 9),
        "rssi": entry[11],
        "lqi": entry[12],
        "capability": decode_capability(entry[13]),
        "peerInfo": entry[14],
    }


def decode_scan_result(buffer: bytes) -> list[dict[str, Any]]:
    """Decode the scan result table, skipping unused slots."""
    return decode_record_array(buffer, SCAN_ENTRY_SIZE, _decode_scan_entry)


def _decode_connection_entry(entry: bytes) -> dict[str, Any] | None:
    if not entry[12] & CONNECTION_VALID_BIT:
        return None

    return {
        "panId": short_address_to_string(entry, 0),
        "altAddress": short_address_to_string(entry, 2),
        "address": mac_to_string(entry, 4, MAC_LEN),
        "status": decode_connection_status(entry[12]),
        "extra": entry[13],
    }


def decode_connection_table(buffer: bytes) -> list[dict[str, Any]]:
    """Decode the connection table, skipping entries without the valid bit."""
    return decode_record_array(buffer, CONNECTION_ENTRY_SIZE, _decode_connection_entry)


def decode_coord_status(buffer: bytes) -> dict[str, Any]:
    """Decode the coordinator status object (routing table and role)."""
    if len(buffer) < COORD_STATUS_SIZE:
        raise DataIntegrityError(f"Coordinator status needs {COORD_STATUS_SIZE} bytes, got {len(buffer)}")

    routing_table = buffer[0:ROUTING_TABLE_SIZE]
    routing_errors = buffer[ROUTING_TABLE_SIZE : 2 * ROUTING_TABLE_SIZE]
    coordinators = buffer[2 * ROUTING_TABLE_SIZE]
    role = buffer[2 * ROUTING_TABLE_SIZE + 1]

    return {
        "role": role,
        "roleType": role_to_string(role),
        "known": uint8_to_bool_array(coordinators),
        "route": [
            {"to": i, "nextHop": routing_table[i], "errors": routing_errors[i]} for i in range(ROUTING_TABLE_SIZE)
        ],
    }


# ============================================================================
# Sensor telemetry
# ============================================================================


def _decode_controller_report(buffer: bytes) -> dict[str, Any]:
    fraction, hours = struct.unpack_from("<HH", buffer, 21)
    no_float, low_bat_min, low_bat_hrs, overtemp, throt_fail, current_fault = struct.unpack_from("6B", buffer, 25)
    (battery,) = struct.unpack_from(">H", buffer, 31)

    return {
        "datatype": SensorDataType.CONTROLLER.value,
        "serial": cs1108_serial(buffer[1:5]),
        "faultLog": list(buffer[5:21]),
        "meters": {
            "hours": cs1108_hours(fraction, hours),
            "noFloat": no_float,
            "lowBatMin": low_bat_min,
            "lowBatHrs": low_bat_hrs,
            "overtemp": overtemp,
            "throtFail": throt_fail,
        },
        "currentFault": current_fault,
        "batteryVoltage": voltage(battery),
        "stateFlags": decode_state_flags(buffer[33]),
    }


def _decode_gps_report(buffer: bytes) -> dict[str, Any]:
    latitude, longitude = struct.unpack_from("<ii", buffer, 5)
    sats, fix_valid = struct.unpack_from("2B", buffer, 13)
    (ehpe,) = struct.unpack_from("<I", buffer, 15)
    cno_min, cno_max, cno_avg, violated, action = struct.unpack_from("5B", buffer, 19)

    return {
        "datatype": SensorDataType.GPS.value,
        "serial": cs1108_serial(buffer[1:5]),
        "latitude": latitude / 10000000.0,
        "longitude": longitude / 10000000.0,
        "sats": sats,
        "fixValid": fix_valid,
        "ehpe": ehpe / 100.0,
        "cnoMin": cno_min,
        "cnoMax": cno_max,
        "cnoAvg": cno_avg,
        "boundaryViolated": violated,
        "boundaryAction": action,
    }


_SENSOR_DECODERS = {
    SensorDataType.CONTROLLER: _decode_controller_report,
    SensorDataType.GPS: _decode_gps_report,
}


def decode_sensor_data(buffer: bytes) -> dict[str, Any]:
    """
    Decode an asynchronous sensor telemetry frame.

    Frames shorter than the minimum length mean "no message pending" and
    decode to ``{"msgtype": 0}``. Otherwise the leading type byte selects the
    payload layout; unknown types carry no packet but still report the
    trailer (source address, message type, length, RSSI, LQI).
    """
    if len(buffer) < SENSOR_FRAME_MIN_LEN:
        return {"msgtype": 0}

    decoder = _SENSOR_DECODERS.get(buffer[0])
    packet = decoder(buffer) if decoder is not None else None

    trailer = SENSOR_PAYLOAD_LEN
    msgtype, length, rssi, lqi = struct.unpack_from("4B", buffer, trailer + 2)

    return {
        "from": short_address_to_string(buffer, trailer),
        "msgtype": msgtype,
        "length": length,
        "rssi": rssi,
        "lqi": lqi,
        "packet": packet,
    }


# ============================================================================
# Identity objects
# ============================================================================


def decode_factory_config(buffer: bytes) -> dict[str, Any] | None:
    """Decode the factory configuration object.

    Returns None when the object has not been programmed (device answers
    with a single zero byte).
    """
    if len(buffer) == 1 and buffer[0] == 0:
        return None
    if len(buffer) != FACTORY_CONFIG_SIZE:
        raise DataIntegrityError(f"Factory config must be {FACTORY_CONFIG_SIZE} bytes, got {len(buffer)}")

    serial = buffer[MAC_LEN : MAC_LEN + SERIAL_NUMBER_LEN].decode("ascii", errors="ignore")
    return {
        "macAddress": mac_to_string(buffer, 0, MAC_LEN),
        "serialNumber": re.sub(r"\W", "", serial),
        "productType": buffer[FACTORY_CONFIG_SIZE - 1],
    }


def encode_factory_config(config: Mapping[str, Any]) -> bytes:
    """Validate and encode a factory configuration.

    Raises:
        EncodingError: If any field is missing or out of range
    """
    if not isinstance(config, Mapping):
        raise EncodingError("Invalid object for factory config")
    if not config.get("macAddress") or not config.get("serialNumber") or "productType" not in config:
        raise EncodingError("Invalid object for factory config")

    mac = string_to_mac(config["macAddress"])

    serial = config["serialNumber"]
    if not isinstance(serial, str):
        raise EncodingError("Serial number must be a string")
    try:
        serial_bytes = serial.encode("ascii")
    except UnicodeEncodeError:
        raise EncodingError(f"Serial number must be ASCII: {serial!r}") from None
    if len(serial_bytes) > SERIAL_NUMBER_LEN:
        raise EncodingError(f"Serial number longer than {SERIAL_NUMBER_LEN} characters")

    product = config["productType"]
    if isinstance(product, bool) or not isinstance(product, int) or not 0 <= product < 256:
        raise EncodingError(f"Invalid product type: {product!r}")

    return mac + serial_bytes.ljust(SERIAL_NUMBER_LEN, b"\x00") + bytes([product])


def decode_slave_id(buffer: bytes) -> dict[str, Any]:
    """Decode a REPORT_SLAVE_ID answer.

    Layout: product type, run indicator (0xFF when running), three firmware
    version bytes, then optional device specific bytes.
    """
    if len(buffer) < 2:
        raise DataIntegrityError(f"Slave ID response too short: {len(buffer)} bytes")

    result: dict[str, Any] = {
        "productType": buffer[0],
        "run": buffer[1] == 0xFF,
        "version": None,
        "extra": "",
    }
    if len(buffer) >= 5:
        result["version"] = ".".join(str(b) for b in buffer[2:5])
        result["extra"] = bytes(buffer[5:]).hex()
    return result
