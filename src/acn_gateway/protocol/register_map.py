"""Register map for ACN devices (CS document DOC0003825A).

Item names are the public identifiers used by the CLI and HTTP API
(``acn read config``, ``GET /api/registers/networkStatus``).
"""

from collections.abc import Iterator

from acn_gateway.protocol.codec import (
    bool_array_to_uint16,
    decode_output_config,
    decode_remote_quality,
    encode_output_config,
    hex16_to_value,
    system_state_to_string,
    uint16_to_bool_array,
    value_to_hex16,
)
from acn_gateway.protocol.constants import (
    BANK2_ADDRESS,
    CONFIG_BANK_ADDRESS,
    COORD_STATUS_SIZE,
    LOCAL_OUTPUTS_ADDRESS,
    LOCAL_OUTPUTS_LENGTH,
    NETWORK_STATUS_SIZE,
    REMOTE_OUTPUTS_ADDRESS,
    REMOTE_OUTPUTS_LENGTH,
    STATUS_BANK_ADDRESS,
    ObjectId,
)
from acn_gateway.protocol.registers import CompositeRegister, ObjectRegister, Register
from acn_gateway.protocol.telemetry import (
    decode_connection_table,
    decode_coord_status,
    decode_network_status,
    decode_scan_result,
    decode_sensor_data,
)


def _config_bank() -> dict[str, Register]:
    base = CONFIG_BANK_ADDRESS
    registers = {
        "modbusSlaveId": Register("Slave ID", base + 0),
        "channelMap": Register("Channel Map", base + 1, formatter=value_to_hex16, unformatter=hex16_to_value),
        "msBetweenStatusTx": Register("Status Interval", base + 2, units="ms"),
        "powerOffSec": Register("Power Off", base + 3, units="s"),
        "networkFormation": Register("Formation", base + 4),
        "pairingTimeout": Register("Pairing Timeout", base + 5, units="s"),
        "switchDefaults": Register("Switch Defaults", base + 6),
        "maxHops": Register("Max Hops", base + 7),
        "slowSpeed": Register("Slow Speed", base + 8, formatter=value_to_hex16, unformatter=hex16_to_value),
        "fastSpeed": Register("Fast Speed", base + 9, formatter=value_to_hex16, unformatter=hex16_to_value),
    }
    registers["config"] = CompositeRegister("Configuration", base, list(registers.items()))
    return registers


def _status_bank() -> dict[str, Register]:
    base = STATUS_BANK_ADDRESS
    switches = dict(formatter=uint16_to_bool_array, unformatter=bool_array_to_uint16)
    registers = {
        "localSwitches": Register("Local Switches", base + 0, **switches),
        "remoteSwitches": Register("Remote Switches", base + 1, **switches),
        "remoteStatus": Register("Remote Status", base + 2, writable=False),
        "remoteQuality": Register("Remote Quality", base + 3, formatter=decode_remote_quality, writable=False),
        "systemState": Register("State", base + 4, formatter=system_state_to_string, writable=False),
        "volts": Register("Volts", base + 5, writable=False),
    }
    registers["bank1"] = CompositeRegister("Bank 1", base, list(registers.items()), writable=False)
    return registers


def _bank2() -> dict[str, Register]:
    registers = {
        "channel": Register("Channel", BANK2_ADDRESS + 0),
        "fault": Register("Fault", BANK2_ADDRESS + 1),
    }
    registers["bank2"] = CompositeRegister("Bank 2", BANK2_ADDRESS, list(registers.items()))
    return registers


def _outputs(prefix: str, title: str, base: int, count: int, block_name: str, block_title: str) -> dict[str, Register]:
    registers = {
        f"{prefix}{i}": Register(
            f"{title} {i}", base + i, formatter=decode_output_config, unformatter=encode_output_config
        )
        for i in range(count)
    }
    registers[block_name] = CompositeRegister(block_title, base, list(registers.items()), as_list=True)
    return registers


def _objects() -> dict[str, Register]:
    return {
        "networkStatus": ObjectRegister(
            "Network Status", ObjectId.NETWORK_STATUS, decode_network_status, size=NETWORK_STATUS_SIZE
        ),
        "scanResult": ObjectRegister("Scan Result", ObjectId.SCAN_RESULT, decode_scan_result),
        "connectionTable": ObjectRegister("Connections", ObjectId.CONNECTION_TABLE, decode_connection_table),
        "coordStatus": ObjectRegister(
            "Coordinator Status", ObjectId.COORD_STATUS, decode_coord_status, min_size=COORD_STATUS_SIZE
        ),
        "sensorData": ObjectRegister("Sensor Data", ObjectId.SENSOR_DATA, decode_sensor_data),
    }


class RegisterMap:
    """Catalog of named register descriptors, grouped in banks.

    Each instance owns its own descriptors, so two connections never share
    value cells.
    """

    def __init__(self) -> None:
        self._banks: dict[str, dict[str, Register]] = {
            "config": _config_bank(),
            "status": _status_bank(),
            "bank2": _bank2(),
            "localOutputs": _outputs(
                "lo", "Local Output", LOCAL_OUTPUTS_ADDRESS, LOCAL_OUTPUTS_LENGTH, "localOutputs", "Local Outputs"
            ),
            "remoteOutputs": _outputs(
                "ro", "Remote Output", REMOTE_OUTPUTS_ADDRESS, REMOTE_OUTPUTS_LENGTH, "remoteOutputs", "Remote Outputs"
            ),
            "objects": _objects(),
        }
        self._items: dict[str, Register] = {}
        for bank in self._banks.values():
            self._items.update(bank)
        self.validate_layout()

    def get(self, name: str) -> Register:
        """Look up a descriptor by item name.

        Raises:
            KeyError: If the name is not in the map
        """
        return self._items[name]

    def __getitem__(self, name: str) -> Register:
        return self._items[name]

    def __contains__(self, name: object) -> bool:
        return name in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def names(self) -> list[str]:
        return list(self._items)

    def items(self) -> list[tuple[str, Register]]:
        return list(self._items.items())

    def banks(self) -> dict[str, dict[str, Register]]:
        return {name: dict(bank) for name, bank in self._banks.items()}

    def validate_layout(self) -> None:
        """Check that holding register spans in a bank do not overlap.

        Scalars inside a composite are part of the composite's span, so
        only composites (or free-standing scalars) are compared.

        Raises:
            ValueError: If two spans overlap
        """
        for bank_name, bank in self._banks.items():
            composites = [r for r in bank.values() if isinstance(r, CompositeRegister)]
            covered = {id(child) for c in composites for child in c.children}
            spans = sorted(
                (r.address, r.address + r.length, r.title)
                for r in bank.values()
                if not isinstance(r, ObjectRegister) and id(r) not in covered
            )
            for (start, end, title), (next_start, _, next_title) in zip(spans, spans[1:]):
                if next_start < end:
                    raise ValueError(
                        f"Bank {bank_name}: {title} (0x{start:04X}-0x{end - 1:04X}) overlaps {next_title}"
                    )
