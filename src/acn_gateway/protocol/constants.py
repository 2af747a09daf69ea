"""Protocol constants for ACN device communication."""

from enum import IntEnum

# ============================================================================
# MODBUS function codes
# ============================================================================


class FunctionCode(IntEnum):
    """Function codes understood by the ACN MODBUS slave."""

    READ_HOLDING_REGISTERS = 0x03
    WRITE_MULTIPLE_REGISTERS = 0x10
    REPORT_SLAVE_ID = 0x11

    # Control Solutions vendor extensions
    READ_FIFO8 = 0x41
    READ_OBJECT = 0x43
    WRITE_OBJECT = 0x44
    COMMAND = 0x47


# ============================================================================
# Device objects
# ============================================================================


class ObjectId(IntEnum):
    """Object identifiers for READ_OBJECT / WRITE_OBJECT."""

    FACTORY_CONFIG = 0
    USER_CONFIG = 1
    NETWORK_STATUS = 2
    SCAN_RESULT = 3
    CONNECTION_TABLE = 4
    COORD_STATUS = 5
    SENSOR_DATA = 7


DEBUG_FIFO_ID = 0
DEBUG_FIFO_MAX = 50

# ============================================================================
# Register banks (16-bit word addresses)
# ============================================================================

CONFIG_BANK_ADDRESS = 0x0000
CONFIG_BANK_LENGTH = 10
STATUS_BANK_ADDRESS = 0x0100
STATUS_BANK_LENGTH = 6
BANK2_ADDRESS = 0x0200
BANK2_LENGTH = 2
LOCAL_OUTPUTS_ADDRESS = 0x0300
LOCAL_OUTPUTS_LENGTH = 2
REMOTE_OUTPUTS_ADDRESS = 0x0400
REMOTE_OUTPUTS_LENGTH = 16

# ============================================================================
# Object layouts (bytes)
# ============================================================================

MAC_LEN = 8
SERIAL_NUMBER_LEN = 20
FACTORY_CONFIG_SIZE = MAC_LEN + SERIAL_NUMBER_LEN + 1

NETWORK_STATUS_SIZE = 6

SCAN_ENTRY_SIZE = 15
SCAN_CHANNEL_UNUSED = (0, 255)

CONNECTION_ENTRY_SIZE = 14
CONNECTION_VALID_BIT = 0x80

ROUTING_TABLE_SIZE = 8
COORD_STATUS_SIZE = ROUTING_TABLE_SIZE * 2 + 2

SENSOR_PAYLOAD_LEN = 40
SENSOR_TRAILER_LEN = 6
SENSOR_FRAME_MIN_LEN = SENSOR_PAYLOAD_LEN + SENSOR_TRAILER_LEN

# Top nibble of the first serial-number byte when the number is programmed
CS1108_SERIAL_MARKER = 0x20
CS1108_SERIAL_MAX = 0xFFFFFF


class SensorDataType(IntEnum):
    """Discriminator byte of a sensor telemetry frame."""

    NONE = 0
    CONTROLLER = 1
    GPS = 2


class Role(IntEnum):
    """Network role of a node."""

    END_DEVICE = 0
    COORDINATOR = 1
    NET_COORDINATOR = 2


ROLE_NAMES = {
    Role.END_DEVICE: "End Device",
    Role.COORDINATOR: "Coordinator",
    Role.NET_COORDINATOR: "Net Coordinator",
}


class SystemState(IntEnum):
    """Run state reported in the status bank."""

    NONE = 0
    RESET = 1
    POWERUP = 2
    IDLE = 3
    ACTIVE = 4
    PAIRING = 5


SYSTEM_STATE_NAMES = {
    SystemState.NONE: "None",
    SystemState.RESET: "Reset",
    SystemState.POWERUP: "Powerup",
    SystemState.IDLE: "Idle",
    SystemState.ACTIVE: "Active",
    SystemState.PAIRING: "Pairing",
}

CHARGE_MODES = {
    1: "Pre-charge",
    2: "Bulk",
    4: "Overcharge",
    8: "Float Charge",
}

OUTPUT_DUTY_CYCLES = (25, 50, 75, 100)
OUTPUT_PERIOD_STEP = 50  # ms per period count

# ============================================================================
# Communication Settings
# ============================================================================

RECONNECT_INTERVAL = 1.0  # Seconds between reopen attempts
POLL_INTERVAL = 1.0  # Status polling interval (seconds)
DEFAULT_SCAN_DURATION = 5  # Seconds
