"""MODBUS master used by the connection manager.

Framing, serial I/O, transaction matching and exception reporting are
delegated to pymodbus. This module only adapts pymodbus to the small request
primitive the connection manager needs, and adds the Control Solutions
vendor function codes as custom PDUs.
"""

import logging
import struct
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from pymodbus.client import AsyncModbusSerialClient
from pymodbus.exceptions import ModbusException
from pymodbus.pdu import ModbusPDU
from serial import SerialException
from serial.tools import list_ports as serial_list_ports

from acn_gateway.core.errors import TransportError, TransportOpenError
from acn_gateway.protocol.constants import FunctionCode

logger = logging.getLogger(__name__)


class MasterEvent(str, Enum):
    """Connection-level notifications raised by a master."""

    OPEN = "open"
    CLOSE = "close"
    ERROR = "error"
    DISCONNECTED = "disconnected"


MasterListener = Callable[[MasterEvent, Exception | None], None]


@dataclass
class MasterResponse:
    """Normalised answer to one request.

    Attributes:
        values: Payload bytes (register words are big-endian)
        exception_code: MODBUS exception code if the device refused the request
        status: Status byte for acknowledged writes (0 = success)
    """

    values: bytes = b""
    exception_code: int | None = None
    status: int = 0


class Master(Protocol):
    """Interface of the external request/response master."""

    def attach(self, listener: MasterListener) -> None:
        """Install the single event listener, replacing any previous one."""

    async def open(self) -> None:
        """Open the link. Raises TransportOpenError on failure."""

    def close(self) -> None:
        """Close the link."""

    async def request(
        self,
        function: FunctionCode,
        address: int = 0,
        payload: bytes = b"",
        count: int = 0,
    ) -> MasterResponse:
        """Send one request and wait for its answer. Raises TransportError."""


# ============================================================================
# Vendor PDUs
# ============================================================================


class _IdRequest(ModbusPDU):
    """Request made of an id byte, optionally followed by a length-prefixed payload."""

    with_payload = False

    def __init__(self, ident: int = 0, data: bytes = b"", dev_id: int = 1, transaction_id: int = 0) -> None:
        super().__init__(dev_id=dev_id, transaction_id=transaction_id)
        self.ident = ident
        self.data = bytes(data)

    def encode(self) -> bytes:
        if not self.with_payload:
            return struct.pack(">B", self.ident)
        return struct.pack(">BB", self.ident, len(self.data)) + self.data

    def decode(self, data: bytes) -> None:
        self.ident = data[0]
        if self.with_payload:
            self.data = bytes(data[2 : 2 + data[1]])


class _ByteCountResponse(ModbusPDU):
    """Response carrying a byte count followed by that many bytes."""

    rtu_byte_count_pos = 2

    def __init__(self, values: bytes = b"", dev_id: int = 1, transaction_id: int = 0) -> None:
        super().__init__(dev_id=dev_id, transaction_id=transaction_id)
        self.values = bytes(values)

    def encode(self) -> bytes:
        return struct.pack(">B", len(self.values)) + self.values

    def decode(self, data: bytes) -> None:
        self.values = bytes(data[1 : 1 + data[0]])


class ReadObjectRequest(_IdRequest):
    function_code = FunctionCode.READ_OBJECT


class ReadObjectResponse(_ByteCountResponse):
    function_code = FunctionCode.READ_OBJECT


class WriteObjectRequest(_IdRequest):
    function_code = FunctionCode.WRITE_OBJECT
    with_payload = True


class WriteObjectResponse(ModbusPDU):
    function_code = FunctionCode.WRITE_OBJECT
    rtu_frame_size = 5

    def __init__(self, result: int = 0, dev_id: int = 1, transaction_id: int = 0) -> None:
        super().__init__(dev_id=dev_id, transaction_id=transaction_id)
        self.result = result

    def encode(self) -> bytes:
        return struct.pack(">B", self.result)

    def decode(self, data: bytes) -> None:
        self.result = data[0]


class CommandRequest(_IdRequest):
    function_code = FunctionCode.COMMAND
    with_payload = True


class CommandResponse(_ByteCountResponse):
    function_code = FunctionCode.COMMAND


class ReadFifo8Request(ModbusPDU):
    function_code = FunctionCode.READ_FIFO8

    def __init__(self, fifo: int = 0, max_bytes: int = 0, dev_id: int = 1, transaction_id: int = 0) -> None:
        super().__init__(dev_id=dev_id, transaction_id=transaction_id)
        self.fifo = fifo
        self.max_bytes = max_bytes

    def encode(self) -> bytes:
        return struct.pack(">BB", self.fifo, self.max_bytes)

    def decode(self, data: bytes) -> None:
        self.fifo, self.max_bytes = struct.unpack(">BB", data[:2])


class ReadFifo8Response(_ByteCountResponse):
    function_code = FunctionCode.READ_FIFO8


VENDOR_RESPONSES = (ReadObjectResponse, WriteObjectResponse, CommandResponse, ReadFifo8Response)


# ============================================================================
# pymodbus adapter
# ============================================================================


class PymodbusMaster:
    """Master backed by pymodbus' asyncio serial client (RTU framing).

    pymodbus' automatic reconnection is disabled: reconnecting is the job of
    the connection manager, which is told about link drops through the
    DISCONNECTED event.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 115200,
        parity: str = "N",
        stopbits: int = 1,
        bytesize: int = 8,
        unit_id: int = 1,
        timeout: float = 1.0,
        retries: int = 1,
    ):
        self.port = port
        self.baudrate = baudrate
        self.parity = parity
        self.stopbits = stopbits
        self.bytesize = bytesize
        self.unit_id = unit_id
        self.timeout = timeout
        self.retries = retries

        self._client: AsyncModbusSerialClient | None = None
        self._listener: MasterListener | None = None
        self._is_open = False

    @property
    def connected(self) -> bool:
        return self._is_open and self._client is not None and self._client.connected

    def attach(self, listener: MasterListener) -> None:
        self._listener = listener

    def _emit(self, event: MasterEvent, exc: Exception | None = None) -> None:
        if self._listener is not None:
            self._listener(event, exc)

    def _on_connect(self, connected: bool) -> None:
        """pymodbus trace_connect callback."""
        if connected:
            if not self._is_open:
                self._is_open = True
                self._emit(MasterEvent.OPEN)
        elif self._is_open:
            self._is_open = False
            logger.warning("Serial link on %s dropped", self.port)
            self._emit(MasterEvent.DISCONNECTED)

    def _create_client(self) -> AsyncModbusSerialClient:
        client = AsyncModbusSerialClient(
            self.port,
            baudrate=self.baudrate,
            parity=self.parity,
            stopbits=self.stopbits,
            bytesize=self.bytesize,
            timeout=self.timeout,
            retries=self.retries,
            reconnect_delay=0,
            trace_connect=self._on_connect,
        )
        for response_class in VENDOR_RESPONSES:
            client.register(response_class)
        return client

    async def open(self) -> None:
        """Open a fresh client on the serial port.

        Raises:
            TransportOpenError: If the port is missing or busy
        """
        if self._client is not None:
            self._client.close()
            self._client = None

        client = self._create_client()
        try:
            connected = await client.connect()
        except (OSError, SerialException, ModbusException) as e:
            client.close()
            self._emit(MasterEvent.ERROR, e)
            raise TransportOpenError(f"Failed to open {self.port}: {e}") from e

        if not connected:
            client.close()
            raise TransportOpenError(f"Failed to open {self.port}")

        self._client = client
        if not self._is_open:
            self._is_open = True
            self._emit(MasterEvent.OPEN)
        logger.debug("pymodbus client connected to %s", self.port)

    def close(self) -> None:
        was_open = self._is_open
        self._is_open = False
        if self._client is not None:
            self._client.close()
            self._client = None
        if was_open:
            self._emit(MasterEvent.CLOSE)

    async def request(
        self,
        function: FunctionCode,
        address: int = 0,
        payload: bytes = b"",
        count: int = 0,
    ) -> MasterResponse:
        client = self._client
        if client is None or not client.connected:
            raise TransportError(f"Serial port {self.port} is not open")

        unit = self.unit_id
        try:
            if function == FunctionCode.READ_HOLDING_REGISTERS:
                response = await client.read_holding_registers(address, count=count, device_id=unit)
            elif function == FunctionCode.WRITE_MULTIPLE_REGISTERS:
                words = list(struct.unpack(f">{len(payload) // 2}H", payload))
                response = await client.write_registers(address, words, device_id=unit)
            elif function == FunctionCode.REPORT_SLAVE_ID:
                response = await client.report_slave_id(device_id=unit)
            elif function == FunctionCode.READ_OBJECT:
                response = await client.execute(False, ReadObjectRequest(address, dev_id=unit))
            elif function == FunctionCode.WRITE_OBJECT:
                response = await client.execute(False, WriteObjectRequest(address, payload, dev_id=unit))
            elif function == FunctionCode.COMMAND:
                response = await client.execute(False, CommandRequest(address, payload, dev_id=unit))
            elif function == FunctionCode.READ_FIFO8:
                response = await client.execute(False, ReadFifo8Request(address, count, dev_id=unit))
            else:
                raise ValueError(f"Unsupported function code: {function!r}")
        except ModbusException as e:
            raise TransportError(f"Request 0x{int(function):02X} failed: {e}") from e

        if response.isError():
            return MasterResponse(exception_code=getattr(response, "exception_code", 0))

        return _normalise(function, response)


def _normalise(function: FunctionCode, response: ModbusPDU) -> MasterResponse:
    if function == FunctionCode.READ_HOLDING_REGISTERS:
        registers = response.registers
        return MasterResponse(values=struct.pack(f">{len(registers)}H", *registers))
    if function == FunctionCode.WRITE_MULTIPLE_REGISTERS:
        return MasterResponse()
    if function == FunctionCode.REPORT_SLAVE_ID:
        return MasterResponse(values=bytes(response.identifier))
    if function == FunctionCode.WRITE_OBJECT:
        return MasterResponse(status=response.result)
    return MasterResponse(values=response.values)


def list_ports() -> list[dict[str, str]]:
    """Describe the serial ports present on the system."""
    return [
        {
            "device": port.device,
            "description": port.description or "",
            "manufacturer": port.manufacturer or "",
            "hwid": port.hwid or "",
        }
        for port in serial_list_ports.comports()
    ]
