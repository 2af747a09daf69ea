"""Connection lifecycle management for one ACN device.

The connection owns the master, tracks the session state and keeps the
session alive across link drops:

    CLOSED -> OPENING -> OPEN
    OPEN -> RECONNECTING   (explicit close() or master DISCONNECTED)
    RECONNECTING -> OPEN   (a periodic reopen attempt succeeds)
    any -> CLOSED          (shutdown(), terminal)

State changes are published as ConnectionNotice messages on subscriber
queues instead of ad hoc listener callbacks.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from acn_gateway.core.config import Settings
from acn_gateway.core.errors import (
    CommandRejectedError,
    ConnectionStateError,
    DeviceExceptionError,
    NotConnectedError,
    TransportError,
    TransportOpenError,
    ValidationError,
)
from acn_gateway.core.models import CommandResult
from acn_gateway.protocol.commands import (
    build_ping_payload,
    build_scan_payload,
    build_unlock_payload,
    command_code,
    parse_ping_result,
    payload_from_ints,
)
from acn_gateway.protocol.constants import (
    DEBUG_FIFO_ID,
    DEBUG_FIFO_MAX,
    RECONNECT_INTERVAL,
    FunctionCode,
    ObjectId,
)
from acn_gateway.protocol.register_map import RegisterMap
from acn_gateway.protocol.registers import ObjectRegister, Register
from acn_gateway.protocol.telemetry import (
    decode_factory_config,
    decode_slave_id,
    encode_factory_config,
)
from acn_gateway.serial.master import Master, MasterEvent, MasterResponse, PymodbusMaster

logger = logging.getLogger(__name__)

_QUEUE_MAXSIZE = 64


class ConnectionState(str, Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    RECONNECTING = "reconnecting"


class ConnectionEvent(str, Enum):
    OPEN = "open"
    CLOSE = "close"
    ERROR = "error"
    REOPENING = "reopening"


@dataclass(frozen=True)
class ConnectionNotice:
    """Message pushed to subscribers on every lifecycle event."""

    event: ConnectionEvent
    state: ConnectionState
    error: Exception | None = None


class AcnConnection:
    """Logical session to one ACN device.

    Args:
        port: Name of the serial port (for logging and display)
        master: Request/response master, owned exclusively by this connection
        register_map: Register descriptors; a fresh map is built if omitted
        reconnect_interval: Seconds between reopen attempts after a drop
    """

    def __init__(
        self,
        port: str,
        master: Master,
        register_map: RegisterMap | None = None,
        reconnect_interval: float = RECONNECT_INTERVAL,
    ):
        self.port = port
        self.master = master
        self.registers = register_map or RegisterMap()
        self.reconnect_interval = reconnect_interval

        self._state = ConnectionState.CLOSED
        self._reconnect_task: asyncio.Task | None = None
        self._pending_reconnect: asyncio.Handle | None = None
        self._subscribers: list[asyncio.Queue[ConnectionNotice]] = []
        self._stats = {
            "reconnect_cycles": 0,
            "reconnect_attempts": 0,
            "reconnects": 0,
            "requests": 0,
            "request_errors": 0,
        }

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.OPEN

    @property
    def reconnecting(self) -> bool:
        """Whether a reconnect timer is currently active."""
        return self._reconnect_task is not None

    @property
    def stats(self) -> dict:
        return self._stats.copy()

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.info("%s: %s -> %s", self.port, self._state.value, state.value)
            self._state = state

    # -- notifications -------------------------------------------------------

    def subscribe(self) -> asyncio.Queue[ConnectionNotice]:
        """Return a queue receiving every subsequent ConnectionNotice."""
        queue: asyncio.Queue[ConnectionNotice] = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ConnectionNotice]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def _publish(self, event: ConnectionEvent, error: Exception | None = None) -> None:
        notice = ConnectionNotice(event=event, state=self._state, error=error)
        for queue in self._subscribers:
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            try:
                queue.put_nowait(notice)
            except asyncio.QueueFull:
                pass

    # -- lifecycle -----------------------------------------------------------

    async def open(self) -> None:
        """Open the session.

        Raises:
            ConnectionStateError: If the connection is not CLOSED
            TransportOpenError: If the master cannot open the port
        """
        if self._state != ConnectionState.CLOSED:
            raise ConnectionStateError(f"Cannot open {self.port} while {self._state.value}")

        self._set_state(ConnectionState.OPENING)
        self.master.attach(self._on_master_event)

        try:
            await self.master.open()
        except TransportOpenError as e:
            logger.error("Failed to open %s: %s", self.port, e)
            self._set_state(ConnectionState.CLOSED)
            self._publish(ConnectionEvent.ERROR, e)
            raise
        except BaseException:
            # Cancelled or failed in the master: release the port and allow open() again.
            self.master.close()
            self._set_state(ConnectionState.CLOSED)
            raise

        self._set_state(ConnectionState.OPEN)
        self._publish(ConnectionEvent.OPEN)

    def start_reconnect(self) -> None:
        """Keep retrying a CLOSED connection in the background until it opens.

        Used after a failed initial open(), so a device plugged in later is
        still picked up. Does nothing unless the connection is CLOSED.
        """
        if self._state != ConnectionState.CLOSED:
            return

        self._set_state(ConnectionState.RECONNECTING)
        self._start_reconnect()

    async def close(self) -> None:
        """Drop the link; the connection goes on to reopen it periodically."""
        if self._state != ConnectionState.OPEN:
            return

        self.master.close()
        self._link_lost()

    async def shutdown(self) -> None:
        """Tear down: stop reconnecting, close the master, enter CLOSED."""
        if self._pending_reconnect is not None:
            self._pending_reconnect.cancel()
            self._pending_reconnect = None

        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

        was_open = self._state == ConnectionState.OPEN
        if self._state != ConnectionState.CLOSED:
            self.master.close()
        self._set_state(ConnectionState.CLOSED)
        if was_open:
            self._publish(ConnectionEvent.CLOSE)

    def _on_master_event(self, event: MasterEvent, error: Exception | None = None) -> None:
        if event == MasterEvent.DISCONNECTED:
            logger.warning("%s disconnected", self.port)
            self._link_lost()
        elif event == MasterEvent.ERROR:
            self._publish(ConnectionEvent.ERROR, error)

    def _link_lost(self) -> None:
        if self._state != ConnectionState.OPEN:
            logger.debug("Ignoring link loss on %s while %s", self.port, self._state.value)
            return

        self._set_state(ConnectionState.RECONNECTING)
        self._publish(ConnectionEvent.CLOSE)

        # Let the master finish tearing down its handle before reattaching.
        loop = asyncio.get_running_loop()
        self._pending_reconnect = loop.call_soon(self._start_reconnect)

    def _start_reconnect(self) -> None:
        self._pending_reconnect = None
        if self._state != ConnectionState.RECONNECTING:
            return
        if self._reconnect_task is not None:
            logger.warning("Reconnect loop already running for %s", self.port)
            return

        self.master.attach(self._on_master_event)
        self._stats["reconnect_cycles"] += 1
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        """Retry opening every reconnect_interval seconds until it works."""
        while True:
            await asyncio.sleep(self.reconnect_interval)

            self._stats["reconnect_attempts"] += 1
            self._publish(ConnectionEvent.REOPENING)
            try:
                await self.master.open()
            except TransportOpenError as e:
                logger.debug("Reopen of %s failed: %s", self.port, e)
                continue
            except Exception as e:
                logger.error("Error in reconnect loop: %s", e)
                continue

            self._reconnect_task = None
            self._stats["reconnects"] += 1
            self._set_state(ConnectionState.OPEN)
            logger.info("Reconnected to %s", self.port)
            self._publish(ConnectionEvent.OPEN)
            return

    # -- requests ------------------------------------------------------------

    async def _request(
        self,
        function: FunctionCode,
        address: int = 0,
        payload: bytes = b"",
        count: int = 0,
    ) -> MasterResponse:
        """Issue exactly one request and turn exception responses into errors."""
        if self._state != ConnectionState.OPEN:
            raise NotConnectedError(f"{self.port} is not open ({self._state.value})")

        self._stats["requests"] += 1
        try:
            response = await self.master.request(function, address=address, payload=payload, count=count)
        except TransportError:
            self._stats["request_errors"] += 1
            raise

        if response.exception_code is not None:
            self._stats["request_errors"] += 1
            raise DeviceExceptionError(response.exception_code)
        return response

    def resolve(self, item: Register | str) -> Register:
        """Accept a descriptor or a register map item name."""
        if isinstance(item, Register):
            return item
        try:
            return self.registers.get(item)
        except KeyError:
            raise ValidationError(f"Unknown item: {item!r}") from None

    async def read(self, item: Register | str) -> Register:
        """Read a register or object into its descriptor and return it."""
        register = self.resolve(item)

        if isinstance(register, ObjectRegister):
            response = await self._request(FunctionCode.READ_OBJECT, address=register.object_id)
        else:
            response = await self._request(
                FunctionCode.READ_HOLDING_REGISTERS, address=register.address, count=register.length
            )

        register.from_buffer(response.values)
        return register

    async def write(self, item: Register | str, value: Any = None) -> Register:
        """Encode *value* (or the descriptor's current value) and write it."""
        register = self.resolve(item)
        if not register.writable:
            raise ValidationError(f"{register.title} is read-only")

        if value is not None:
            register.unformat(value)
        payload = register.to_buffer()

        if isinstance(register, ObjectRegister):
            response = await self._request(FunctionCode.WRITE_OBJECT, address=register.object_id, payload=payload)
            if response.status != 0:
                raise CommandRejectedError(response.status, f"Failed to write {register.title}")
        else:
            await self._request(FunctionCode.WRITE_MULTIPLE_REGISTERS, address=register.address, payload=payload)

        return register

    async def get_slave_id(self) -> dict[str, Any]:
        response = await self._request(FunctionCode.REPORT_SLAVE_ID)
        return decode_slave_id(response.values)

    async def get_factory_config(self) -> dict[str, Any] | None:
        """Read the factory configuration; None if it was never programmed."""
        response = await self._request(FunctionCode.READ_OBJECT, address=ObjectId.FACTORY_CONFIG)
        return decode_factory_config(response.values)

    async def set_factory_config(self, config: dict[str, Any]) -> None:
        """Write the factory configuration into the device NVRAM."""
        payload = encode_factory_config(config)
        response = await self._request(FunctionCode.WRITE_OBJECT, address=ObjectId.FACTORY_CONFIG, payload=payload)
        if response.status != 0:
            raise CommandRejectedError(response.status, "Failed to write factory config")

    async def get_debug(self) -> str:
        """Drain the device debug FIFO as text."""
        response = await self._request(FunctionCode.READ_FIFO8, address=DEBUG_FIFO_ID, count=DEBUG_FIFO_MAX)
        return response.values.decode("ascii", errors="replace")

    async def command(self, name: str, payload: bytes | list[int] = b"") -> CommandResult:
        """Send a symbolic command.

        Raises:
            UnknownCommandError: Before transmission, for unknown names
        """
        code = command_code(name)
        data = payload if isinstance(payload, (bytes, bytearray)) else payload_from_ints(list(payload))

        response = await self._request(FunctionCode.COMMAND, address=code, payload=bytes(data))
        logger.debug("Command %s (%d) answered with %d bytes", name, code, len(response.values))
        return CommandResult(command=name, code=code, values=list(response.values))

    async def scan(self, scan_type: str | int | None = "noise", duration: int | None = None) -> list[dict[str, Any]]:
        """Run a network scan; the scanResult descriptor holds the result too."""
        payload = build_scan_payload(scan_type, duration)
        result = await self.command("scan", payload)

        register = self.registers.get("scanResult")
        register.from_buffer(bytes(result.values))
        return register.format()

    async def ping(self, address: str | int) -> dict[str, Any]:
        payload = build_ping_payload(address)
        result = await self.command("ping", payload)
        return parse_ping_result(address, bytes(result.values))

    async def unlock(self) -> CommandResult:
        return await self.command("unlock", build_unlock_payload())

    async def reset(self) -> CommandResult:
        return await self.command("reset")

    async def save(self) -> CommandResult:
        return await self.command("save")

    async def restore(self) -> CommandResult:
        return await self.command("restore")

    async def pair(self) -> CommandResult:
        return await self.command("pair")

    async def clear(self) -> CommandResult:
        return await self.command("clear")

    async def broadcast(self, payload: bytes | list[int] = b"") -> CommandResult:
        return await self.command("broadcast", payload)

    async def __aenter__(self):
        """Async context manager entry."""
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.shutdown()


def create_connection(settings: Settings) -> AcnConnection:
    """Build a connection (and its pymodbus master) from settings."""
    master = PymodbusMaster(
        port=settings.serial_port,
        baudrate=settings.serial_baud,
        parity=settings.serial_parity,
        stopbits=settings.serial_stopbits,
        bytesize=settings.serial_bytesize,
        unit_id=settings.unit_id,
        timeout=settings.request_timeout,
        retries=settings.request_retries,
    )
    return AcnConnection(
        port=settings.serial_port,
        master=master,
        reconnect_interval=settings.reconnect_interval,
    )
