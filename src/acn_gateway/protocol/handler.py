"""Device handler for the gateway.

Polls the device in the background, keeps the status cache current and
serialises the requests issued by the API with those of the poll loop.
"""

import asyncio
import logging
from typing import Any

from acn_gateway.core.cache import StatusCache
from acn_gateway.core.errors import AcnError
from acn_gateway.core.models import CommandResult
from acn_gateway.protocol.constants import POLL_INTERVAL
from acn_gateway.protocol.registers import Register
from acn_gateway.serial.connection import AcnConnection, ConnectionEvent, ConnectionNotice

logger = logging.getLogger(__name__)

# Objects read once after every (re)connect.
INSPECT_OBJECTS = ("networkStatus", "scanResult", "connectionTable", "coordStatus")


class DeviceHandler:
    """Orchestrates polling of one ACN device.

    Args:
        connection: Open (or reconnecting) device connection.
        cache: Status cache to update.
        poll_interval: Seconds between poll cycles.
    """

    def __init__(
        self,
        connection: AcnConnection,
        cache: StatusCache,
        poll_interval: float = POLL_INTERVAL,
    ):
        self._connection = connection
        self._cache = cache
        self._poll_interval = poll_interval

        self._poll_task: asyncio.Task | None = None
        self._notices: asyncio.Queue[ConnectionNotice] | None = None
        self._running = False
        self._lock = asyncio.Lock()

    @property
    def connection(self) -> AcnConnection:
        return self._connection

    @property
    def connected(self) -> bool:
        """Whether the device session is open."""
        return self._connection.connected

    @property
    def running(self) -> bool:
        """Whether background polling is active."""
        return self._running

    async def start(self) -> None:
        """Start background polling task."""
        if self._running:
            return

        self._running = True
        self._notices = self._connection.subscribe()
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info("Device handler started")

    async def stop(self) -> None:
        """Stop background polling task."""
        self._running = False

        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        if self._notices is not None:
            self._connection.unsubscribe(self._notices)
            self._notices = None

        logger.info("Device handler stopped")

    # -- requests used by the API ---------------------------------------------

    async def read(self, name: str) -> Register:
        async with self._lock:
            return await self._connection.read(name)

    async def write(self, name: str, value: Any) -> Register:
        async with self._lock:
            register = await self._connection.write(name, value)
        logger.info("%s set to %s", name, value)
        return register

    async def command(self, name: str, payload: list[int] | None = None) -> CommandResult:
        async with self._lock:
            return await self._connection.command(name, payload or [])

    async def scan(self, scan_type: str = "noise", duration: int | None = None) -> list[dict[str, Any]]:
        async with self._lock:
            entries = await self._connection.scan(scan_type, duration)
        await self._cache.update("scanResult", entries)
        return entries

    async def ping(self, address: str | int) -> dict[str, Any]:
        async with self._lock:
            return await self._connection.ping(address)

    # -- polling ---------------------------------------------------------------

    async def inspect(self) -> int:
        """Read identity and network objects into the cache.

        Each item is read independently; a failure only skips that item.

        Returns:
            Number of sections read successfully.
        """
        read = 0
        async with self._lock:
            try:
                await self._cache.update("slaveId", await self._connection.get_slave_id())
                read += 1
            except AcnError as e:
                logger.warning("Failed to read slave id: %s", e)

            for name in INSPECT_OBJECTS:
                try:
                    register = await self._connection.read(name)
                except AcnError as e:
                    logger.warning("Failed to read %s: %s", name, e)
                    continue
                await self._cache.update(name, register.format())
                read += 1

        logger.debug("Inspection read %d of %d sections", read, len(INSPECT_OBJECTS) + 1)
        return read

    async def poll_once(self) -> None:
        """Read the status bank and the latest sensor data.

        Raises:
            AcnError: If a read fails; nothing from this cycle is cached.
        """
        async with self._lock:
            status = (await self._connection.read("bank1")).format()
            sensor = (await self._connection.read("sensorData")).format()

        await self._cache.update("status", status)
        if sensor and sensor.get("msgtype"):
            self._cache.publish("sensorData", sensor)

    def _link_changes(self) -> tuple[bool, bool]:
        """Drain pending connection notices.

        Returns:
            (lost, opened): whether the link went down and whether it came up
            since the last call.
        """
        lost = opened = False
        while self._notices is not None and not self._notices.empty():
            notice = self._notices.get_nowait()
            if notice.event == ConnectionEvent.CLOSE:
                lost = True
            elif notice.event == ConnectionEvent.OPEN:
                opened = True
        return lost, opened

    async def _poll_loop(self) -> None:
        """Background polling loop with reconnection support."""
        consecutive_errors = 0
        was_connected = False

        while self._running:
            try:
                # A drop and reopen between two cycles still shows up here
                lost, opened = self._link_changes()
                if lost or (was_connected and not self.connected):
                    logger.warning("Connection lost, waiting for reconnection...")
                    was_connected = False
                    await self._cache.reset()
                if opened:
                    was_connected = False

                if not self.connected:
                    await asyncio.sleep(self._poll_interval)
                    continue

                if not was_connected:
                    logger.info("Connected, inspecting device...")
                    was_connected = True
                    await self.inspect()

                await self.poll_once()
                consecutive_errors = 0

            except asyncio.CancelledError:
                raise
            except AcnError as e:
                consecutive_errors += 1
                if consecutive_errors <= 3:
                    logger.warning("Poll failed, will retry: %s", e)
            except Exception as e:
                consecutive_errors += 1
                if consecutive_errors <= 3:
                    logger.error(f"Poll error: {e}")

            await asyncio.sleep(self._poll_interval)
