"""Last known device status, owned by the front-end layer."""

import asyncio
import copy
import logging
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

STATUS_SECTIONS = (
    "slaveId",
    "networkStatus",
    "scanResult",
    "connectionTable",
    "coordStatus",
    "status",
)

_QUEUE_MAXSIZE = 64


class StatusCache:
    """Async-safe snapshot of decoded device status.

    Every update is diffed against the stored value; only real changes are
    stored and pushed to subscriber queues as ``(section, value)`` tuples.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._status: dict[str, Any] = {section: {} for section in STATUS_SECTIONS}
        self._last_update: datetime | None = None
        self._subscribers: list[asyncio.Queue[tuple[str, Any]]] = []

    async def update(self, section: str, value: Any) -> bool:
        """Store *value* for *section* if it differs from the cached one.

        Returns:
            True if the value changed and was published
        """
        async with self._lock:
            if self._status.get(section) == value:
                return False
            self._status[section] = copy.deepcopy(value)
            self._last_update = datetime.now()

        self._publish(section, value)
        return True

    def publish(self, section: str, value: Any) -> None:
        """Push a transient value (e.g. sensor telemetry) without caching it."""
        self._publish(section, value)

    async def get(self, section: str) -> Any:
        async with self._lock:
            return copy.deepcopy(self._status.get(section))

    async def snapshot(self) -> dict[str, Any]:
        """Copy of every cached section."""
        async with self._lock:
            return copy.deepcopy(self._status)

    async def reset(self) -> None:
        """Forget everything (device disconnected) and publish the empty sections."""
        async with self._lock:
            self._status = {section: {} for section in STATUS_SECTIONS}
            self._last_update = None

        for section in STATUS_SECTIONS:
            self._publish(section, {})

    def subscribe(self) -> asyncio.Queue[tuple[str, Any]]:
        queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[tuple[str, Any]]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def _publish(self, section: str, value: Any) -> None:
        for queue in self._subscribers:
            if queue.full():
                # Drop oldest message to make room.
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                logger.debug("Status subscriber queue full, dropped oldest message")
            try:
                queue.put_nowait((section, copy.deepcopy(value)))
            except asyncio.QueueFull:
                pass

    @property
    def last_update(self) -> datetime | None:
        return self._last_update

    @property
    def count(self) -> int:
        """Number of sections holding data."""
        return sum(1 for value in self._status.values() if value)
