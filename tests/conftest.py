"""Shared test fixtures."""

import pytest

from acn_gateway.core.errors import TransportOpenError
from acn_gateway.serial.connection import AcnConnection
from acn_gateway.serial.master import MasterEvent, MasterResponse

# Reconnect interval used by connection tests (seconds)
FAST_RECONNECT = 0.01


class FakeMaster:
    """In-memory master: records requests and replays queued responses."""

    def __init__(self, fail_open: int = 0) -> None:
        self.fail_open = fail_open
        self.listener = None
        self.attach_count = 0
        self.open_calls = 0
        self.close_calls = 0
        self.is_open = False
        self.requests: list[tuple] = []
        self.responses: list[MasterResponse | Exception] = []
        self.responder = None

    def attach(self, listener) -> None:
        self.listener = listener
        self.attach_count += 1

    async def open(self) -> None:
        self.open_calls += 1
        if self.fail_open > 0:
            self.fail_open -= 1
            raise TransportOpenError("port busy")
        self.is_open = True

    def close(self) -> None:
        self.close_calls += 1
        self.is_open = False

    async def request(self, function, address=0, payload=b"", count=0) -> MasterResponse:
        self.requests.append((function, address, bytes(payload), count))
        if self.responder is not None and not self.responses:
            return self.responder(function, address, payload, count)
        if not self.responses:
            return MasterResponse()
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def queue(self, *responses: MasterResponse | Exception) -> None:
        self.responses.extend(responses)

    def drop(self) -> None:
        """Simulate the link going away underneath the connection."""
        self.is_open = False
        self.listener(MasterEvent.DISCONNECTED, None)


@pytest.fixture
def master() -> FakeMaster:
    return FakeMaster()


@pytest.fixture
def connection(master: FakeMaster) -> AcnConnection:
    """Connection over a fake master (not opened yet)."""
    return AcnConnection("/dev/ttyFAKE", master, reconnect_interval=FAST_RECONNECT)
