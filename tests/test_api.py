"""Unit tests for API endpoints."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from acn_gateway.api.dependencies import app_state
from acn_gateway.core.cache import StatusCache
from acn_gateway.core.errors import (
    DeviceExceptionError,
    EncodingError,
    NotConnectedError,
    UnknownCommandError,
)
from acn_gateway.core.models import CommandResult
from acn_gateway.main import app
from acn_gateway.protocol.handler import DeviceHandler
from acn_gateway.protocol.register_map import RegisterMap
from acn_gateway.serial.connection import AcnConnection, ConnectionState


@pytest.fixture
def mock_app_state():
    """Set up mock app state for testing."""
    # Save original state (set by lifespan)
    orig_conn = app_state.connection
    orig_cache = app_state.cache
    orig_handler = app_state.handler

    conn = MagicMock(spec=AcnConnection)
    conn.connected = True
    conn.state = ConnectionState.OPEN
    conn.registers = RegisterMap()

    cache = StatusCache()

    handler = MagicMock(spec=DeviceHandler)
    handler.connected = True
    handler.connection = conn

    app_state.connection = conn
    app_state.cache = cache
    app_state.handler = handler

    yield {"connection": conn, "cache": cache, "handler": handler}

    # Restore original state for lifespan teardown
    app_state.connection = orig_conn
    app_state.cache = orig_cache
    app_state.handler = orig_handler


@pytest.fixture
def client(master):
    """Create test client; the lifespan gets a connection whose port never opens."""
    master.fail_open = 1000
    connection = AcnConnection("/dev/ttyFAKE", master)
    with patch("acn_gateway.main.create_connection", return_value=connection):
        with TestClient(app, raise_server_exceptions=False) as c:
            yield c


class TestLifespan:
    """Tests for application startup and shutdown."""

    def test_retries_failed_startup_open(self, master):
        """Test the gateway keeps trying to open a port that failed at startup."""
        master.fail_open = 1
        connection = AcnConnection("/dev/ttyFAKE", master, reconnect_interval=0.01)

        with patch("acn_gateway.main.create_connection", return_value=connection):
            with TestClient(app, raise_server_exceptions=False) as client:
                for _ in range(200):
                    if connection.connected:
                        break
                    time.sleep(0.01)
                response = client.get("/health")

        assert master.open_calls == 2
        data = response.json()
        assert data["device_connected"] is True
        assert data["connection_state"] == "open"
        assert connection.state == ConnectionState.CLOSED


class TestRootEndpoint:
    """Tests for GET / endpoint."""

    def test_root(self, client, mock_app_state):
        """Test root endpoint returns app info."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "ACN Gateway"
        assert "version" in data
        assert data["status"] == "running"


class TestHealthEndpoint:
    """Tests for GET /health endpoint."""

    def test_health_not_initialized(self, client):
        """Test health when app is not initialized."""
        app_state.handler = None
        app_state.cache = None

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["device_connected"] is False

    def test_health_lifespan_without_device(self, client):
        """Test health right after startup when the port could not be opened."""
        response = client.get("/health")

        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["connection_state"] == "reconnecting"

    def test_health_connected_with_status(self, client, mock_app_state):
        """Test health when connected with cached status."""
        asyncio.run(mock_app_state["cache"].update("networkStatus", {"currentChannel": 11}))

        response = client.get("/health")

        data = response.json()
        assert data["status"] == "healthy"
        assert data["device_connected"] is True
        assert data["connection_state"] == "open"
        assert data["last_update"] is not None

    def test_health_connected_no_status(self, client, mock_app_state):
        """Test health when connected but nothing polled yet."""
        response = client.get("/health")

        assert response.json()["status"] == "degraded"


class TestStatusEndpoint:
    """Tests for GET /api/status endpoint."""

    def test_status(self, client, mock_app_state):
        """Test the cached status is returned."""
        asyncio.run(mock_app_state["cache"].update("slaveId", {"productType": 10}))

        response = client.get("/api/status")

        assert response.status_code == 200
        data = response.json()
        assert data["connected"] is True
        assert data["status"]["slaveId"] == {"productType": 10}

    def test_status_disconnected(self, client, mock_app_state):
        """Test status is still served while disconnected."""
        mock_app_state["handler"].connected = False

        response = client.get("/api/status")

        assert response.status_code == 200
        assert response.json()["connected"] is False


class TestRegistersEndpoint:
    """Tests for /api/registers endpoints."""

    def test_list(self, client, mock_app_state):
        """Test every map item is described."""
        response = client.get("/api/registers")

        assert response.status_code == 200
        items = {item["name"]: item for item in response.json()}
        assert len(items) == len(RegisterMap())
        assert items["config"]["kind"] == "composite"
        assert items["config"]["length"] == 10
        assert items["networkStatus"]["kind"] == "object"
        assert items["volts"]["writable"] is False

    def test_read(self, client, mock_app_state):
        """Test reading a register returns its formatted value."""
        register = mock_app_state["connection"].registers["channelMap"]
        register.set(0x1234)
        mock_app_state["handler"].read = AsyncMock(return_value=register)

        response = client.get("/api/registers/channelMap")

        assert response.status_code == 200
        assert response.json() == {"name": "channelMap", "title": "Channel Map", "value": "0x1234"}
        mock_app_state["handler"].read.assert_awaited_once_with("channelMap")

    def test_read_unknown(self, client, mock_app_state):
        """Test unknown register names return 404."""
        response = client.get("/api/registers/nope")

        assert response.status_code == 404

    def test_read_not_connected(self, client, mock_app_state):
        """Test reads return 503 while the device is away."""
        mock_app_state["handler"].connected = False

        response = client.get("/api/registers/config")

        assert response.status_code == 503

    def test_read_device_exception(self, client, mock_app_state):
        """Test device exception answers map to 502."""
        mock_app_state["handler"].read = AsyncMock(side_effect=DeviceExceptionError(2))

        response = client.get("/api/registers/config")

        assert response.status_code == 502

    def test_read_connection_dropped(self, client, mock_app_state):
        """Test a connection lost mid-request maps to 503."""
        mock_app_state["handler"].read = AsyncMock(side_effect=NotConnectedError("gone"))

        response = client.get("/api/registers/config")

        assert response.status_code == 503

    def test_write(self, client, mock_app_state):
        """Test writing a register."""
        register = mock_app_state["connection"].registers["maxHops"]
        register.set(4)
        mock_app_state["handler"].write = AsyncMock(return_value=register)

        response = client.post("/api/registers/maxHops", json={"value": 4})

        assert response.status_code == 200
        assert response.json()["value"] == 4
        mock_app_state["handler"].write.assert_awaited_once_with("maxHops", 4)

    def test_write_read_only(self, client, mock_app_state):
        """Test read-only registers reject writes."""
        response = client.post("/api/registers/volts", json={"value": 1})

        assert response.status_code == 400
        mock_app_state["handler"].write.assert_not_called()

    def test_write_invalid_value(self, client, mock_app_state):
        """Test values that cannot be encoded return 400."""
        mock_app_state["handler"].write = AsyncMock(side_effect=EncodingError("out of range"))

        response = client.post("/api/registers/maxHops", json={"value": 70000})

        assert response.status_code == 400
        assert "out of range" in response.json()["detail"]


class TestCommandEndpoints:
    """Tests for command, scan and ping endpoints."""

    def test_command(self, client, mock_app_state):
        """Test sending a command."""
        mock_app_state["handler"].command = AsyncMock(
            return_value=CommandResult(command="pair", code=3, values=[0])
        )

        response = client.post("/api/commands/pair")

        assert response.status_code == 200
        assert response.json() == {"command": "pair", "code": 3, "values": [0]}
        mock_app_state["handler"].command.assert_awaited_once_with("pair", [])

    def test_command_with_payload(self, client, mock_app_state):
        """Test a command payload is passed through."""
        mock_app_state["handler"].command = AsyncMock(
            return_value=CommandResult(command="broadcast", code=5, values=[])
        )

        response = client.post("/api/commands/broadcast", json={"payload": [1, 2]})

        assert response.status_code == 200
        mock_app_state["handler"].command.assert_awaited_once_with("broadcast", [1, 2])

    def test_unknown_command(self, client, mock_app_state):
        """Test unknown commands return 400."""
        mock_app_state["handler"].command = AsyncMock(side_effect=UnknownCommandError("Unknown command"))

        response = client.post("/api/commands/explode")

        assert response.status_code == 400

    def test_scan(self, client, mock_app_state):
        """Test running a scan."""
        entries = [{"channel": 6, "panId": "abcd"}]
        mock_app_state["handler"].scan = AsyncMock(return_value=entries)

        response = client.post("/api/scan", json={"type": "active", "duration": 10})

        assert response.status_code == 200
        assert response.json() == entries
        mock_app_state["handler"].scan.assert_awaited_once_with("active", 10)

    def test_scan_invalid_duration(self, client, mock_app_state):
        """Test out of range durations fail validation."""
        response = client.post("/api/scan", json={"type": "noise", "duration": 0})

        assert response.status_code == 422

    def test_ping(self, client, mock_app_state):
        """Test pinging a remote station."""
        result = {"address": "1234", "status": 0, "success": True, "rssi": 70, "lqi": 200}
        mock_app_state["handler"].ping = AsyncMock(return_value=result)

        response = client.post("/api/ping", json={"address": "1234"})

        assert response.status_code == 200
        assert response.json() == result

    def test_ping_not_connected(self, client, mock_app_state):
        """Test ping returns 503 while the device is away."""
        mock_app_state["handler"].connected = False

        response = client.post("/api/ping", json={"address": 1})

        assert response.status_code == 503


class TestWebSocket:
    """Tests for the /ws status stream."""

    def test_snapshot_on_connect(self, client, mock_app_state):
        """Test the current status is sent when a client connects."""
        asyncio.run(mock_app_state["cache"].update("networkStatus", {"currentChannel": 11}))

        with client.websocket_connect("/ws") as websocket:
            data = websocket.receive_json()

        assert data["type"] == "snapshot"
        assert data["connected"] is True
        assert data["status"]["networkStatus"] == {"currentChannel": 11}

    def test_unsubscribes_on_disconnect(self, client, mock_app_state):
        """Test the subscriber queue is released when the client leaves."""
        cache = mock_app_state["cache"]

        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()
            websocket.send_text("hello")

        for _ in range(100):
            if not cache._subscribers:
                break
            time.sleep(0.01)

        assert cache._subscribers == []
