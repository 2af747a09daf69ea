"""Unit tests for the acn command line utility."""

from unittest.mock import patch

import pytest

from acn_gateway.cli import build_parser, main, parse_number, parse_value
from acn_gateway.core.errors import EncodingError
from acn_gateway.protocol.constants import FunctionCode
from acn_gateway.serial.connection import AcnConnection
from acn_gateway.serial.master import MasterResponse


@pytest.fixture
def device(master):
    """Route the CLI to a connection over the fake master."""
    connection = AcnConnection("/dev/ttyFAKE", master)
    with patch("acn_gateway.cli.create_connection", return_value=connection) as factory:
        yield factory


class TestParsing:
    """Tests for argument parsing helpers."""

    @pytest.mark.parametrize("text,expected", [("12", 12), ("0x1F", 31), ("0X10", 16), (None, None)])
    def test_parse_number(self, text, expected):
        assert parse_number(text) == expected

    def test_parse_number_default(self):
        assert parse_number(None, 7) == 7

    def test_parse_number_invalid(self):
        with pytest.raises(EncodingError):
            parse_number("twelve")

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("0x7FFF", 0x7FFF),
            ("5", 5),
            ("[true, false]", [True, False]),
            ('{"a": 1}', {"a": 1}),
            ("hello", "hello"),
        ],
    )
    def test_parse_value(self, text, expected):
        """Values are hex, JSON, or left as text."""
        assert parse_value(text) == expected

    def test_scan_defaults(self):
        args = build_parser().parse_args(["scan"])

        assert args.type == "noise"
        assert args.duration is None

    def test_ping_default_address(self):
        assert build_parser().parse_args(["ping"]).address == "0"

    def test_slave_id_alias(self):
        assert build_parser().parse_args(["slaveId"]).action == "slaveId"


class TestOfflineActions:
    """Tests for actions that never touch the device."""

    def test_no_action(self, capsys):
        """Without an action the help is printed and the exit code is 1."""
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_items(self, capsys):
        """items lists the register map without connecting."""
        with patch("acn_gateway.cli.create_connection") as factory:
            assert main(["items"]) == 0

        factory.assert_not_called()
        out = capsys.readouterr().out
        assert "channelMap" in out
        assert "networkStatus" in out

    def test_list_ports(self, capsys):
        ports = [{"device": "/dev/ttyUSB0", "hwid": "USB VID:PID=0403:6001", "manufacturer": "FTDI"}]
        with patch("acn_gateway.cli.list_ports", return_value=ports):
            assert main(["-l"]) == 0

        assert capsys.readouterr().out.strip() == "/dev/ttyUSB0 : USB VID:PID=0403:6001 : FTDI"


class TestDeviceActions:
    """Tests for actions run against a (fake) device."""

    def test_read(self, device, master, capsys):
        """A read prints the item title and its formatted value."""
        master.queue(MasterResponse(values=b"\x00\x05"))

        assert main(["read", "maxHops"]) == 0

        assert capsys.readouterr().out.strip() == "Max Hops: 5"
        function, address, _, count = master.requests[0]
        assert function == FunctionCode.READ_HOLDING_REGISTERS
        assert count == 1

    def test_write(self, device, master, capsys):
        """A write sends the encoded value."""
        assert main(["write", "channelMap", "0x7FFF"]) == 0

        function, _, payload, _ = master.requests[0]
        assert function == FunctionCode.WRITE_MULTIPLE_REGISTERS
        assert payload == b"\x7f\xff"
        assert "0x7FFF" in capsys.readouterr().out

    def test_command(self, device, master, capsys):
        """Raw commands print the response bytes in hex."""
        master.queue(MasterResponse(values=b"\x00\xab"))

        assert main(["command", "pair"]) == 0

        function, address, payload, _ = master.requests[0]
        assert function == FunctionCode.COMMAND
        assert address == 3
        assert payload == b""
        assert capsys.readouterr().out.strip() == "pair: 00 AB"

    def test_unknown_command(self, device, master, capsys):
        """Unknown commands are reported and exit with 1."""
        assert main(["command", "explode"]) == 1

        assert "Error" in capsys.readouterr().err
        assert master.requests == []

    def test_port_not_available(self, device, master, capsys):
        """A port that cannot be opened exits with 1."""
        master.fail_open = 1

        assert main(["read", "config"]) == 1

        assert "Error" in capsys.readouterr().err
        assert master.is_open is False

    def test_overrides(self, device, master):
        """--port and --slave override the configured settings."""
        main(["--port", "/dev/ttyUSB3", "--slave", "4", "unlock"])

        settings = device.call_args.args[0]
        assert settings.serial_port == "/dev/ttyUSB3"
        assert settings.unit_id == 4

    def test_connection_shut_down(self, device, master):
        """The connection is shut down after the action."""
        assert main(["reset"]) == 0

        assert master.close_calls == 1
        assert master.is_open is False
