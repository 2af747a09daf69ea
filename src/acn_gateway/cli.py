"""Command line utility: read or write items and run commands on an ACN device.

Examples:
    acn read config > my_config.json
    acn write channelMap 0x7FFF
    acn scan active 10
    acn --port /dev/ttyUSB1 --slave 2 ping 0x1234
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from acn_gateway.core.config import Settings, setup_logging
from acn_gateway.core.errors import AcnError, EncodingError
from acn_gateway.protocol.commands import COMMANDS, payload_from_ints
from acn_gateway.protocol.register_map import RegisterMap
from acn_gateway.serial.connection import AcnConnection, ConnectionNotice, create_connection
from acn_gateway.serial.master import list_ports


def parse_number(text: str | None, default: int | None = None) -> int | None:
    """Parse a decimal or 0x-prefixed hex number."""
    if text is None:
        return default
    try:
        return int(text, 16) if text.lower().startswith("0x") else int(text)
    except ValueError:
        raise EncodingError(f"Invalid number: {text!r}") from None


def parse_value(text: str) -> Any:
    """Interpret a command line value: hex/decimal number, JSON, or plain text."""
    try:
        if text.lower().startswith("0x"):
            return int(text, 16)
        return json.loads(text)
    except ValueError:
        return text


def _show(label: str, value: Any) -> None:
    if isinstance(value, (dict, list)):
        print(f"{label}: {json.dumps(value, indent=2, default=str)}")
    else:
        print(f"{label}: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="acn",
        description="Reads or writes from an ACN device",
        epilog="Return value is 0 if successful. Output may be directed to a file.",
    )
    parser.add_argument("-l", "--list", action="store_true", help="List all serial ports on the system")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show connection events (for debugging)")
    parser.add_argument("--port", help="Serial port to use (default: ACN_SERIAL_PORT)")
    parser.add_argument("--slave", type=int, help="MODBUS slave ID to communicate with")
    parser.add_argument("--loop", action="store_true", help="Run the command continuously")

    sub = parser.add_subparsers(dest="action", metavar="action")

    read = sub.add_parser("read", help="Read an item")
    read.add_argument("item")

    write = sub.add_parser("write", help="Write an item")
    write.add_argument("item")
    write.add_argument("value", nargs="?", help="Value (number, 0x hex or JSON); omit to rewrite current value")

    scan = sub.add_parser("scan", help="Scan the network")
    scan.add_argument("type", nargs="?", default="noise", choices=["noise", "active", "both"])
    scan.add_argument("duration", nargs="?", type=int, help="Scan duration in seconds")

    sub.add_parser("slave-id", aliases=["slaveId"], help="Report identity information")
    sub.add_parser("factory", help="Read the factory configuration")
    sub.add_parser("reset", help="Reset the device")
    sub.add_parser("clear", help="Clear network pairing")
    sub.add_parser("pair", help="Initiate pairing")
    sub.add_parser("unlock", help="Unlock the device")

    ping = sub.add_parser("ping", help="Ping a remote station")
    ping.add_argument("address", nargs="?", default="0", help="Short address (default: 0)")

    command = sub.add_parser("command", help="Send a raw command")
    command.add_argument("name", help=f"One of: {', '.join(COMMANDS)}")
    command.add_argument("data", nargs="*", help="Payload bytes (decimal or 0x hex)")

    sub.add_parser("items", help="List items available for read/write")
    return parser


async def run_action(connection: AcnConnection, args: argparse.Namespace) -> None:
    """Perform the requested action once.

    Raises:
        AcnError: If the device or the transport reports a failure
    """
    action = args.action

    if action == "read":
        register = await connection.read(args.item)
        _show(register.title, register.format())

    elif action == "write":
        value = None if args.value is None else parse_value(args.value)
        register = await connection.write(args.item, value)
        _show(f"{register.title} written to", register.format())

    elif action == "scan":
        _show("Scan Result", await connection.scan(args.type, args.duration))

    elif action in ("slave-id", "slaveId"):
        _show("Slave ID", await connection.get_slave_id())

    elif action == "factory":
        config = await connection.get_factory_config()
        _show("Factory Config", config if config is not None else "not programmed")

    elif action in ("reset", "clear", "pair", "unlock"):
        result = await getattr(connection, action)()
        _show("Result", result.values)

    elif action == "ping":
        _show("Ping", await connection.ping(parse_number(args.address, 0)))

    elif action == "command":
        payload = payload_from_ints([parse_number(text) for text in args.data])
        result = await connection.command(args.name, payload)
        _show(result.command, " ".join(f"{value:02X}" for value in result.values))


async def _print_events(queue: asyncio.Queue[ConnectionNotice]) -> None:
    while True:
        notice = await queue.get()
        detail = f" ({notice.error})" if notice.error else ""
        print(f"[{notice.event.value}] {notice.state.value}{detail}", file=sys.stderr)


async def run(args: argparse.Namespace, settings: Settings) -> int:
    connection = create_connection(settings)

    printer = None
    if args.verbose:
        printer = asyncio.create_task(_print_events(connection.subscribe()))

    try:
        await connection.open()
        while True:
            await run_action(connection, args)
            if not args.loop:
                break
    except AcnError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await connection.shutdown()
        if printer is not None:
            printer.cancel()

    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list:
        for port in list_ports():
            print(f"{port['device']} : {port['hwid']} : {port['manufacturer']}")
        return 0

    if args.action is None:
        parser.print_help()
        return 1

    if args.action == "items":
        for name, register in RegisterMap().items():
            print(f"{name:<20} {register.title}")
        return 0

    settings = Settings()
    overrides: dict[str, Any] = {}
    if args.port:
        overrides["serial_port"] = args.port
    if args.slave is not None:
        overrides["unit_id"] = args.slave
    if overrides:
        settings = settings.model_copy(update=overrides)

    setup_logging("DEBUG" if args.verbose else "WARNING")

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
