#!/usr/bin/env python3
"""Serial port listener for the ACN debug stream.

Not ACN specific: prints whatever arrives on the port and sends each line
typed on the console. Type 'q' (or press Ctrl-C) to quit.
"""

import argparse
import sys
import threading

import serial


def reader(ser: serial.Serial, stop: threading.Event) -> None:
    """Echo received bytes to stdout until stopped."""
    while not stop.is_set():
        try:
            data = ser.read(256)
        except serial.SerialException as e:
            print(f"\n{ser.port} error: {e}", file=sys.stderr)
            stop.set()
            return
        if data:
            sys.stdout.write(data.decode("ascii", errors="replace").replace("\r", "\r\n"))
            sys.stdout.flush()


def main():
    parser = argparse.ArgumentParser(description="Serial debug stream monitor")
    parser.add_argument("--port", "-p", default="/dev/ttyUSB0", help="Serial port (default: /dev/ttyUSB0)")
    parser.add_argument("--baud", "-b", type=int, default=19200, help="Baud rate (default: 19200)")
    args = parser.parse_args()

    print(f"-------- Serial Monitor: {args.port} ----------")
    print("Type 'q' to exit")

    try:
        ser = serial.Serial(port=args.port, baudrate=args.baud, timeout=0.1)
    except serial.SerialException as e:
        print(f"Could not open port: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Port {args.port} opened")
    stop = threading.Event()
    thread = threading.Thread(target=reader, args=(ser, stop), daemon=True)
    thread.start()

    try:
        for line in sys.stdin:
            if line.strip() == "q" or stop.is_set():
                break
            ser.write(line.rstrip("\n").encode("ascii", errors="replace") + b"\r")
    except KeyboardInterrupt:
        pass
    finally:
        stop.set()
        thread.join(timeout=1.0)
        ser.close()


if __name__ == "__main__":
    main()
