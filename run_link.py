#!/usr/bin/env python3
"""Run a serial link from the command line and print what the device sends.

Examples:
    python run_link.py --port /dev/ttyUSB0 --baud 115200 --send "PING"
    python run_link.py --framing delimiter --delimiter 90 --duration 30
    python run_link.py --discover --baud 115200
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from serial_link_lib import InvalidConfigValue, LinkConfig, LinkController
from serial_link_lib.discovery import find_responsive_port
from serial_link_lib.models import Payload


def build_payload(text: str, config: LinkConfig) -> Payload:
    """Turn a --send value into a payload for the configured framing.

    Delimiter framing sends the encoded text followed by the delimiter byte.
    """
    if config.framing == "delimiter":
        assert config.delimiter is not None
        return text.encode(config.encoding) + bytes([config.delimiter])
    return text


class PrintingListener:
    """Prints every message and connection event to stdout."""

    def __init__(self) -> None:
        self.messages = 0

    def on_message_arrived(self, payload: Payload) -> None:
        self.messages += 1
        if isinstance(payload, bytes):
            print(f"RX [{len(payload)} bytes]: {payload.hex(' ')}")
        else:
            print(f"RX: {payload!r}")

    def on_connection_event(self, connected: bool) -> None:
        print("*** CONNECTED ***" if connected else "*** DISCONNECTED ***")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a resilient serial link")
    parser.add_argument("--port", default="/dev/ttyUSB0")
    parser.add_argument("--baud", type=int, default=9600)
    parser.add_argument("--framing", choices=["line", "delimiter"], default="line")
    parser.add_argument("--delimiter", type=int, default=None,
                        help="Record terminator byte (0-255) for delimiter framing")
    parser.add_argument("--reconnect-delay-ms", type=int, default=1000)
    parser.add_argument("--max-unread", type=int, default=100)
    parser.add_argument("--duration", type=float, default=10.0,
                        help="Seconds to run before disconnecting")
    parser.add_argument("--send", action="append", default=[],
                        help="Message to send after start (repeatable; delimiter "
                             "framing appends the delimiter byte)")
    parser.add_argument("--discover", action="store_true",
                        help="Use the first port that sends a line instead of --port")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    if args.framing == "delimiter" and args.delimiter is None:
        parser.error("--framing delimiter requires --delimiter")

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    port = args.port
    if args.discover:
        found = find_responsive_port(args.baud)
        if found is None:
            print("No responsive serial port found")
            return 1
        port = found

    try:
        config = LinkConfig(
            port=port,
            baud=args.baud,
            framing=args.framing,
            delimiter=args.delimiter,
            reconnect_delay_ms=args.reconnect_delay_ms,
            max_unread_messages=args.max_unread,
        )
    except InvalidConfigValue as e:
        parser.error(str(e))

    print("=" * 70)
    print(f"Port: {config.port}")
    print(f"Baud: {config.baud}")
    print(f"Framing: {config.framing}")
    print(f"Duration: {args.duration}s")
    print("=" * 70)

    listener = PrintingListener()
    controller = LinkController(config, listener=listener)
    controller.enable()

    try:
        for line in args.send:
            controller.send_message(build_payload(line, config))

        deadline = time.monotonic() + args.duration
        while time.monotonic() < deadline:
            # Drain everything queued, then idle for one "frame"
            while controller.poll() is not None:
                pass
            time.sleep(0.02)
    except KeyboardInterrupt:
        print("Interrupted")
    finally:
        controller.disable()
        print()
        print(f"Disconnected. {listener.messages} messages received.")
        print("=" * 70)

    return 0


if __name__ == "__main__":
    sys.exit(main())
