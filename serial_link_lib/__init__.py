"""
serial_link_lib - Resilient message link to a serial device.

A background worker owns the port, frames messages (newline-terminated text
or single-byte-delimited binary records) and reconnects after failures. The
host exchanges messages through two thread-safe queues without blocking.
"""

from serial_link_lib.controller import LinkController, MessageListener
from serial_link_lib.errors import (
    BufferOverflowError,
    InvalidConfigValue,
    ReadTimeout,
    SerialIOError,
    SerialLinkError,
)
from serial_link_lib.models import DataMessage, LinkConfig, LinkEvent, LinkState, Message
from serial_link_lib.worker import (
    LinkWorker,
    join,
    push_outbound,
    request_stop,
    start,
    try_pop_inbound,
)

__version__ = "0.1.0"

__all__ = [
    "LinkController",
    "MessageListener",
    "LinkWorker",
    "LinkConfig",
    "LinkEvent",
    "LinkState",
    "DataMessage",
    "Message",
    "start",
    "request_stop",
    "join",
    "try_pop_inbound",
    "push_outbound",
    "SerialLinkError",
    "SerialIOError",
    "BufferOverflowError",
    "ReadTimeout",
    "InvalidConfigValue",
]
