"""Framing strategies: conversion between device bytes and messages.

Two strategies are provided:

- LineFraming: text lines terminated by a newline, in both directions.
- DelimiterFraming: binary records terminated by one configured byte.

A strategy is picked once per worker by make_framing(). It keeps per
connection state (partial data), which the supervisor clears with reset()
every time the device is reopened.
"""

import logging
from typing import Optional, Protocol, Union

from serial_link_lib.errors import BufferOverflowError, ReadTimeout
from serial_link_lib.models import LinkConfig, Payload
from serial_link_lib.reassembly import ReassemblyBuffer
from serial_link_lib.transport import Transport

logger = logging.getLogger(__name__)


class Framing(Protocol):
    """Capability shared by all framing strategies."""

    def serialize(self, payload: Payload) -> bytes:
        """Convert an outbound payload to the bytes written to the device."""
        ...

    def deserialize(self, transport: Transport) -> Optional[Payload]:
        """Read from the device and return one complete payload, if any."""
        ...

    def reset(self) -> None:
        """Forget partial data from a previous connection."""
        ...


class LineFraming:
    """Newline-terminated text lines.

    Reads block for at most the transport read timeout. A line split across
    several reads (terminator included) is accumulated until its terminator
    arrives. Line content is delivered verbatim, minus the terminator.
    """

    def __init__(
        self, encoding: str = "utf-8", newline: str = "\n", capacity: int = 1024
    ) -> None:
        """Initialize framing.

        Args:
            encoding: Text encoding in both directions
            newline: Line terminator
            capacity: Most bytes held while waiting for a terminator
        """
        self._encoding = encoding
        self._newline = newline
        self._terminator = newline.encode(encoding)
        self._capacity = capacity
        self._pending = bytearray()

    def serialize(self, payload: Payload) -> bytes:
        """Encode text and append the line terminator.

        Raises:
            UnicodeEncodeError: If text cannot be encoded
        """
        if isinstance(payload, bytes):
            return payload + self._terminator
        return (payload + self._newline).encode(self._encoding)

    def deserialize(self, transport: Transport) -> str:
        """Return the next full line, reading from the device if needed.

        Returns:
            Line text with the terminator stripped

        Raises:
            ReadTimeout: If no complete line arrived within the read timeout
            BufferOverflowError: If capacity bytes arrived without a terminator
            SerialIOError: If the read fails
        """
        line = self._take_line()
        if line is not None:
            return line

        if len(self._pending) >= self._capacity:
            raise BufferOverflowError(
                f"No line terminator within {self._capacity} bytes"
            )

        data = transport.read_until(
            self._terminator, size=self._capacity - len(self._pending)
        )
        self._pending.extend(data)

        line = self._take_line()
        if line is None:
            if self._pending:
                logger.debug(f"Partial line held: {bytes(self._pending)!r}")
            raise ReadTimeout("No complete line within read timeout")
        return line

    def reset(self) -> None:
        self._pending.clear()

    @property
    def pending(self) -> bytes:
        """Bytes received since the last complete line."""
        return bytes(self._pending)

    def _take_line(self) -> Optional[str]:
        index = self._pending.find(self._terminator)
        if index == -1:
            return None

        data = bytes(self._pending[:index])
        del self._pending[: index + len(self._terminator)]
        return data.decode(self._encoding, errors="replace")


class DelimiterFraming:
    """Binary records terminated by a single delimiter byte.

    Outbound payloads are written verbatim: the caller includes the
    delimiter. Inbound bytes are collected in a ReassemblyBuffer until a
    delimiter is found.
    """

    def __init__(self, delimiter: int, capacity: int = 1024) -> None:
        """Initialize framing.

        Args:
            delimiter: Record terminator byte value (0-255)
            capacity: Reassembly buffer size; longer records cannot be framed
        """
        if not (0 <= delimiter <= 255):
            raise ValueError(f"delimiter must be 0-255, got {delimiter}")

        self._delimiter = delimiter
        self._buffer = ReassemblyBuffer(capacity)

    def serialize(self, payload: Payload) -> bytes:
        if isinstance(payload, str):
            raise TypeError("delimiter framing sends bytes, got str")
        return bytes(payload)

    def deserialize(self, transport: Transport) -> Optional[bytes]:
        """Return the next complete record, or None if none is available yet.

        A record left over from an earlier read is returned without touching
        the device.

        Raises:
            BufferOverflowError: If the buffer is full and holds no delimiter
            SerialIOError: If the read fails
        """
        record = self._take_record()
        if record is not None:
            return record

        if self._buffer.is_full:
            raise BufferOverflowError(
                f"No delimiter 0x{self._delimiter:02x} within "
                f"{self._buffer.capacity} bytes"
            )

        data = transport.read_available(self._buffer.free)
        if not data:
            return None

        self._buffer.extend(data)
        return self._take_record()

    def reset(self) -> None:
        self._buffer.reset()

    @property
    def buffer(self) -> ReassemblyBuffer:
        return self._buffer

    @property
    def delimiter(self) -> int:
        return self._delimiter

    def _take_record(self) -> Optional[bytes]:
        index = self._buffer.find(self._delimiter)
        if index == -1:
            return None
        return self._buffer.take(index)


def make_framing(config: LinkConfig) -> Union[LineFraming, DelimiterFraming]:
    """Create the framing strategy selected by config."""
    if config.framing == "delimiter":
        assert config.delimiter is not None
        return DelimiterFraming(config.delimiter, capacity=config.buffer_capacity)
    return LineFraming(
        encoding=config.encoding,
        newline=config.newline,
        capacity=config.buffer_capacity,
    )
