"""Data models for the serial link library."""

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional, Union

from serial_link_lib.errors import InvalidConfigValue

Payload = Union[str, bytes]


class LinkState(Enum):
    """Connection supervisor states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPERATING = "operating"
    COOLDOWN = "cooldown"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


class LinkEvent(Enum):
    """Connection status notifications delivered through the inbound queue."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class DataMessage:
    """A payload received from the device.

    Attributes:
        payload: Text line (line framing) or raw record bytes (delimiter
            framing), without its terminator.
    """

    payload: Payload


Message = Union[DataMessage, LinkEvent]


@dataclass(frozen=True)
class LinkConfig:
    """Configuration for one link worker.

    Attributes:
        port: Serial device name (e.g., "/dev/ttyUSB0" or "COM3").
        baud: Baud rate.
        reconnect_delay_ms: Cooldown after a failure before reconnecting.
        max_unread_messages: Inbound queue capacity. New messages are
            discarded while the queue is full.
        framing: "line" for newline-terminated text, "delimiter" for binary
            records terminated by a single byte.
        delimiter: Record terminator byte (0-255), required for "delimiter".
        emit_status_messages: Push LinkEvent.CONNECTED/DISCONNECTED into the
            inbound queue. None means on for line framing, off for delimiter
            framing.
        read_timeout_s: Read timeout for a single device read.
        write_timeout_s: Write timeout for a single device write.
        buffer_capacity: Most bytes held while waiting for a record or line
            terminator. A longer record or line forces a reconnect.
        encoding: Text encoding for line framing.
        newline: Line terminator for line framing.
    """

    port: str
    baud: int = 9600
    reconnect_delay_ms: int = 1000
    max_unread_messages: int = 1
    framing: Literal["line", "delimiter"] = "line"
    delimiter: Optional[int] = None
    emit_status_messages: Optional[bool] = None
    read_timeout_s: float = 0.1
    write_timeout_s: float = 0.1
    buffer_capacity: int = 1024
    encoding: str = "utf-8"
    newline: str = "\n"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.port:
            raise InvalidConfigValue("port must be a non-empty device name")

        if self.baud <= 0:
            raise InvalidConfigValue(f"baud must be positive, got {self.baud}")

        if self.reconnect_delay_ms < 0:
            raise InvalidConfigValue(
                f"reconnect_delay_ms must be >= 0, got {self.reconnect_delay_ms}"
            )

        if self.max_unread_messages < 1:
            raise InvalidConfigValue(
                f"max_unread_messages must be >= 1, got {self.max_unread_messages}"
            )

        if self.read_timeout_s <= 0 or self.write_timeout_s <= 0:
            raise InvalidConfigValue("read/write timeouts must be positive")

        if self.buffer_capacity < 1:
            raise InvalidConfigValue(
                f"buffer_capacity must be positive, got {self.buffer_capacity}"
            )

        if self.framing == "delimiter":
            if self.delimiter is None:
                raise InvalidConfigValue("delimiter is required when framing='delimiter'")
            if not (0 <= self.delimiter <= 255):
                raise InvalidConfigValue(f"delimiter must be 0-255, got {self.delimiter}")
        elif self.framing == "line":
            if not self.newline:
                raise InvalidConfigValue("newline must not be empty")
            try:
                terminator = self.newline.encode(self.encoding)
            except (LookupError, UnicodeEncodeError) as e:
                raise InvalidConfigValue(f"cannot encode newline with {self.encoding!r}: {e}") from e
            if len(terminator) >= self.buffer_capacity:
                raise InvalidConfigValue(
                    f"buffer_capacity must exceed the newline length, got {self.buffer_capacity}"
                )
        else:
            raise InvalidConfigValue(
                f"framing must be 'line' or 'delimiter', got '{self.framing}'"
            )

    @property
    def status_messages_enabled(self) -> bool:
        """Whether LinkEvent notifications are pushed to the inbound queue."""
        if self.emit_status_messages is None:
            return self.framing == "line"
        return self.emit_status_messages

    @property
    def reconnect_delay_s(self) -> float:
        """Cooldown delay in seconds."""
        return self.reconnect_delay_ms / 1000.0
