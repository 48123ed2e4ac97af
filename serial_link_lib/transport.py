"""Serial transport layer for the link worker."""

import logging
from typing import Optional, Protocol

from serial_link_lib.errors import SerialIOError

logger = logging.getLogger(__name__)


class SerialLike(Protocol):
    """Protocol for serial port interface (allows test doubles)."""

    def write(self, data: bytes) -> Optional[int]:
        """Write bytes to serial port."""
        ...

    def read(self, size: int = 1) -> bytes:
        """Read up to size bytes from serial port."""
        ...

    def read_until(self, expected: bytes = b"\n", size: Optional[int] = None) -> bytes:
        """Read until expected terminator, size limit or timeout."""
        ...

    def flush(self) -> None:
        """Flush output buffer (force transmission)."""
        ...

    def close(self) -> None:
        """Close serial port."""
        ...

    @property
    def in_waiting(self) -> int:
        """Number of bytes ready to be read."""
        ...

    @property
    def is_open(self) -> bool:
        """Check if port is open."""
        ...


class Transport:
    """Wrapper around pyserial exposing the reads the framings need.

    Every pyserial or OS level failure is re-raised as SerialIOError so the
    supervisor has one exception type to recover from.
    """

    def __init__(self, serial_port: SerialLike, name: str = "") -> None:
        """Initialize transport with a serial port instance.

        Args:
            serial_port: Object implementing SerialLike protocol
                        (e.g., serial.Serial or FakeSerial for testing)
            name: Device name, used for log messages only
        """
        self._port = serial_port
        self._name = name

    @classmethod
    def open(
        cls,
        port: str,
        baud: int = 9600,
        read_timeout_s: float = 0.1,
        write_timeout_s: float = 0.1,
    ) -> "Transport":
        """Open a real serial port (requires pyserial).

        Args:
            port: Serial port device name (e.g., "/dev/ttyUSB0")
            baud: Baud rate
            read_timeout_s: Timeout for a single read call
            write_timeout_s: Timeout for a single write call

        Returns:
            Transport instance wrapping opened serial port

        Raises:
            SerialIOError: If port cannot be opened
        """
        try:
            import serial  # type: ignore
        except ImportError as e:
            raise SerialIOError("pyserial not installed. Run: pip install pyserial") from e

        try:
            ser = serial.Serial(
                port=port,
                baudrate=baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=read_timeout_s,
                write_timeout=write_timeout_s,
                rtscts=False,
                dsrdtr=False,
                xonxoff=False
            )
            logger.info(
                f"Opened serial port {port} at {baud} baud, "
                f"timeouts read={read_timeout_s}s write={write_timeout_s}s"
            )
            return cls(ser, name=port)
        except Exception as e:
            raise SerialIOError(f"Failed to open {port} at {baud} baud: {e}") from e

    def close(self) -> None:
        """Close the serial port.

        Raises:
            SerialIOError: If the port refuses to close
        """
        try:
            if self._port.is_open:
                self._port.close()
                logger.info(f"Closed serial port {self._name}")
        except Exception as e:
            raise SerialIOError(f"Failed to close {self._name}: {e}") from e

    @property
    def is_open(self) -> bool:
        """Check if port is currently open."""
        return self._port.is_open

    @property
    def name(self) -> str:
        return self._name

    def write_bytes(self, data: bytes) -> None:
        """Write raw bytes to port (no automatic termination).

        Args:
            data: Raw bytes to send

        Raises:
            SerialIOError: If write fails or times out
        """
        if not self._port.is_open:
            raise SerialIOError("Serial port is not open")

        try:
            sent = self._port.write(data)
            self._port.flush()
            logger.debug(f"Sent {sent} bytes: {data!r}")
        except Exception as e:
            raise SerialIOError(f"Failed to write to port: {e}") from e

    def read_available(self, max_size: int) -> bytes:
        """Read bytes that are ready, waiting up to the read timeout for one.

        Args:
            max_size: Upper bound on the number of bytes returned

        Returns:
            Between 0 and max_size bytes. b"" means the read timed out.

        Raises:
            SerialIOError: If port is closed or read fails
        """
        if not self._port.is_open:
            raise SerialIOError("Serial port is not open")

        try:
            size = max(1, min(self._port.in_waiting, max_size))
            data = self._port.read(size)
            if data:
                logger.debug(f"Received {len(data)} bytes: {data!r}")
            return data
        except Exception as e:
            raise SerialIOError(f"Failed to read from port: {e}") from e

    def read_until(self, terminator: bytes, size: Optional[int] = None) -> bytes:
        """Read until terminator, size bytes or read timeout.

        Returns:
            Bytes read, ending with terminator if a full line arrived. A
            timeout returns whatever partial data was received (maybe b"").

        Raises:
            SerialIOError: If port is closed or read fails
        """
        if not self._port.is_open:
            raise SerialIOError("Serial port is not open")

        try:
            data = self._port.read_until(terminator, size)
            if data:
                logger.debug(f"Received line bytes: {data!r}")
            return data
        except Exception as e:
            raise SerialIOError(f"Failed to read line: {e}") from e
