"""Fake serial port for exercising the link worker without hardware.

The fake behaves like a pyserial port with a read timeout: reads block until
enough data arrives or the timeout expires. Tests play the device side by
feeding bytes and inspecting what the host wrote. Failures (unplugged cable,
refused open, broken close) can be injected at any time.
"""

import logging
import threading
import time
from typing import Callable, List, Optional

import serial

from serial_link_lib.errors import SerialIOError
from serial_link_lib.transport import Transport

logger = logging.getLogger(__name__)


class FakeSerial:
    """Scripted byte-stream device.

    Attributes:
        written: Every byte the host wrote, in order
        writes: Each write() call's data, in order
        close_count: Number of close() calls
    """

    def __init__(self, timeout: float = 0.05) -> None:
        """Initialize fake port.

        Args:
            timeout: Read timeout in seconds, like serial.Serial(timeout=...)
        """
        self.timeout = timeout
        self.is_open = True

        self.written = bytearray()
        self.writes: List[bytes] = []
        self.close_count = 0

        # Device output waiting to be read by the host
        self._rx = bytearray()
        self._cond = threading.Condition()

        self._broken = False
        self.fail_writes = False
        # Writes succeed until this many have been recorded, then fail
        self.fail_writes_after: Optional[int] = None
        self.fail_close = False

    # ========================================================================
    # Device side (used by tests)
    # ========================================================================

    def feed(self, data: bytes) -> None:
        """Make data available to the host, as if sent by the device."""
        with self._cond:
            self._rx.extend(data)
            self._cond.notify_all()

    def unplug(self) -> None:
        """Simulate a cable pull: every following read or write fails."""
        with self._cond:
            self._broken = True
            self._cond.notify_all()
        logger.debug("FakeSerial unplugged")

    def wait_for_written(self, data: bytes, timeout: float = 2.0) -> bool:
        """Wait until the host has written data (as a substring) to the port."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if data in self.written:
                return True
            time.sleep(0.005)
        return data in self.written

    # ========================================================================
    # Host side (pyserial interface)
    # ========================================================================

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise serial.PortNotOpenError()
        if self._broken or self.fail_writes or self._write_limit_reached():
            raise serial.SerialException("write failed: device disconnected")

        self.written.extend(data)
        self.writes.append(bytes(data))
        logger.debug(f"FakeSerial received: {data!r}")
        return len(data)

    def read(self, size: int = 1) -> bytes:
        """Read up to size bytes, waiting up to timeout for all of them."""
        deadline = time.monotonic() + self.timeout
        with self._cond:
            while True:
                self._check_readable()
                if len(self._rx) >= size:
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)

            data = bytes(self._rx[:size])
            del self._rx[:size]
            return data

    def read_until(self, expected: bytes = b"\n", size: Optional[int] = None) -> bytes:
        """Read through expected, or return partial data on timeout."""
        deadline = time.monotonic() + self.timeout
        with self._cond:
            while True:
                self._check_readable()
                index = self._rx.find(expected)
                if index != -1:
                    end = index + len(expected)
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    end = len(self._rx)
                    break
                self._cond.wait(remaining)

            if size is not None:
                end = min(end, size)
            data = bytes(self._rx[:end])
            del self._rx[:end]
            return data

    @property
    def in_waiting(self) -> int:
        with self._cond:
            self._check_readable()
            return len(self._rx)

    def flush(self) -> None:
        """Flush output buffer (no-op, writes are immediate)."""
        pass

    def close(self) -> None:
        self.close_count += 1
        if self.fail_close:
            raise OSError("close failed: device gone")
        self.is_open = False
        with self._cond:
            self._cond.notify_all()
        logger.debug("FakeSerial closed")

    def _write_limit_reached(self) -> bool:
        return self.fail_writes_after is not None and len(self.writes) >= self.fail_writes_after

    def _check_readable(self) -> None:
        if not self.is_open:
            raise serial.PortNotOpenError()
        if self._broken:
            raise serial.SerialException("read failed: device disconnected")


class FakeSerialFactory:
    """Stands in for Transport.open, handing out FakeSerial devices.

    Attributes:
        devices: Every device opened so far, oldest first
        open_times: time.monotonic() of each successful open
        failed_opens: Number of refused open attempts
    """

    def __init__(self, fail_opens: int = 0, timeout: float = 0.05) -> None:
        """Initialize factory.

        Args:
            fail_opens: Number of initial open attempts that fail
            timeout: Read timeout for the devices created
        """
        self.fail_opens = fail_opens
        self.timeout = timeout
        self.devices: List[FakeSerial] = []
        self.open_times: List[float] = []
        self.failed_opens = 0
        self.refuse = False
        self._lock = threading.Lock()
        self._prepared: List[FakeSerial] = []

    def prepare(self, device: FakeSerial) -> None:
        """Queue a pre-scripted device to be handed out by the next open."""
        with self._lock:
            self._prepared.append(device)

    def __call__(
        self,
        port: str,
        baud: int = 9600,
        read_timeout_s: float = 0.1,
        write_timeout_s: float = 0.1,
    ) -> Transport:
        with self._lock:
            if self.refuse or self.failed_opens < self.fail_opens:
                self.failed_opens += 1
                raise SerialIOError(f"Failed to open {port} at {baud} baud: no such device")

            if self._prepared:
                device = self._prepared.pop(0)
            else:
                device = FakeSerial(timeout=self.timeout)
            self.devices.append(device)
            self.open_times.append(time.monotonic())

        return Transport(device, name=port)

    @property
    def current(self) -> Optional[FakeSerial]:
        """Most recently opened device."""
        with self._lock:
            return self.devices[-1] if self.devices else None

    def wait_for_opens(self, count: int, timeout: float = 2.0) -> bool:
        """Wait until count devices have been opened."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                if len(self.devices) >= count:
                    return True
            time.sleep(0.005)
        return False


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll predicate until it is true or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()
