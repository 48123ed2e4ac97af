"""Fixed-capacity reassembly buffer for delimiter-framed records."""

import logging

from serial_link_lib.errors import BufferOverflowError

logger = logging.getLogger(__name__)


class ReassemblyBuffer:
    """Fixed-size byte buffer that accumulates partial reads.

    Bytes are appended after the used region. Taking a record shifts the
    remaining bytes back to offset 0, so the free space is always one
    contiguous region at the end.

    Only the worker thread touches this buffer, so it is not locked.
    """

    def __init__(self, capacity: int = 1024) -> None:
        """Initialize buffer.

        Args:
            capacity: Maximum number of bytes held at once. Defaults to 1024.
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self._data = bytearray(capacity)
        self._capacity = capacity
        self._used = 0

    def extend(self, data: bytes) -> None:
        """Append bytes after the used region.

        Raises:
            BufferOverflowError: If data does not fit in the free space
        """
        if len(data) > self.free:
            raise BufferOverflowError(
                f"Reassembly buffer overflow: {len(data)} bytes incoming, "
                f"{self.free} of {self._capacity} free"
            )

        end = self._used + len(data)
        self._data[self._used:end] = data
        self._used = end

    def find(self, delimiter: int) -> int:
        """Return the offset of the first delimiter byte, or -1 if absent."""
        return self._data.find(delimiter, 0, self._used)

    def take(self, index: int) -> bytes:
        """Remove and return the record that ends at a delimiter.

        Args:
            index: Offset of the delimiter, as returned by find()

        Returns:
            The index bytes preceding the delimiter
        """
        if not (0 <= index < self._used):
            raise IndexError(f"delimiter index {index} outside used region {self._used}")

        record = bytes(self._data[:index])
        consumed = index + 1
        remaining = self._used - consumed
        self._data[:remaining] = self._data[consumed:self._used]
        self._used = remaining
        return record

    def reset(self) -> None:
        """Discard all buffered bytes."""
        if self._used:
            logger.debug(f"Discarding {self._used} buffered bytes")
        self._used = 0

    @property
    def used(self) -> int:
        """Number of bytes currently buffered."""
        return self._used

    @property
    def free(self) -> int:
        """Number of bytes that can still be appended."""
        return self._capacity - self._used

    @property
    def capacity(self) -> int:
        """Maximum capacity of buffer."""
        return self._capacity

    @property
    def is_full(self) -> bool:
        return self._used == self._capacity
