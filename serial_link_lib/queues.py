"""Thread-safe message queues shared by the host and the link worker."""

import logging
import threading
from collections import deque
from typing import List, Optional

from serial_link_lib.models import Message, Payload

logger = logging.getLogger(__name__)


class InboundQueue:
    """Bounded FIFO of messages from the device to the host.

    When the queue is full, newly arriving messages are discarded and the
    queued ones are kept. pop() never blocks; the host polls it at its own
    cadence.
    """

    def __init__(self, capacity: int = 1) -> None:
        """Initialize queue.

        Args:
            capacity: Maximum number of unread messages. Defaults to 1.
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self._items: deque[Message] = deque()
        self._lock = threading.Lock()
        self._capacity = capacity
        self._dropped = 0

    def push(self, message: Message) -> bool:
        """Append a message unless the queue is full (thread-safe).

        Returns:
            True if queued, False if discarded because the queue was full
        """
        with self._lock:
            if len(self._items) >= self._capacity:
                self._dropped += 1
                logger.debug(
                    f"Inbound queue full ({self._capacity}), dropped {message!r}"
                )
                return False
            self._items.append(message)
            return True

    def pop(self) -> Optional[Message]:
        """Remove and return the oldest message, or None if empty."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def dropped(self) -> int:
        """Number of messages discarded because the queue was full."""
        with self._lock:
            return self._dropped


class OutboundQueue:
    """Unbounded FIFO of payloads from the host to the device."""

    def __init__(self) -> None:
        self._items: deque[Payload] = deque()
        self._lock = threading.Lock()

    def push(self, payload: Payload) -> None:
        with self._lock:
            self._items.append(payload)

    def pop(self) -> Optional[Payload]:
        """Remove and return the oldest payload, or None if empty."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def drain(self) -> List[Payload]:
        """Remove and return every queued payload, oldest first."""
        with self._lock:
            items = list(self._items)
            self._items.clear()
            return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class MessageQueues:
    """Inbound and outbound queues of one link.

    The two queues have separate locks: the host and the worker only ever
    contend on the queue they share a role on.
    """

    def __init__(self, max_unread_messages: int = 1) -> None:
        self.inbound = InboundQueue(max_unread_messages)
        self.outbound = OutboundQueue()
