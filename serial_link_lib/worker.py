"""Public operations for running a link worker from a host thread.

Typical use::

    handle = start(LinkConfig(port="/dev/ttyUSB0", baud=115200))
    push_outbound(handle, "hello")
    ...
    message = try_pop_inbound(handle)   # once per host frame/tick
    ...
    request_stop(handle)
    join(handle)                        # device is closed after this returns
"""

import logging
import threading
from typing import Optional

from serial_link_lib.models import LinkConfig, LinkState, Message, Payload
from serial_link_lib.queues import MessageQueues
from serial_link_lib.supervisor import ConnectionSupervisor, Opener

logger = logging.getLogger(__name__)


class LinkWorker:
    """Handle to one background link worker thread and its queues."""

    def __init__(self, config: LinkConfig, opener: Optional[Opener] = None) -> None:
        """Create the worker (does not start the thread).

        Args:
            config: Link configuration
            opener: Optional Transport factory, used by tests to inject fakes
        """
        self._config = config
        self._queues = MessageQueues(config.max_unread_messages)
        self._supervisor = ConnectionSupervisor(config, self._queues, opener=opener)
        self._thread = threading.Thread(
            target=self._supervisor.run_forever,
            name=f"SerialLink[{config.port}]",
            daemon=True,
        )

    def start(self) -> None:
        """Start the worker thread.

        Raises:
            RuntimeError: If already started
        """
        logger.info(f"Starting link worker for {self._config.port}...")
        self._thread.start()

    def request_stop(self) -> None:
        """Signal the worker to stop. Returns immediately."""
        self._supervisor.request_stop()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker thread to exit.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            True if the thread has exited
        """
        if self._thread.ident is None:
            return True
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(f"Link worker for {self._config.port} did not stop in time")
            return False
        return True

    def try_pop_inbound(self) -> Optional[Message]:
        """Return the next inbound message, or None if there is none."""
        return self._queues.inbound.pop()

    def push_outbound(self, payload: Payload) -> None:
        """Queue a payload to be written to the device.

        Line framing takes text (str); delimiter framing takes bytes that
        already end with the delimiter.

        Raises:
            TypeError: If payload type does not match the framing
            UnicodeEncodeError: If text cannot be encoded with the configured
                encoding
        """
        if self._config.framing == "delimiter":
            if not isinstance(payload, (bytes, bytearray)):
                raise TypeError(
                    f"delimiter framing expects bytes, got {type(payload).__name__}"
                )
            payload = bytes(payload)
        elif isinstance(payload, str):
            payload.encode(self._config.encoding)
        elif not isinstance(payload, bytes):
            raise TypeError(f"line framing expects str, got {type(payload).__name__}")

        self._queues.outbound.push(payload)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    @property
    def config(self) -> LinkConfig:
        return self._config

    @property
    def state(self) -> LinkState:
        return self._supervisor.state

    @property
    def epoch(self) -> int:
        return self._supervisor.epoch

    @property
    def is_connected(self) -> bool:
        return self._supervisor.is_connected

    @property
    def queues(self) -> MessageQueues:
        return self._queues


def start(config: LinkConfig, opener: Optional[Opener] = None) -> LinkWorker:
    """Create a link worker and start its background thread."""
    handle = LinkWorker(config, opener=opener)
    handle.start()
    return handle


def request_stop(handle: LinkWorker) -> None:
    handle.request_stop()


def join(handle: LinkWorker, timeout: Optional[float] = None) -> bool:
    return handle.join(timeout=timeout)


def try_pop_inbound(handle: LinkWorker) -> Optional[Message]:
    return handle.try_pop_inbound()


def push_outbound(handle: LinkWorker, payload: Payload) -> None:
    handle.push_outbound(payload)
