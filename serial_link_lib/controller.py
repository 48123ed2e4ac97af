"""Host-side controller that owns one link worker and dispatches its messages."""

import logging
from typing import Callable, Optional, Protocol

from serial_link_lib import worker
from serial_link_lib.models import DataMessage, LinkConfig, LinkEvent, Message, Payload
from serial_link_lib.supervisor import Opener

logger = logging.getLogger(__name__)


class MessageListener(Protocol):
    """Receiver of dispatched messages (e.g., a host scene object)."""

    def on_message_arrived(self, payload: Payload) -> None:
        ...

    def on_connection_event(self, connected: bool) -> None:
        ...


class LinkController:
    """Lifecycle and dispatch glue between a host loop and a link worker.

    The host calls enable() once, poll() on every tick, and disable() when
    done. Without a listener, read_message() can be polled directly.
    """

    def __init__(
        self,
        config: LinkConfig,
        listener: Optional[MessageListener] = None,
        opener: Optional[Opener] = None,
    ) -> None:
        """Initialize controller (does not start the worker).

        Args:
            config: Link configuration
            listener: Optional receiver for messages and connection events
            opener: Optional Transport factory passed to the worker
        """
        self._config = config
        self._listener = listener
        self._opener = opener
        self._worker: Optional[worker.LinkWorker] = None
        self._tear_down: Optional[Callable[[], None]] = None

    def enable(self) -> None:
        """Start the link worker.

        Raises:
            RuntimeError: If already enabled
        """
        if self._worker is not None:
            raise RuntimeError("Link already enabled")

        self._worker = worker.start(self._config, opener=self._opener)

    def disable(self, timeout: Optional[float] = None) -> None:
        """Run the tear-down function, stop the worker and wait for it.

        The tear-down function runs first so it can queue final messages;
        the worker flushes them before closing the port.
        """
        if self._worker is None:
            return

        if self._tear_down is not None:
            try:
                self._tear_down()
            except Exception as e:
                logger.error(f"Error in tear-down function: {e}", exc_info=True)

        self._worker.request_stop()
        self._worker.join(timeout=timeout)
        self._worker = None

    def set_tear_down_function(self, fn: Optional[Callable[[], None]]) -> None:
        """Set a function called by disable() before the port is closed."""
        self._tear_down = fn

    def poll(self) -> Optional[Message]:
        """Pop one inbound message and dispatch it to the listener.

        Returns:
            The popped message, or None if the queue was empty
        """
        if self._worker is None:
            return None

        message = self._worker.try_pop_inbound()
        if message is None or self._listener is None:
            return message

        try:
            if isinstance(message, LinkEvent):
                self._listener.on_connection_event(message is LinkEvent.CONNECTED)
            else:
                self._listener.on_message_arrived(message.payload)
        except Exception as e:
            logger.error(f"Error in message listener: {e}", exc_info=True)

        return message

    def read_message(self) -> Optional[Payload]:
        """Return the next data payload, skipping connection events.

        Returns:
            Payload, or None if no data message is queued
        """
        if self._worker is None:
            return None

        while True:
            message = self._worker.try_pop_inbound()
            if message is None:
                return None
            if isinstance(message, DataMessage):
                return message.payload
            logger.debug(f"Skipping link event {message.value}")

    def send_message(self, payload: Payload) -> None:
        """Queue a payload for the device.

        Raises:
            RuntimeError: If not enabled
        """
        if self._worker is None:
            raise RuntimeError("Link not enabled")
        self._worker.push_outbound(payload)

    @property
    def worker(self) -> Optional[worker.LinkWorker]:
        return self._worker

    @property
    def is_enabled(self) -> bool:
        return self._worker is not None
