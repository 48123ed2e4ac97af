"""Connection supervisor: the state machine run by the link worker thread."""

import logging
import threading
from typing import Callable, Optional

from serial_link_lib.errors import ReadTimeout, SerialIOError
from serial_link_lib.framing import make_framing
from serial_link_lib.models import DataMessage, LinkConfig, LinkEvent, LinkState, Payload
from serial_link_lib.queues import MessageQueues
from serial_link_lib.transport import Transport

logger = logging.getLogger(__name__)

# Called as opener(port=..., baud=..., read_timeout_s=..., write_timeout_s=...)
Opener = Callable[..., Transport]


class ConnectionSupervisor:
    """Owns the device connection and keeps it alive until stopped.

    Cycle: IDLE -> CONNECTING -> OPERATING -> COOLDOWN -> CONNECTING ...
    until a stop is requested, then SHUTTING_DOWN -> CLOSED.

    All device I/O happens on the thread running run_forever(). The host
    only touches the message queues and request_stop().
    """

    def __init__(
        self,
        config: LinkConfig,
        queues: MessageQueues,
        opener: Optional[Opener] = None,
    ) -> None:
        """Initialize supervisor (does not connect).

        Args:
            config: Link configuration
            queues: Queues shared with the host
            opener: Factory returning an open Transport. Defaults to
                    Transport.open (real serial port).
        """
        self._config = config
        self._queues = queues
        self._opener: Opener = opener or Transport.open
        self._framing = make_framing(config)

        self._transport: Optional[Transport] = None
        self._stop_event = threading.Event()

        self._state = LinkState.IDLE
        self._state_lock = threading.Lock()
        self._epoch = 0

    # ========================================================================
    # Host-side API
    # ========================================================================

    def request_stop(self) -> None:
        """Ask the worker to shut down. Never blocks; cannot be undone."""
        self._stop_event.set()

    def is_stop_requested(self) -> bool:
        return self._stop_event.is_set()

    @property
    def state(self) -> LinkState:
        with self._state_lock:
            return self._state

    @property
    def epoch(self) -> int:
        """Number of successful device opens so far."""
        return self._epoch

    @property
    def is_connected(self) -> bool:
        transport = self._transport
        return transport is not None and transport.is_open

    @property
    def transport(self) -> Optional[Transport]:
        """Open transport of the current epoch, or None between connections."""
        return self._transport

    # ========================================================================
    # Worker thread
    # ========================================================================

    def run_forever(self) -> None:
        """Connect, exchange messages and reconnect until a stop is requested.

        This is the worker thread target. It never raises: an unexpected
        error is logged and ends the worker after closing the device.
        """
        port = self._config.port
        logger.info(f"Link worker started for {port} (thread {threading.get_ident()})")

        try:
            while not self.is_stop_requested():
                try:
                    self._attempt_connection()
                    while not self.is_stop_requested():
                        self.run_once()
                except SerialIOError as e:
                    self._handle_transport_failure(e)

            self._shutdown()
        except Exception:
            logger.exception(f"Unexpected error in link worker for {port}, stopping")
            self._close_device()
        finally:
            self._set_state(LinkState.CLOSED)

        logger.info(f"Link worker stopped for {port}")

    def run_once(self) -> None:
        """One OPERATING iteration: send at most one message, read at most one.

        Only one outbound message is written per iteration so writes stay
        interleaved with reads.

        Raises:
            SerialIOError: On any transport failure
        """
        assert self._transport is not None

        payload = self._queues.outbound.pop()
        if payload is not None:
            data = self._serialize(payload)
            if data is not None:
                self._transport.write_bytes(data)

        try:
            received = self._framing.deserialize(self._transport)
        except ReadTimeout:
            return

        if received is not None:
            self._queues.inbound.push(DataMessage(received))

    def _attempt_connection(self) -> None:
        """Open the device and start a new epoch.

        Raises:
            SerialIOError: If the device cannot be opened
        """
        self._set_state(LinkState.CONNECTING)
        config = self._config
        logger.debug(f"Connecting to {config.port} at {config.baud} baud...")

        self._transport = self._opener(
            port=config.port,
            baud=config.baud,
            read_timeout_s=config.read_timeout_s,
            write_timeout_s=config.write_timeout_s,
        )
        self._framing.reset()
        self._epoch += 1
        self._set_state(LinkState.OPERATING)
        logger.info(f"Connected to {config.port} (epoch {self._epoch})")

        self._emit(LinkEvent.CONNECTED)

    def _handle_transport_failure(self, error: SerialIOError) -> None:
        """Drop the connection and wait out the reconnect delay."""
        was_connected = self._transport is not None
        logger.warning(f"Link to {self._config.port} failed: {error}")

        if was_connected:
            self._emit(LinkEvent.DISCONNECTED)
        self._close_device()

        self._set_state(LinkState.COOLDOWN)
        delay = self._config.reconnect_delay_s
        logger.debug(f"Waiting {delay:.3f}s before reconnecting...")
        # Wakes early on request_stop()
        self._stop_event.wait(timeout=delay)

    def _shutdown(self) -> None:
        """Flush queued outbound messages, then close the device."""
        self._set_state(LinkState.SHUTTING_DOWN)
        remaining = self._queues.outbound.drain()

        if remaining and self._transport is not None:
            logger.debug(f"Flushing {len(remaining)} outbound messages before close")
            for sent, payload in enumerate(remaining):
                data = self._serialize(payload)
                if data is None:
                    continue
                try:
                    self._transport.write_bytes(data)
                except SerialIOError as e:
                    logger.warning(
                        f"Flush failed, discarding {len(remaining) - sent} messages: {e}"
                    )
                    break
        elif remaining:
            logger.warning(f"Not connected, discarding {len(remaining)} outbound messages")

        self._close_device()

    def _close_device(self) -> None:
        """Close the device if open. Close errors are logged and discarded."""
        if self._transport is None:
            return

        try:
            self._transport.close()
        except SerialIOError as e:
            logger.debug(f"Ignoring close error on {self._config.port}: {e}")

        self._transport = None

    def _serialize(self, payload: Payload) -> Optional[bytes]:
        """Frame one outbound payload, or log and drop it if it cannot be framed."""
        try:
            return self._framing.serialize(payload)
        except (TypeError, UnicodeEncodeError) as e:
            logger.warning(f"Dropping outbound message {payload!r}: {e}")
            return None

    def _emit(self, event: LinkEvent) -> None:
        if self._config.status_messages_enabled:
            self._queues.inbound.push(event)

    def _set_state(self, state: LinkState) -> None:
        with self._state_lock:
            self._state = state
