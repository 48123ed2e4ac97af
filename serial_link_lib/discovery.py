"""Serial port discovery: find a port whose device is already talking."""

import logging
from typing import Iterable, List, Optional

from serial.tools import list_ports

from serial_link_lib.errors import SerialIOError
from serial_link_lib.supervisor import Opener
from serial_link_lib.transport import Transport

logger = logging.getLogger(__name__)


def list_port_names() -> List[str]:
    """Return the device names of all serial ports on this machine."""
    return [info.device for info in list_ports.comports()]


def find_responsive_port(
    baud: int,
    timeout_s: float = 0.2,
    candidates: Optional[Iterable[str]] = None,
    opener: Optional[Opener] = None,
) -> Optional[str]:
    """Return the first port that sends a line within timeout_s.

    Each candidate is opened, read once, and closed again. Ports that cannot
    be opened or stay silent are skipped.

    Args:
        baud: Baud rate to probe with
        timeout_s: Read timeout per port
        candidates: Port names to try. Defaults to list_port_names().
        opener: Transport factory. Defaults to Transport.open.

    Returns:
        Device name, or None if no port responded
    """
    open_port = opener or Transport.open
    ports = list(candidates) if candidates is not None else list_port_names()
    logger.info(f"Probing {len(ports)} serial ports at {baud} baud...")

    for port in ports:
        try:
            transport = open_port(
                port=port,
                baud=baud,
                read_timeout_s=timeout_s,
                write_timeout_s=timeout_s,
            )
        except SerialIOError as e:
            logger.debug(f"Skipping {port}: {e}")
            continue

        try:
            line = transport.read_until(b"\n")
        except SerialIOError as e:
            logger.debug(f"Read failed on {port}: {e}")
            line = b""
        finally:
            try:
                transport.close()
            except SerialIOError as e:
                logger.debug(f"Ignoring close error on {port}: {e}")

        if line.strip():
            logger.info(f"Found responsive device on {port}")
            return port
        logger.debug(f"No data from {port}")

    logger.warning("No responsive serial port found")
    return None
