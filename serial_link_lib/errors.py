"""Custom exceptions for the serial link library."""


class SerialLinkError(Exception):
    """Base exception for all serial link library errors."""

    pass


class SerialIOError(SerialLinkError):
    """Raised when serial communication fails (open, read, write or close)."""

    pass


class BufferOverflowError(SerialIOError):
    """Raised when a record does not fit in the reassembly buffer.

    Treated like any other transport failure: the current connection is
    dropped and the supervisor reconnects.
    """

    pass


class ReadTimeout(SerialLinkError):
    """Raised when no complete message arrived within the read timeout."""

    pass


class InvalidConfigValue(SerialLinkError, ValueError):
    """Raised when a link configuration parameter is invalid."""

    pass
