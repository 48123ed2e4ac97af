"""Tests for line and delimiter framing against a fake port."""

import pytest

from fakes.fake_serial import FakeSerial
from serial_link_lib.errors import BufferOverflowError, ReadTimeout, SerialIOError
from serial_link_lib.framing import DelimiterFraming, LineFraming, make_framing
from serial_link_lib.models import LinkConfig
from serial_link_lib.transport import Transport

DELIM = 0x5A  # "Z"


@pytest.fixture
def fake_serial():
    return FakeSerial(timeout=0.02)


@pytest.fixture
def transport(fake_serial):
    return Transport(fake_serial, name="/dev/fake")


# =============================================================================
# Delimiter framing
# =============================================================================

def test_delimiter_two_records_in_one_read(fake_serial, transport) -> None:
    """AB|CDE| yields AB then CDE and leaves the buffer empty."""
    framing = DelimiterFraming(DELIM)
    fake_serial.feed(b"AB" + bytes([DELIM]) + b"CDE" + bytes([DELIM]))

    assert framing.deserialize(transport) == b"AB"
    assert framing.deserialize(transport) == b"CDE"
    assert framing.buffer.used == 0


def test_delimiter_split_read(fake_serial, transport) -> None:
    """A record split across reads is returned once complete."""
    framing = DelimiterFraming(DELIM)

    fake_serial.feed(b"A")
    assert framing.deserialize(transport) is None

    fake_serial.feed(b"B" + bytes([DELIM]))
    assert framing.deserialize(transport) == b"AB"
    assert framing.buffer.used == 0


def test_delimiter_no_data(transport) -> None:
    """A read timeout with nothing buffered means no message yet."""
    framing = DelimiterFraming(DELIM)
    assert framing.deserialize(transport) is None


def test_delimiter_overflow(fake_serial, transport) -> None:
    """A record longer than the buffer raises BufferOverflowError."""
    framing = DelimiterFraming(DELIM, capacity=4)
    fake_serial.feed(b"ABCDEFG")

    # First read fills the buffer without finding a delimiter
    assert framing.deserialize(transport) is None
    assert framing.buffer.is_full

    with pytest.raises(BufferOverflowError):
        framing.deserialize(transport)


def test_delimiter_overflow_is_transport_failure() -> None:
    """Overflow is handled like any other I/O failure."""
    assert issubclass(BufferOverflowError, SerialIOError)


def test_delimiter_record_filling_buffer_exactly(fake_serial, transport) -> None:
    """A record plus delimiter that exactly fits the buffer is accepted."""
    framing = DelimiterFraming(DELIM, capacity=4)
    fake_serial.feed(b"ABC" + bytes([DELIM]))
    assert framing.deserialize(transport) == b"ABC"


def test_delimiter_reset_drops_partial(fake_serial, transport) -> None:
    framing = DelimiterFraming(DELIM)
    fake_serial.feed(b"stale")
    assert framing.deserialize(transport) is None

    framing.reset()
    fake_serial.feed(b"new" + bytes([DELIM]))
    assert framing.deserialize(transport) == b"new"


def test_delimiter_serialize_is_verbatim() -> None:
    framing = DelimiterFraming(DELIM)
    payload = b"\x01\x02" + bytes([DELIM])
    assert framing.serialize(payload) == payload

    with pytest.raises(TypeError):
        framing.serialize("text")


def test_delimiter_range() -> None:
    with pytest.raises(ValueError):
        DelimiterFraming(256)


# =============================================================================
# Line framing
# =============================================================================

def test_line_serialize() -> None:
    framing = LineFraming()
    assert framing.serialize("PING") == b"PING\n"
    assert framing.serialize("héllo") == "héllo\n".encode("utf-8")


def test_line_deserialize(fake_serial, transport) -> None:
    framing = LineFraming()
    fake_serial.feed(b"1.0,2.0,3.0\nsecond\n")

    assert framing.deserialize(transport) == "1.0,2.0,3.0"
    assert framing.deserialize(transport) == "second"


def test_line_content_is_verbatim(fake_serial, transport) -> None:
    """Only the configured terminator is removed; a CR before it is data."""
    framing = LineFraming()
    fake_serial.feed(b"reading\r\n")
    assert framing.deserialize(transport) == "reading\r"


def test_line_crlf_terminator(fake_serial, transport) -> None:
    framing = LineFraming(newline="\r\n")
    fake_serial.feed(b"first\r\nsecond\r\n")

    assert framing.deserialize(transport) == "first"
    assert framing.deserialize(transport) == "second"
    assert framing.serialize("PING") == b"PING\r\n"


def test_line_terminator_split_across_reads(fake_serial, transport) -> None:
    """A two-byte terminator arriving in two reads still ends the line."""
    framing = LineFraming(newline="\r\n")

    fake_serial.feed(b"abc\r")
    with pytest.raises(ReadTimeout):
        framing.deserialize(transport)

    fake_serial.feed(b"\ndef\r\n")
    assert framing.deserialize(transport) == "abc"
    assert framing.deserialize(transport) == "def"
    assert framing.pending == b""


def test_line_timeout_is_transient(transport) -> None:
    """No data within the read timeout raises ReadTimeout."""
    framing = LineFraming()
    with pytest.raises(ReadTimeout):
        framing.deserialize(transport)


def test_line_split_across_reads(fake_serial, transport) -> None:
    """Partial line data is kept until the terminator arrives."""
    framing = LineFraming()

    fake_serial.feed(b"hel")
    with pytest.raises(ReadTimeout):
        framing.deserialize(transport)

    fake_serial.feed(b"lo\n")
    assert framing.deserialize(transport) == "hello"


def test_line_reset_drops_partial(fake_serial, transport) -> None:
    framing = LineFraming()
    fake_serial.feed(b"garbage")
    with pytest.raises(ReadTimeout):
        framing.deserialize(transport)

    framing.reset()
    fake_serial.feed(b"clean\n")
    assert framing.deserialize(transport) == "clean"


def test_line_read_failure(fake_serial, transport) -> None:
    framing = LineFraming()
    fake_serial.unplug()
    with pytest.raises(SerialIOError):
        framing.deserialize(transport)


def test_line_without_terminator_overflows(fake_serial, transport) -> None:
    """A device that never ends its line cannot grow the pending data forever."""
    framing = LineFraming(capacity=8)
    fake_serial.feed(b"0123456789abcdef")

    with pytest.raises(ReadTimeout):
        framing.deserialize(transport)
    assert framing.pending == b"01234567"

    with pytest.raises(BufferOverflowError):
        framing.deserialize(transport)


def test_line_filling_capacity_exactly(fake_serial, transport) -> None:
    framing = LineFraming(capacity=4)
    fake_serial.feed(b"abc\n")
    assert framing.deserialize(transport) == "abc"


def test_line_serialize_unencodable() -> None:
    framing = LineFraming(encoding="ascii")
    with pytest.raises(UnicodeEncodeError):
        framing.serialize("héllo")


def test_make_framing_selects_variant() -> None:
    assert isinstance(make_framing(LinkConfig(port="COM3")), LineFraming)

    framing = make_framing(
        LinkConfig(port="COM3", framing="delimiter", delimiter=90, buffer_capacity=64)
    )
    assert isinstance(framing, DelimiterFraming)
    assert framing.delimiter == 90
    assert framing.buffer.capacity == 64
