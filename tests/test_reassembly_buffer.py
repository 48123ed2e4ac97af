"""Tests for the delimiter reassembly buffer."""

import pytest

from serial_link_lib.errors import BufferOverflowError
from serial_link_lib.reassembly import ReassemblyBuffer


def test_take_compacts_remaining_bytes() -> None:
    """Taking a record shifts the rest of the buffer to offset 0."""
    buf = ReassemblyBuffer(capacity=16)
    buf.extend(b"AB|CDE|F")

    index = buf.find(ord("|"))
    assert index == 2
    assert buf.take(index) == b"AB"
    assert buf.used == 5

    index = buf.find(ord("|"))
    assert index == 3
    assert buf.take(index) == b"CDE"
    assert buf.used == 1

    # Leftover partial record stays at the front
    assert buf.find(ord("|")) == -1
    buf.extend(b"G|")
    assert buf.take(buf.find(ord("|"))) == b"FG"
    assert buf.used == 0


def test_empty_record() -> None:
    """A delimiter at offset 0 yields an empty record."""
    buf = ReassemblyBuffer(capacity=4)
    buf.extend(b"|x")
    assert buf.take(0) == b""
    assert buf.used == 1


def test_find_ignores_stale_bytes_past_used() -> None:
    """Bytes beyond the used region are never matched."""
    buf = ReassemblyBuffer(capacity=8)
    buf.extend(b"abc|")
    buf.take(3)
    assert buf.used == 0
    assert buf.find(ord("|")) == -1


def test_extend_overflow() -> None:
    """Appending more than the free space raises BufferOverflowError."""
    buf = ReassemblyBuffer(capacity=4)
    buf.extend(b"abc")
    assert buf.free == 1

    with pytest.raises(BufferOverflowError):
        buf.extend(b"de")

    # Buffer unchanged by the failed extend
    assert buf.used == 3
    buf.extend(b"d")
    assert buf.is_full


def test_reset_discards_everything() -> None:
    buf = ReassemblyBuffer(capacity=8)
    buf.extend(b"partial")
    buf.reset()
    assert buf.used == 0
    assert buf.free == 8


def test_take_outside_used_region() -> None:
    buf = ReassemblyBuffer(capacity=8)
    buf.extend(b"ab")
    with pytest.raises(IndexError):
        buf.take(2)


def test_invalid_capacity() -> None:
    with pytest.raises(ValueError):
        ReassemblyBuffer(capacity=0)
