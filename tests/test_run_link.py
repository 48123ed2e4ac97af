"""Tests for the run_link command-line runner using FakeSerial."""

import pytest

import run_link
from fakes.fake_serial import FakeSerialFactory
from serial_link_lib.models import LinkConfig
from serial_link_lib.transport import Transport


@pytest.fixture
def factory(monkeypatch):
    factory = FakeSerialFactory(timeout=0.02)
    monkeypatch.setattr(Transport, "open", factory)
    return factory


def test_build_payload_line_framing() -> None:
    assert run_link.build_payload("PING", LinkConfig(port="COM3")) == "PING"


def test_build_payload_appends_delimiter() -> None:
    config = LinkConfig(port="COM3", framing="delimiter", delimiter=0x5A)
    assert run_link.build_payload("hi", config) == b"hi\x5a"


def test_send_with_delimiter_framing(factory, capsys) -> None:
    argv = [
        "--port", "/dev/fake",
        "--framing", "delimiter",
        "--delimiter", "90",
        "--duration", "0.2",
        "--send", "hi",
    ]
    assert run_link.main(argv) == 0

    assert factory.devices[0].written == b"hi\x5a"
    assert "Disconnected." in capsys.readouterr().out


def test_send_with_line_framing(factory) -> None:
    argv = ["--port", "/dev/fake", "--duration", "0.2", "--send", "A", "--send", "B"]
    assert run_link.main(argv) == 0
    assert factory.devices[0].written == b"A\nB\n"


def test_delimiter_framing_requires_delimiter(factory) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_link.main(["--framing", "delimiter", "--send", "hi"])
    assert excinfo.value.code == 2
    assert factory.devices == []


def test_invalid_delimiter_is_usage_error(factory) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_link.main(["--framing", "delimiter", "--delimiter", "300"])
    assert excinfo.value.code == 2
