from __future__ import annotations

import io
import os
import socket
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import BinaryIO

import pytest

from buildrelay import tee


def _source(data: bytes) -> BinaryIO:
    read_fd, write_fd = os.pipe()
    os.write(write_fd, data)
    os.close(write_fd)
    return os.fdopen(read_fd, "rb")


class _RecordingSink:
    def __init__(self, fail_after: int | None = None) -> None:
        self.sent: list[bytes] = []
        self.closed = False
        self.close_calls = 0
        self.fail_after = fail_after

    def send(self, data: bytes) -> None:
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise BrokenPipeError(32, "Broken pipe")
        self.sent.append(data)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


def test_relay_copies_to_echo_and_sink() -> None:
    echo = io.BytesIO()
    sink = _RecordingSink()

    with _source(b"Running ninja\n10% 1/10\n") as source:
        copied = tee.relay(source, echo, sink)

    assert copied == len(b"Running ninja\n10% 1/10\n")
    assert echo.getvalue() == b"Running ninja\n10% 1/10\n"
    assert b"".join(sink.sent) == echo.getvalue()


def test_relay_without_sink_still_echoes() -> None:
    echo = io.BytesIO()

    with _source(b"abc") as source:
        tee.relay(source, echo, None)

    assert echo.getvalue() == b"abc"


def test_lost_sink_keeps_echoing(capsys: pytest.CaptureFixture[str]) -> None:
    echo = io.BytesIO()
    sink = _RecordingSink(fail_after=0)

    with _source(b"still printed\n") as source:
        tee.relay(source, echo, sink)

    assert echo.getvalue() == b"still printed\n"
    assert sink.closed
    assert "progress relay lost" in capsys.readouterr().err


def test_main_closes_lost_sink_once(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    sink = _RecordingSink(fail_after=0)
    monkeypatch.setattr(tee, "connect", lambda endpoint: sink)
    echo = _patch_stdio(monkeypatch, b"10% 1/10\n")

    assert tee.main(["unused"]) == 0

    assert echo.getvalue() == b"10% 1/10\n"
    assert sink.close_calls == 1
    assert "progress relay lost" in capsys.readouterr().err


def _patch_stdio(monkeypatch: pytest.MonkeyPatch, data: bytes) -> io.BytesIO:
    echo = io.BytesIO()
    monkeypatch.setattr(sys, "stdin", SimpleNamespace(buffer=_source(data)))
    monkeypatch.setattr(sys, "stdout", SimpleNamespace(buffer=echo))
    return echo


def test_main_with_unreachable_endpoint_exits_zero(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    endpoint = str(tmp_path / "nobody-listening")
    echo = _patch_stdio(monkeypatch, b"50% 1/2\n")

    assert tee.main([endpoint]) == 0

    assert echo.getvalue() == b"50% 1/2\n"
    assert f"could not connect to {endpoint}" in capsys.readouterr().err


@pytest.mark.skipif(sys.platform == "win32", reason="unix domain sockets")
def test_main_forwards_to_listening_socket(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    endpoint = str(tmp_path / "relay.sock")
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    server.bind(endpoint)
    server.listen(1)
    echo = _patch_stdio(monkeypatch, b"Regenerating ninja files\n")

    try:
        assert tee.main([endpoint]) == 0
        connection, _ = server.accept()
        with connection:
            received = b""
            while chunk := connection.recv(1024):
                received += chunk
    finally:
        server.close()

    assert received == b"Regenerating ninja files\n"
    assert echo.getvalue() == received


def test_parser_requires_endpoint() -> None:
    with pytest.raises(SystemExit):
        tee.build_parser().parse_args([])
