"""Forwarding helper: copy standard input to standard output and a local endpoint.

Run as ``<command> | python -m buildrelay.tee <endpoint>``. Every byte read is
written unchanged to stdout, so the terminal still shows the command's
output, and to the endpoint a :class:`~buildrelay.transports.SocketRelayTransport`
listens on. Losing the endpoint stops the relay but never the echo.
"""

from __future__ import annotations

import argparse
import os
import socket
import sys
from typing import BinaryIO, Protocol

CHUNK_SIZE = 64 * 1024


class _Sink(Protocol):
    @property
    def closed(self) -> bool: ...

    def send(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class _UnixSocketSink:
    def __init__(self, endpoint: str) -> None:
        self._socket = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            self._socket.connect(endpoint)
        except OSError:
            self._socket.close()
            raise

    @property
    def closed(self) -> bool:
        return self._socket.fileno() == -1

    def send(self, data: bytes) -> None:
        self._socket.sendall(data)

    def close(self) -> None:
        self._socket.close()


class _NamedPipeSink:
    def __init__(self, endpoint: str) -> None:
        self._pipe: BinaryIO = open(endpoint, "wb", buffering=0)  # noqa: SIM115

    @property
    def closed(self) -> bool:
        return self._pipe.closed

    def send(self, data: bytes) -> None:
        self._pipe.write(data)

    def close(self) -> None:
        self._pipe.close()


def connect(endpoint: str) -> _Sink:
    if sys.platform == "win32":
        return _NamedPipeSink(endpoint)
    return _UnixSocketSink(endpoint)


def relay(source: BinaryIO, echo: BinaryIO, sink: _Sink | None) -> int:
    """Copy *source* to *echo* and *sink* until EOF; returns bytes copied."""
    total = 0
    fd = source.fileno()
    while True:
        chunk = os.read(fd, CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        echo.write(chunk)
        echo.flush()
        if sink is not None:
            try:
                sink.send(chunk)
            except OSError as exc:
                print(f"buildrelay.tee: progress relay lost: {exc}", file=sys.stderr)
                sink.close()
                sink = None
    return total


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m buildrelay.tee")
    parser.add_argument("endpoint", help="Local socket path or named pipe to relay output to")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    sink: _Sink | None
    try:
        sink = connect(args.endpoint)
    except OSError as exc:
        print(f"buildrelay.tee: could not connect to {args.endpoint}: {exc}", file=sys.stderr)
        sink = None

    try:
        relay(sys.stdin.buffer, sys.stdout.buffer, sink)
    finally:
        if sink is not None and not sink.closed:
            sink.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
