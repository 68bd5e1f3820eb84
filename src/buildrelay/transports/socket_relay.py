"""Socket relay transport.

Used when the command's own output stream is not available to us (for
instance when it runs inside a terminal-hosted task). A local endpoint is
bound before the process starts; a forwarding helper (``python -m
buildrelay.tee``) connects to it and relays every byte the command prints.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import tempfile
import uuid
from collections.abc import AsyncIterator
from contextlib import suppress
from typing import Any

from buildrelay.contracts.exceptions import TransportError
from buildrelay.contracts.operation import TransportKind
from buildrelay.transports.base import ProgressTransport

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def generate_endpoint_name() -> str:
    """Unique local endpoint address, one per operation."""
    token = uuid.uuid4()
    if sys.platform == "win32":
        return f"\\\\.\\pipe\\{token}"
    return os.path.join(tempfile.gettempdir(), f"socket-{token}")


class _PipeServers:
    """Adapts the proactor loop's named-pipe servers to the ``asyncio.Server`` close API."""

    def __init__(self, servers: list[Any]) -> None:
        self._servers = servers

    def close(self) -> None:
        for server in self._servers:
            server.close()

    async def wait_closed(self) -> None:
        return None


class SocketRelayTransport(ProgressTransport):
    """Listens on a local endpoint and reads from the first producer that connects."""

    kind = TransportKind.SOCKET_RELAY

    def __init__(self, endpoint: str | None = None, *, operation_name: str = "operation") -> None:
        self._endpoint = endpoint or generate_endpoint_name()
        self._operation_name = operation_name
        self._server: asyncio.Server | _PipeServers | None = None
        self._connection: asyncio.Future[asyncio.StreamReader | None] | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._closed = False

    @property
    def relay_endpoint(self) -> str:
        return self._endpoint

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connected(self) -> bool:
        return self._writer is not None

    async def open(self) -> None:
        if self._server is not None:
            return
        loop = asyncio.get_running_loop()
        self._connection = loop.create_future()
        try:
            if sys.platform == "win32":
                self._server = await self._start_pipe_server(loop)
            else:
                self._server = await asyncio.start_unix_server(self._on_connection, path=self._endpoint)
        except OSError as exc:
            raise TransportError(
                f"'{self._operation_name}' could not open its progress socket: {exc}",
                operation_name=self._operation_name,
            ) from exc
        if self._closed:
            # close() ran while the server was still binding.
            self._server.close()
            await self._server.wait_closed()
            self._unlink_endpoint()
            return
        logger.debug("Listening for progress relay on %s", self._endpoint)

    async def _start_pipe_server(self, loop: asyncio.AbstractEventLoop) -> _PipeServers:
        start_serving_pipe = getattr(loop, "start_serving_pipe", None)
        if start_serving_pipe is None:
            raise OSError("the running event loop cannot serve named pipes")

        def protocol_factory() -> asyncio.StreamReaderProtocol:
            return asyncio.StreamReaderProtocol(asyncio.StreamReader(), self._on_connection)

        servers = await start_serving_pipe(protocol_factory, self._endpoint)
        return _PipeServers(servers)

    def _on_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        if self._closed or self._connection is None or self._connection.done():
            logger.warning("Refusing extra progress relay connection on %s", self._endpoint)
            writer.close()
            return
        logger.debug("Progress relay connected on %s", self._endpoint)
        self._writer = writer
        self._connection.set_result(reader)

    async def chunks(self) -> AsyncIterator[bytes]:
        if self._connection is None:
            return
        reader = await self._connection
        if reader is None:
            return
        while not self._closed:
            chunk = await reader.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._connection is not None and not self._connection.done():
            self._connection.set_result(None)
        if self._writer is not None:
            self._writer.close()
            with suppress(ConnectionError):
                await self._writer.wait_closed()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
        self._unlink_endpoint()
        logger.debug("Closed progress relay on %s", self._endpoint)

    def _unlink_endpoint(self) -> None:
        if sys.platform == "win32":
            return
        with suppress(FileNotFoundError):
            os.unlink(self._endpoint)
