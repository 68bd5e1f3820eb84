"""Direct pipe transport: read the child's own standard output."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from buildrelay.contracts.operation import TransportKind
from buildrelay.transports.base import ProgressTransport

CHUNK_SIZE = 64 * 1024


class DirectPipeTransport(ProgressTransport):
    kind = TransportKind.PIPE

    def __init__(self) -> None:
        self._reader: asyncio.StreamReader | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, process: asyncio.subprocess.Process) -> None:
        if process.stdout is None:
            raise ValueError("process was spawned without a stdout pipe")
        self._reader = process.stdout

    async def chunks(self) -> AsyncIterator[bytes]:
        reader = self._reader
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
        self._reader = None
