"""Progress transport interface."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import ClassVar

from buildrelay.contracts.operation import TransportKind


class ProgressTransport(ABC):
    """Supplies an operation's raw output as a sequence of chunks.

    Lifecycle: :meth:`open` runs before the process is spawned, :meth:`attach`
    right after, :meth:`chunks` is consumed until the source closes, and
    :meth:`close` releases everything the transport owns. ``close`` must be
    idempotent.
    """

    kind: ClassVar[TransportKind]

    @property
    def relay_endpoint(self) -> str | None:
        """Endpoint a forwarding process should write to, if the transport needs one."""
        return None

    @property
    def connected(self) -> bool:
        """Whether a producer is feeding the transport; only relays can lack one."""
        return True

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether :meth:`close` has run."""

    async def open(self) -> None:
        """Acquire resources that must exist before the process starts."""

    def attach(self, process: asyncio.subprocess.Process) -> None:
        """Bind to the freshly spawned process."""

    @abstractmethod
    def chunks(self) -> AsyncIterator[bytes]:
        """Yield raw output chunks until the underlying source closes."""

    @abstractmethod
    async def close(self) -> None:
        """Release the transport; later calls are no-ops."""
