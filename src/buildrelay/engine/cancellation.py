"""Single-fire cancellation signal."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """Caller-owned cancellation signal; firing it more than once has no further effect."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Fire the signal. Returns ``False`` if it had already fired."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()
