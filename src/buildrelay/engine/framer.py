"""Line framing over chunked transport output."""

from __future__ import annotations

import codecs
from collections.abc import AsyncIterable, AsyncIterator


class LineFramer:
    """Incrementally split a chunked byte/text stream into complete lines.

    Chunk boundaries carry no meaning: a line may span several chunks and one
    chunk may hold several lines. Bytes are decoded incrementally so multibyte
    characters split across chunks survive intact. When ``newline`` is ``"\\n"``
    a trailing ``"\\r"`` is stripped so CRLF output frames the same way.
    """

    def __init__(self, newline: str = "\n", *, encoding: str = "utf-8") -> None:
        if not newline:
            raise ValueError("newline must be non-empty")
        self._newline = newline
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Partial trailing fragment not yet terminated by ``newline``."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[str]:
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if not text:
            return []
        self._buffer += text
        *complete, self._buffer = self._buffer.split(self._newline)
        return [self._clean(line) for line in complete]

    def flush(self) -> list[str]:
        """Emit any unterminated fragment left when the stream closes."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        if not remainder:
            return []
        return [self._clean(remainder)]

    def _clean(self, line: str) -> str:
        if self._newline == "\n" and line.endswith("\r"):
            return line[:-1]
        return line


async def frame_lines(
    chunks: AsyncIterable[bytes | str],
    *,
    newline: str = "\n",
) -> AsyncIterator[str]:
    """Lazily yield complete lines from *chunks* until the source closes."""
    framer = LineFramer(newline)
    async for chunk in chunks:
        for line in framer.feed(chunk):
            yield line
    for line in framer.flush():
        yield line
