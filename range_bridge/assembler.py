"""Turn a byte window into trimmed, aligned chunk fetches.

A :class:`ByteStream` walks the chunks covering a :class:`ByteRange` in
ascending order, one fetch per :meth:`ByteStream.pull`, and cuts the first
and last chunk so that the concatenated output is exactly the window.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import anyio

from .errors import ClientDisconnected

if TYPE_CHECKING:
    from .fetcher import ChunkFetcher
    from .models import FileHandle
    from .ranges import ByteRange

LOG = logging.getLogger("range_bridge.assembler")


@dataclass(frozen=True)
class ChunkPlan:
    aligned_offset: int
    chunk_size: int
    part_count: int
    leading_trim: int
    trailing_trim: int

    @classmethod
    def for_range(cls, byte_range: ByteRange, chunk_size: int) -> ChunkPlan:
        if chunk_size <= 0:
            msg = f"chunk size must be positive, got {chunk_size}"
            raise ValueError(msg)
        start, end = byte_range.start, byte_range.end
        aligned_offset = start - start % chunk_size
        return cls(
            aligned_offset=aligned_offset,
            chunk_size=chunk_size,
            part_count=(end - aligned_offset + chunk_size) // chunk_size,
            leading_trim=start - aligned_offset,
            trailing_trim=end % chunk_size + 1,
        )

    def trim(self, chunk: bytes, part_index: int) -> bytes:
        if self.part_count == 1:
            return chunk[self.leading_trim : self.trailing_trim]
        if part_index == 1:
            return chunk[self.leading_trim :]
        if part_index == self.part_count:
            return chunk[: self.trailing_trim]
        return chunk


@dataclass
class StreamCursor:
    part_index: int
    offset: int
    bytes_emitted: int = 0


class ByteStream:
    """Forward-only, single-use stream over one byte window.

    ``pull()`` returns the next trimmed piece, or ``b""`` once the window is
    exhausted. Errors from the fetcher end the stream and are re-raised.
    ``cancel()`` stops the stream: an in-flight fetch is interrupted and the
    pending or next ``pull()`` raises :class:`ClientDisconnected`.
    """

    def __init__(
        self,
        fetcher: ChunkFetcher,
        handle: FileHandle,
        byte_range: ByteRange,
        chunk_size: int,
    ):
        self.handle = handle
        self.byte_range = byte_range
        self.plan = ChunkPlan.for_range(byte_range, chunk_size)
        self.cursor = StreamCursor(part_index=1, offset=self.plan.aligned_offset)
        self._fetcher = fetcher
        self._exhausted = False
        self._cancelled = False
        self._scope: anyio.CancelScope | None = None

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        self._exhausted = True
        if self._scope is not None:
            self._scope.cancel()

    def close(self) -> None:
        self._exhausted = True

    async def pull(self) -> bytes:
        if self._cancelled:
            raise ClientDisconnected
        if self._exhausted or self.cursor.part_index > self.plan.part_count:
            self._exhausted = True
            return b""

        chunk = b""
        fetched = False
        with anyio.CancelScope() as scope:
            self._scope = scope
            try:
                chunk = await self._fetcher.fetch(
                    self.handle, self.cursor.offset, self.plan.chunk_size
                )
                fetched = True
            finally:
                self._scope = None
                if not fetched:
                    self._exhausted = True
        if self._cancelled:
            raise ClientDisconnected

        if not chunk:
            LOG.debug(
                "end of data for file=%s at offset=%d after %d/%d bytes",
                self.handle.remote_id,
                self.cursor.offset,
                self.cursor.bytes_emitted,
                self.byte_range.length,
            )
            self._exhausted = True
            return b""

        part_index = self.cursor.part_index
        if len(chunk) < self.plan.chunk_size:
            # A short chunk is always the last one served.
            self._exhausted = True
            if part_index < self.plan.part_count:
                LOG.warning(
                    "short chunk for file=%s at offset=%d (%d bytes, part %d/%d)",
                    self.handle.remote_id,
                    self.cursor.offset,
                    len(chunk),
                    part_index,
                    self.plan.part_count,
                )

        piece = self.plan.trim(chunk, part_index)
        self.cursor.part_index += 1
        self.cursor.offset += self.plan.chunk_size
        self.cursor.bytes_emitted += len(piece)
        if not piece:
            self._exhausted = True
        return piece

    def __aiter__(self) -> ByteStream:
        return self

    async def __anext__(self) -> bytes:
        piece = await self.pull()
        if not piece:
            raise StopAsyncIteration
        return piece


def open_stream(
    fetcher: ChunkFetcher,
    handle: FileHandle,
    byte_range: ByteRange,
    chunk_size: int,
) -> ByteStream:
    """Open a fresh stream for ``byte_range`` of ``handle``."""
    if byte_range.length <= 0:
        msg = "cannot stream an empty window"
        raise ValueError(msg)
    if byte_range.end >= handle.total_size:
        msg = (
            f"window ends at {byte_range.end} past file size {handle.total_size}"
        )
        raise ValueError(msg)
    return ByteStream(fetcher, handle, byte_range, chunk_size)
