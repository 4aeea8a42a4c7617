from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import anyio

from .errors import UpstreamTransportError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .backends import RemoteBackend
    from .models import FileHandle

LOG = logging.getLogger("range_bridge.fetcher")


class ConnectionPool:
    """Bounded set of transport slots shared by every stream.

    A slot is leased for exactly one fetch and given back on every exit path.
    """

    def __init__(self, size: int):
        if size < 1:
            msg = f"pool size must be >= 1, got {size}"
            raise ValueError(msg)
        self._size = size
        self._semaphore = anyio.Semaphore(size)

    @property
    def size(self) -> int:
        return self._size

    @property
    def in_use(self) -> int:
        return self._size - self._semaphore.value

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[None]:
        async with self._semaphore:
            yield


class ChunkFetcher:
    """Fetch one aligned chunk of a remote file. No retries."""

    def __init__(self, backend: RemoteBackend, pool: ConnectionPool):
        self._backend = backend
        self._pool = pool

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    async def fetch(self, handle: FileHandle, offset: int, limit: int) -> bytes:
        """Return the chunk at ``offset``; an empty result means end of data.

        Raises:
            ValueError: ``offset`` is not aligned to ``limit``.
            UpstreamTransportError: the backend failed or broke the protocol.
            UpstreamRedirectUnsupported: the backend moved the data elsewhere.
        """
        if limit <= 0 or offset < 0 or offset % limit:
            msg = f"unaligned chunk request offset={offset} limit={limit}"
            raise ValueError(msg)

        async with self._pool.lease():
            data = await self._backend.fetch_chunk(
                handle.reference, handle.access_token, offset, limit
            )

        if len(data) > limit:
            msg = (
                f"backend returned {len(data)} bytes for a {limit} byte chunk "
                f"of file {handle.remote_id}"
            )
            raise UpstreamTransportError(msg)
        LOG.debug(
            "fetched file=%s offset=%d limit=%d got=%d",
            handle.remote_id,
            offset,
            limit,
            len(data),
        )
        return data
