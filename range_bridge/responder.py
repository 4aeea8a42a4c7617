from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

from anyio import get_cancelled_exc_class
from litestar.enums import MediaType
from litestar.response import Response, Stream

from .assembler import open_stream
from .errors import (
    ClientDisconnected,
    LinkNotFound,
    RangeNotSatisfiable,
    UpstreamError,
)
from .ranges import parse_range

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .assembler import ByteStream
    from .fetcher import ChunkFetcher
    from .store import MetadataStore

LOG = logging.getLogger("range_bridge.responder")


def content_disposition(file_name: str) -> str:
    name = file_name.replace("\r", "").replace("\n", "") or "download"
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    if escaped.isascii():
        return f'attachment; filename="{escaped}"'
    fallback = escaped.encode("ascii", "replace").decode("ascii")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name)}"


class DownloadResponder:
    """Serve ``GET /download/{link_id}`` for one request at a time.

    Nothing is kept between calls; every request looks its handle up again
    and gets its own :class:`ByteStream`.
    """

    def __init__(
        self, store: MetadataStore, fetcher: ChunkFetcher, chunk_size: int
    ):
        self._store = store
        self._fetcher = fetcher
        self._chunk_size = chunk_size

    async def respond(self, link_id: str, range_header: str | None) -> Response:
        try:
            handle = await self._store.lookup(link_id)
        except LinkNotFound:
            LOG.debug("unknown link %s", link_id)
            return Response(
                content="File not found", status_code=404, media_type=MediaType.TEXT
            )

        try:
            byte_range = parse_range(range_header, handle.total_size)
        except RangeNotSatisfiable as error:
            LOG.debug("416 for link %s: %s", link_id, error)
            return Response(
                content=b"",
                status_code=416,
                headers={"Content-Range": error.content_range},
                media_type=MediaType.TEXT,
            )

        headers = {
            "Accept-Ranges": "bytes",
            "Content-Disposition": content_disposition(handle.file_name),
        }
        if byte_range.is_full(handle.total_size):
            status_code = 200
        else:
            status_code = 206
            headers["Content-Range"] = byte_range.content_range(handle.total_size)

        if byte_range.length == 0:
            return Response(
                content=b"",
                status_code=status_code,
                headers=headers,
                media_type=handle.content_type,
            )

        LOG.debug(
            "download link=%s start=%d end=%d length=%d",
            link_id,
            byte_range.start,
            byte_range.end,
            byte_range.length,
        )
        stream = open_stream(self._fetcher, handle, byte_range, self._chunk_size)
        try:
            first = await stream.pull()
        except UpstreamError as error:
            LOG.warning(
                "upstream failed for link %s before response: %s", link_id, error
            )
            return Response(
                content="Internal server error",
                status_code=500,
                media_type=MediaType.TEXT,
            )

        headers["Content-Length"] = str(byte_range.length)
        return Stream(
            content=self._drain(stream, first, link_id),
            status_code=status_code,
            headers=headers,
            media_type=handle.content_type,
        )

    async def _drain(
        self, stream: ByteStream, first: bytes, link_id: str
    ) -> AsyncIterator[bytes]:
        piece = first
        try:
            while piece:
                yield piece
                piece = await stream.pull()
        except ClientDisconnected:
            LOG.debug(
                "stream for link %s cancelled after %d bytes",
                link_id,
                stream.cursor.bytes_emitted,
            )
            return
        except get_cancelled_exc_class():
            LOG.debug(
                "client left link %s after %d bytes",
                link_id,
                stream.cursor.bytes_emitted,
            )
            raise
        except UpstreamError as error:
            # Status line is already out; the server can only drop the connection.
            LOG.warning(
                "upstream failed for link %s after %d/%d bytes: %s",
                link_id,
                stream.cursor.bytes_emitted,
                stream.byte_range.length,
                error,
            )
            raise
        finally:
            if not stream.exhausted:
                stream.cancel()
        if stream.cursor.bytes_emitted < stream.byte_range.length:
            LOG.warning(
                "remote data for link %s ended early at %d/%d bytes",
                link_id,
                stream.cursor.bytes_emitted,
                stream.byte_range.length,
            )
