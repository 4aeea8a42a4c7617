from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .backends import build_backend
from .config import load_backend_settings_from_env, load_server_settings_from_env
from .fetcher import ChunkFetcher, ConnectionPool
from .responder import DownloadResponder
from .store import SQLiteMetadataStore

if TYPE_CHECKING:
    from litestar.response import Response

    from .backends import RemoteBackend
    from .config import BackendSettings, ServerSettings
    from .store import MetadataStore

LOG = logging.getLogger("range_bridge.bridge")


class RangeBridge:
    """Process-wide wiring: metadata store, remote backend and responder."""

    def __init__(
        self,
        server: ServerSettings,
        backend: BackendSettings,
        *,
        store: MetadataStore | None = None,
        remote: RemoteBackend | None = None,
    ):
        self._server_settings = server
        self._backend_settings = backend
        self._store = store or SQLiteMetadataStore(server.db_path)
        self._remote = remote or build_backend(backend)
        self._fetcher = ChunkFetcher(
            self._remote, ConnectionPool(backend.max_connections)
        )
        self._responder = DownloadResponder(
            self._store, self._fetcher, server.chunk_size
        )
        self._started = False

    @property
    def store(self) -> MetadataStore:
        return self._store

    @property
    def fetcher(self) -> ChunkFetcher:
        return self._fetcher

    async def startup(self) -> None:
        if self._started:
            return
        await self._store.startup()
        await self._remote.startup()
        self._started = True
        LOG.info(
            "range bridge ready (backend=%s %s, chunk=%d, pool=%d)",
            self._backend_settings.kind,
            self._backend_settings.describe(),
            self._server_settings.chunk_size,
            self._backend_settings.max_connections,
        )
        LOG.info("download links will be %s", self.download_url("{id}"))

    async def shutdown(self) -> None:
        if not self._started:
            return
        await self._remote.shutdown()
        await self._store.shutdown()
        self._started = False
        LOG.info("range bridge stopped")

    async def download(self, link_id: str, range_header: str | None) -> Response:
        if not self._started:
            message = "bridge not initialised"
            raise RuntimeError(message)
        return await self._responder.respond(link_id, range_header)

    def download_url(self, link_id: str) -> str:
        return f"{self._server_settings.base_url}/download/{link_id}"

    @classmethod
    def from_env(cls) -> RangeBridge:
        """Create a RangeBridge from environment variables.

        Returns:
            RangeBridge configured from environment variables.
        """
        return cls(
            server=load_server_settings_from_env(),
            backend=load_backend_settings_from_env(),
        )
