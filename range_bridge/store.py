from __future__ import annotations

import logging
import secrets
import sqlite3
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from ._sync import run_sync
from .errors import LinkNotFound
from .models import DEFAULT_MIME_TYPE, FileHandle

if TYPE_CHECKING:
    from collections.abc import Generator

LOG = logging.getLogger("range_bridge.store")

SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    link_id TEXT NOT NULL UNIQUE,
    file_id INTEGER NOT NULL,
    access_hash INTEGER NOT NULL DEFAULT 0,
    file_reference BLOB,
    file_name TEXT NOT NULL,
    file_size INTEGER NOT NULL,
    mime_type TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_link_id ON files(link_id);
"""


class MetadataStore(Protocol):
    async def startup(self) -> None: ...

    async def shutdown(self) -> None: ...

    async def lookup(self, link_id: str) -> FileHandle:
        """Return the handle for ``link_id`` or raise :class:`LinkNotFound`."""
        ...


def new_link_id() -> str:
    return secrets.token_urlsafe(12)


class SQLiteMetadataStore:
    """Link metadata kept in a local SQLite file.

    Every call opens its own connection in a worker thread, so no connection
    is shared between concurrent requests.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_schema(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    async def startup(self) -> None:
        await run_sync(self._init_schema)
        LOG.info("metadata store ready at %s", self._path)

    async def shutdown(self) -> None:
        pass

    def _select(self, link_id: str) -> sqlite3.Row | None:
        query = (
            "SELECT file_id, access_hash, file_reference, file_name, file_size, "
            "mime_type FROM files WHERE link_id = ?"
        )
        with self._connect() as conn:
            return conn.execute(query, (link_id,)).fetchone()

    def _insert(self, link_id: str, handle: FileHandle) -> None:
        query = (
            "INSERT INTO files (link_id, file_id, access_hash, file_reference, "
            "file_name, file_size, mime_type) VALUES (?, ?, ?, ?, ?, ?, ?)"
        )
        with self._connect() as conn:
            conn.execute(
                query,
                (
                    link_id,
                    handle.remote_id,
                    handle.access_token,
                    handle.reference,
                    handle.file_name,
                    handle.total_size,
                    handle.mime_type,
                ),
            )

    async def lookup(self, link_id: str) -> FileHandle:
        row = await run_sync(partial(self._select, link_id))
        if row is None:
            raise LinkNotFound(link_id)
        return FileHandle(
            remote_id=row["file_id"],
            access_token=row["access_hash"],
            reference=bytes(row["file_reference"] or b""),
            total_size=row["file_size"],
            mime_type=row["mime_type"] or DEFAULT_MIME_TYPE,
            file_name=row["file_name"],
        )

    async def save(self, handle: FileHandle, link_id: str | None = None) -> str:
        """Register ``handle`` under ``link_id`` (a fresh one if omitted)."""
        link_id = link_id or new_link_id()
        await run_sync(partial(self._insert, link_id, handle))
        LOG.debug("saved link %s for file %s", link_id, handle.remote_id)
        return link_id
