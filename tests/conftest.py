from __future__ import annotations

import os
from typing import TYPE_CHECKING

import anyio
import pytest
from range_bridge import BackendSettings, FileHandle, RangeBridge, ServerSettings
from range_bridge.errors import LinkNotFound
from range_bridge.fetcher import ChunkFetcher, ConnectionPool

if TYPE_CHECKING:
    from collections.abc import Generator

MIB = 1024 * 1024


def make_content(size: int) -> bytes:
    """Deterministic bytes whose period does not divide any chunk size."""
    pattern = bytes(range(251))
    return (pattern * (size // len(pattern) + 1))[:size]


class MemoryBackend:
    """Serves aligned chunks out of in-memory files and records every call."""

    def __init__(self, files: dict[bytes, bytes] | None = None):
        self.files = files or {}
        self.calls: list[tuple[bytes, int, int]] = []
        self.errors: dict[int, Exception] = {}
        self.truncate: dict[int, int] = {}
        self.block: anyio.Event | None = None
        self.entered: anyio.Event | None = None
        self.active = 0
        self.max_active = 0
        self.started = False

    async def startup(self) -> None:
        self.started = True

    async def shutdown(self) -> None:
        self.started = False

    async def fetch_chunk(
        self, reference: bytes, access_token: int, offset: int, limit: int
    ) -> bytes:
        self.calls.append((reference, offset, limit))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.entered is not None:
                self.entered.set()
            if self.block is not None:
                await self.block.wait()
            if offset in self.errors:
                raise self.errors[offset]
            data = self.files[reference][offset : offset + limit]
            if offset in self.truncate:
                data = data[: self.truncate[offset]]
            return data
        finally:
            self.active -= 1

    @property
    def offsets(self) -> list[int]:
        return [offset for _, offset, _ in self.calls]


class MemoryStore:
    def __init__(self):
        self.handles: dict[str, FileHandle] = {}
        self.lookups: list[str] = []

    async def startup(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    async def lookup(self, link_id: str) -> FileHandle:
        self.lookups.append(link_id)
        try:
            return self.handles[link_id]
        except KeyError:
            raise LinkNotFound(link_id) from None


def register(
    store: MemoryStore,
    backend: MemoryBackend,
    link_id: str,
    content: bytes,
    *,
    mime_type: str = "application/octet-stream",
    file_name: str = "movie.bin",
) -> FileHandle:
    reference = f"ref-{link_id}".encode()
    handle = FileHandle(
        remote_id=len(store.handles) + 1,
        access_token=4242,
        reference=reference,
        total_size=len(content),
        mime_type=mime_type,
        file_name=file_name,
    )
    backend.files[reference] = content
    store.handles[link_id] = handle
    return handle


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def fetcher(memory_backend: MemoryBackend) -> ChunkFetcher:
    return ChunkFetcher(memory_backend, ConnectionPool(4))


@pytest.fixture
def clean_env() -> Generator[None]:
    """Drop RANGE_BRIDGE_* variables for the duration of a test."""
    saved = {k: v for k, v in os.environ.items() if k.startswith("RANGE_BRIDGE_")}
    for key in saved:
        os.environ.pop(key)
    yield
    for key in list(os.environ):
        if key.startswith("RANGE_BRIDGE_"):
            os.environ.pop(key)
    os.environ.update(saved)


@pytest.fixture
def bridge(
    clean_env, memory_store: MemoryStore, memory_backend: MemoryBackend
) -> RangeBridge:
    return RangeBridge(
        ServerSettings(base_url="http://files.example"),
        BackendSettings(max_connections=2),
        store=memory_store,
        remote=memory_backend,
    )
