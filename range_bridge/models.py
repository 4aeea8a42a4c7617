from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class FileHandle:
    """Everything needed to fetch one remote file, as loaded for one request.

    ``access_token`` and ``reference`` may go stale between requests, so a
    handle is never cached beyond the request that looked it up.
    """

    remote_id: int
    access_token: int
    reference: bytes
    total_size: int
    mime_type: str = DEFAULT_MIME_TYPE
    file_name: str = "download"

    def __post_init__(self) -> None:
        if self.total_size < 0:
            msg = f"total_size must be >= 0, got {self.total_size}"
            raise ValueError(msg)

    @property
    def content_type(self) -> str:
        return self.mime_type or DEFAULT_MIME_TYPE
