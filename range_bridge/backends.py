"""Remote backends that serve whole, offset-aligned file chunks."""

from __future__ import annotations

import base64
import logging
from functools import partial
from typing import TYPE_CHECKING, Protocol

import httpx
from anyio import CancelScope
from boto3.session import Session
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ._sync import run_sync
from .errors import UpstreamRedirectUnsupported, UpstreamTransportError

if TYPE_CHECKING:
    from .config import BackendSettings

LOG = logging.getLogger("range_bridge.backends")

REDIRECT_CODES = {"301", "307", "PermanentRedirect", "TemporaryRedirect"}
END_OF_DATA_CODES = {"416", "InvalidRange"}


class RemoteBackend(Protocol):
    async def startup(self) -> None: ...

    async def shutdown(self) -> None: ...

    async def fetch_chunk(
        self, reference: bytes, access_token: int, offset: int, limit: int
    ) -> bytes:
        """Return up to ``limit`` bytes at ``offset``; ``b""`` past the end."""
        ...


def _chunk_range(offset: int, limit: int) -> str:
    return f"bytes={offset}-{offset + limit - 1}"


def _content_range_start(value: str | None) -> int | None:
    """First byte of a ``Content-Range: bytes a-b/total`` value, if well formed."""
    if not value:
        return None
    unit, _, window = value.strip().partition(" ")
    if unit.lower() != "bytes":
        return None
    start, sep, _ = window.split("/", 1)[0].partition("-")
    start = start.strip()
    if not sep or not (start.isascii() and start.isdigit()) or len(start) > 20:
        return None
    return int(start)


class HTTPChunkBackend:
    """Chunk server reachable over HTTP.

    Files live at ``/files/<reference>`` with the reference in URL-safe
    base64, and the access token travels in ``X-Access-Token``.
    """

    def __init__(
        self,
        settings: BackendSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def startup(self) -> None:
        if not self._settings.endpoint:
            msg = "HTTP backend requires RANGE_BRIDGE_REMOTE_ENDPOINT"
            raise ValueError(msg)
        self._client = httpx.AsyncClient(
            base_url=self._settings.endpoint,
            timeout=httpx.Timeout(
                self._settings.connect_timeout, read=self._settings.read_timeout
            ),
            limits=httpx.Limits(
                max_connections=self._settings.max_connections,
                max_keepalive_connections=self._settings.max_connections,
            ),
            follow_redirects=False,
            trust_env=False,
            transport=self._transport,
        )

    async def shutdown(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _path_for(reference: bytes) -> str:
        encoded = base64.urlsafe_b64encode(reference).decode("ascii").rstrip("=")
        return f"/files/{encoded}"

    async def fetch_chunk(
        self, reference: bytes, access_token: int, offset: int, limit: int
    ) -> bytes:
        if self._client is None:
            message = "backend not initialised"
            raise RuntimeError(message)

        path = self._path_for(reference)
        headers = {
            "Range": _chunk_range(offset, limit),
            "X-Access-Token": str(access_token),
        }
        request = self._client.build_request("GET", path, headers=headers)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as error:
            msg = f"chunk request at offset {offset} failed: {error}"
            raise UpstreamTransportError(msg) from error

        try:
            if response.is_redirect:
                raise UpstreamRedirectUnsupported(response.headers.get("location"))
            if response.status_code == 416:
                return b""
            if response.status_code == 200:
                # The body would be the whole file; it is never read.
                msg = f"{path} ignored the Range header for offset {offset}"
                raise UpstreamTransportError(msg)
            if response.status_code != 206:
                msg = (
                    f"chunk request at offset {offset} returned "
                    f"HTTP {response.status_code}"
                )
                raise UpstreamTransportError(msg)

            content_range = response.headers.get("content-range")
            if _content_range_start(content_range) != offset:
                msg = (
                    f"chunk request at offset {offset} answered with "
                    f"Content-Range {content_range!r}"
                )
                raise UpstreamTransportError(msg)
            try:
                return await response.aread()
            except httpx.HTTPError as error:
                msg = f"chunk body at offset {offset} failed: {error}"
                raise UpstreamTransportError(msg) from error
        finally:
            with CancelScope(shield=True):
                await response.aclose()


class S3ChunkBackend:
    """Objects in one S3 bucket, keyed by the UTF-8 reference.

    The boto3 session authenticates every call, so the per-file access token
    is not used here.
    """

    def __init__(self, settings: BackendSettings, client=None):
        self._settings = settings
        self._client = client

    def _build_client(self):
        session = Session(
            aws_access_key_id=self._settings.access_key,
            aws_secret_access_key=self._settings.secret_key,
            aws_session_token=self._settings.session_token,
            region_name=self._settings.region,
        )
        return session.client(
            "s3",
            endpoint_url=self._settings.endpoint,
            config=BotoConfig(
                signature_version="s3v4",
                retries={"max_attempts": 1},
                max_pool_connections=self._settings.max_connections,
                connect_timeout=self._settings.connect_timeout,
                read_timeout=self._settings.read_timeout,
                s3={"addressing_style": self._settings.addressing_style},
            ),
        )

    async def startup(self) -> None:
        if not self._settings.bucket:
            msg = "S3 backend requires RANGE_BRIDGE_REMOTE_BUCKET"
            raise ValueError(msg)
        if self._client is None:
            self._client = self._build_client()

    async def shutdown(self) -> None:
        self._client = None

    async def fetch_chunk(
        self, reference: bytes, access_token: int, offset: int, limit: int
    ) -> bytes:
        if self._client is None:
            message = "backend not initialised"
            raise RuntimeError(message)

        key = reference.decode("utf-8")
        get_kwargs = {
            "Bucket": self._settings.bucket,
            "Key": key,
            "Range": _chunk_range(offset, limit),
        }
        try:
            result = await run_sync(
                partial(self._client.get_object, **get_kwargs), abandon_on_cancel=True
            )
            body = result["Body"]
            try:
                return await run_sync(body.read, abandon_on_cancel=True)
            finally:
                with CancelScope(shield=True):
                    await run_sync(body.close)
        except ClientError as error:
            code = str(error.response.get("Error", {}).get("Code", ""))
            if code in END_OF_DATA_CODES:
                return b""
            if code in REDIRECT_CODES:
                location = error.response.get("Error", {}).get("Endpoint")
                raise UpstreamRedirectUnsupported(location) from error
            msg = f"get_object s3://{self._settings.bucket}/{key} failed: {code}"
            raise UpstreamTransportError(msg) from error
        except BotoCoreError as error:
            msg = f"get_object s3://{self._settings.bucket}/{key} failed: {error}"
            raise UpstreamTransportError(msg) from error


def build_backend(settings: BackendSettings) -> RemoteBackend:
    if settings.kind == "s3":
        return S3ChunkBackend(settings)
    return HTTPChunkBackend(settings)
