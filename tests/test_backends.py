"""Tests for the HTTP and S3 chunk backends."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from range_bridge.backends import HTTPChunkBackend, S3ChunkBackend, build_backend
from range_bridge.config import BackendSettings
from range_bridge.errors import UpstreamRedirectUnsupported, UpstreamTransportError

CONTENT = bytes(range(256))


def _client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        "GetObject",
    )


class TestHTTPChunkBackend:
    """Test the HTTP chunk server mapping using httpx.MockTransport."""

    @pytest.fixture
    def requests(self) -> list[httpx.Request]:
        return []

    async def _backend(self, handler) -> HTTPChunkBackend:
        backend = HTTPChunkBackend(
            BackendSettings(endpoint="http://chunks.test"),
            transport=httpx.MockTransport(handler),
        )
        await backend.startup()
        return backend

    @pytest.mark.anyio
    async def test_partial_content(self, requests):
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                206,
                headers={"Content-Range": "bytes 64-127/256"},
                content=CONTENT[64:128],
            )

        backend = await self._backend(handler)
        try:
            assert await backend.fetch_chunk(b"ref", 7, 64, 64) == CONTENT[64:128]
        finally:
            await backend.shutdown()

        (request,) = requests
        assert request.url.path == "/files/cmVm"
        assert request.headers["range"] == "bytes=64-127"
        assert request.headers["x-access-token"] == "7"

    @pytest.mark.anyio
    async def test_short_final_window_accepted(self):
        backend = await self._backend(
            lambda request: httpx.Response(
                206,
                headers={"Content-Range": "bytes 192-255/256"},
                content=CONTENT[192:],
            )
        )
        try:
            assert await backend.fetch_chunk(b"ref", 1, 192, 128) == CONTENT[192:]
        finally:
            await backend.shutdown()

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "content_range", [None, "bytes 0-63/256", "bytes */256", "items 64-127/256"]
    )
    async def test_mismatched_window_rejected(self, content_range):
        headers = {"Content-Range": content_range} if content_range else {}
        backend = await self._backend(
            lambda request: httpx.Response(
                206, headers=headers, content=CONTENT[0:64]
            )
        )
        try:
            with pytest.raises(UpstreamTransportError, match="Content-Range"):
                await backend.fetch_chunk(b"ref", 1, 64, 64)
        finally:
            await backend.shutdown()

    @pytest.mark.anyio
    async def test_ignored_range_is_not_read(self):
        class CountingStream(httpx.AsyncByteStream):
            def __init__(self):
                self.sent = 0

            async def __aiter__(self):
                for start in range(0, len(CONTENT), 16):
                    self.sent += 16
                    yield CONTENT[start : start + 16]

        body = CountingStream()
        backend = await self._backend(
            lambda request: httpx.Response(200, stream=body)
        )
        try:
            with pytest.raises(UpstreamTransportError, match="ignored the Range"):
                await backend.fetch_chunk(b"ref", 1, 128, 64)
        finally:
            await backend.shutdown()
        assert body.sent == 0

    @pytest.mark.anyio
    async def test_unsatisfiable_is_end_of_data(self):
        backend = await self._backend(lambda request: httpx.Response(416))
        try:
            assert await backend.fetch_chunk(b"ref", 1, 512, 64) == b""
        finally:
            await backend.shutdown()

    @pytest.mark.anyio
    async def test_redirect_not_followed(self):
        backend = await self._backend(
            lambda request: httpx.Response(
                302, headers={"Location": "http://cdn.test/file"}
            )
        )
        try:
            with pytest.raises(UpstreamRedirectUnsupported) as info:
                await backend.fetch_chunk(b"ref", 1, 0, 64)
        finally:
            await backend.shutdown()
        assert info.value.location == "http://cdn.test/file"

    @pytest.mark.anyio
    async def test_server_error(self):
        backend = await self._backend(lambda request: httpx.Response(503))
        try:
            with pytest.raises(UpstreamTransportError, match="HTTP 503"):
                await backend.fetch_chunk(b"ref", 1, 0, 64)
        finally:
            await backend.shutdown()

    @pytest.mark.anyio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            message = "connection refused"
            raise httpx.ConnectError(message, request=request)

        backend = await self._backend(handler)
        try:
            with pytest.raises(UpstreamTransportError, match="connection refused"):
                await backend.fetch_chunk(b"ref", 1, 0, 64)
        finally:
            await backend.shutdown()

    @pytest.mark.anyio
    async def test_requires_startup(self):
        backend = HTTPChunkBackend(BackendSettings(endpoint="http://chunks.test"))
        with pytest.raises(RuntimeError, match="not initialised"):
            await backend.fetch_chunk(b"ref", 1, 0, 64)

    @pytest.mark.anyio
    async def test_requires_endpoint(self, clean_env):
        backend = HTTPChunkBackend(BackendSettings())
        with pytest.raises(ValueError, match="REMOTE_ENDPOINT"):
            await backend.startup()


class TestS3ChunkBackend:
    """Test ranged get_object calls against a mocked boto3 client."""

    def _backend(self, client: MagicMock) -> S3ChunkBackend:
        return S3ChunkBackend(
            BackendSettings(kind="s3", bucket="media"), client=client
        )

    @pytest.mark.anyio
    async def test_ranged_get(self):
        body = MagicMock()
        body.read.return_value = CONTENT[64:128]
        client = MagicMock()
        client.get_object.return_value = {"Body": body}

        backend = self._backend(client)
        await backend.startup()
        data = await backend.fetch_chunk(b"movies/a.mp4", 0, 64, 64)

        assert data == CONTENT[64:128]
        client.get_object.assert_called_once_with(
            Bucket="media", Key="movies/a.mp4", Range="bytes=64-127"
        )
        body.close.assert_called_once()

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        ("code", "status"), [("InvalidRange", 416), ("416", 416)]
    )
    async def test_invalid_range_is_end_of_data(self, code, status):
        client = MagicMock()
        client.get_object.side_effect = _client_error(code, status)
        backend = self._backend(client)
        await backend.startup()
        assert await backend.fetch_chunk(b"k", 0, 1024, 64) == b""

    @pytest.mark.anyio
    async def test_redirect_not_followed(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error("PermanentRedirect", 301)
        backend = self._backend(client)
        await backend.startup()
        with pytest.raises(UpstreamRedirectUnsupported):
            await backend.fetch_chunk(b"k", 0, 0, 64)

    @pytest.mark.anyio
    async def test_access_denied(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error("AccessDenied", 403)
        backend = self._backend(client)
        await backend.startup()
        with pytest.raises(UpstreamTransportError, match="AccessDenied"):
            await backend.fetch_chunk(b"k", 0, 0, 64)

    @pytest.mark.anyio
    async def test_endpoint_unreachable(self):
        client = MagicMock()
        client.get_object.side_effect = EndpointConnectionError(
            endpoint_url="http://s3.test"
        )
        backend = self._backend(client)
        await backend.startup()
        with pytest.raises(UpstreamTransportError, match="s3.test"):
            await backend.fetch_chunk(b"k", 0, 0, 64)

    @pytest.mark.anyio
    async def test_requires_bucket(self, clean_env):
        backend = S3ChunkBackend(BackendSettings(kind="s3"), client=MagicMock())
        with pytest.raises(ValueError, match="REMOTE_BUCKET"):
            await backend.startup()


class TestBuildBackend:
    def test_http_by_default(self, clean_env):
        assert isinstance(build_backend(BackendSettings()), HTTPChunkBackend)

    def test_s3(self):
        backend = build_backend(BackendSettings(kind="s3", bucket="media"))
        assert isinstance(backend, S3ChunkBackend)
