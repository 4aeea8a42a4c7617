from __future__ import annotations


class BridgeError(Exception):
    """Base class for errors raised while serving a download."""


class RangeNotSatisfiable(BridgeError):
    """The requested byte window cannot be served for this file."""

    def __init__(self, message: str, total_size: int):
        super().__init__(message)
        self.total_size = total_size

    @property
    def content_range(self) -> str:
        return f"bytes */{self.total_size}"


class InvalidRangeSpec(RangeNotSatisfiable):
    """The Range header is not a single well-formed ``bytes=`` spec."""


class LinkNotFound(BridgeError):
    def __init__(self, link_id: str):
        super().__init__(f"no file registered for link {link_id!r}")
        self.link_id = link_id


class UpstreamError(BridgeError):
    """A chunk fetch against the remote backend failed."""


class UpstreamTransportError(UpstreamError):
    pass


class UpstreamRedirectUnsupported(UpstreamError):
    def __init__(self, location: str | None = None):
        message = "remote backend redirected the chunk request"
        if location:
            message = f"{message} to {location}"
        super().__init__(message)
        self.location = location


class ClientDisconnected(BridgeError):
    """The request was cancelled; not reported to anyone."""
