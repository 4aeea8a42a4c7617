"""Range-addressable HTTP streaming of remotely hosted files."""

from .app import create_app
from .assembler import ByteStream, ChunkPlan, open_stream
from .bridge import RangeBridge
from .config import BackendSettings, ServerSettings
from .models import FileHandle
from .ranges import ByteRange, parse_range

__all__ = [
    "BackendSettings",
    "ByteRange",
    "ByteStream",
    "ChunkPlan",
    "FileHandle",
    "RangeBridge",
    "ServerSettings",
    "create_app",
    "open_stream",
    "parse_range",
]
