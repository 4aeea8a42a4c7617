"""Single byte-range parsing for the ``Range`` request header."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import InvalidRangeSpec, RangeNotSatisfiable

BYTES_UNIT = "bytes"


@dataclass(frozen=True)
class ByteRange:
    """Inclusive ``[start, end]`` window over a file.

    ``ByteRange(0, -1)`` is the empty window of a zero-byte file.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start - 1:
            msg = f"invalid byte window {self.start}-{self.end}"
            raise ValueError(msg)

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def is_full(self, total_size: int) -> bool:
        return self.start == 0 and self.end == total_size - 1

    def content_range(self, total_size: int) -> str:
        return f"bytes {self.start}-{self.end}/{total_size}"


def _parse_position(value: str, header: str, total_size: int) -> int:
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        msg = f"invalid range position {value!r} in {header!r}"
        raise InvalidRangeSpec(msg, total_size)
    try:
        return int(value)
    except ValueError as error:
        # More digits than int() is allowed to convert.
        msg = f"range position too long in {header[:64]!r}"
        raise InvalidRangeSpec(msg, total_size) from error


def parse_range(range_header: str | None, total_size: int) -> ByteRange:
    """Resolve a ``Range`` header against a file of ``total_size`` bytes.

    A missing or empty header selects the whole file. Only one range spec is
    accepted (``start-end``, ``start-`` or ``-suffix``).

    Raises:
        InvalidRangeSpec: the header is malformed or names several ranges.
        RangeNotSatisfiable: the window does not fit inside the file.
    """
    if not range_header or not range_header.strip():
        return ByteRange(0, total_size - 1)

    unit, sep, spec = range_header.strip().partition("=")
    if not sep or unit.strip().lower() != BYTES_UNIT:
        msg = f"unsupported range unit in {range_header!r}"
        raise InvalidRangeSpec(msg, total_size)
    if "," in spec:
        msg = "multiple ranges are not supported"
        raise InvalidRangeSpec(msg, total_size)
    if "-" not in spec:
        msg = f"invalid range spec {spec!r}"
        raise InvalidRangeSpec(msg, total_size)

    start_str, end_str = spec.strip().split("-", 1)
    start_str = start_str.strip()
    end_str = end_str.strip()

    if not start_str:
        suffix = _parse_position(end_str, range_header, total_size)
        start = max(0, total_size - suffix)
        end = total_size - 1
    elif not end_str:
        start = _parse_position(start_str, range_header, total_size)
        end = total_size - 1
    else:
        start = _parse_position(start_str, range_header, total_size)
        end = _parse_position(end_str, range_header, total_size)

    if start < 0 or end < start or end >= total_size:
        msg = f"range {start}-{end} not satisfiable for {total_size} bytes"
        raise RangeNotSatisfiable(msg, total_size)
    return ByteRange(start, end)
