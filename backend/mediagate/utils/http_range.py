"""HTTP byte-range parsing and Content-Range arithmetic."""

from __future__ import annotations

import re
from dataclasses import dataclass

# Single range only; multi-range requests fall through as "no range".
_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)
_CONTENT_RANGE_RE = re.compile(r"^\s*bytes\s+(\d+)-(\d+)/(\d+|\*)\s*$", re.IGNORECASE)


class RangeNotSatisfiable(Exception):
    """Requested range starts at or beyond the end of the resource."""

    def __init__(self, total_size: int):
        super().__init__(f"Range not satisfiable for size {total_size}")
        self.total_size = total_size

    @property
    def content_range(self) -> str:
        return f"bytes */{self.total_size}"


@dataclass(frozen=True)
class RangeRequest:
    """Parsed ``Range`` header. ``end`` of None means "to end of file"."""

    start: int = 0
    end: int | None = None
    suffix_length: int | None = None  # bytes=-N


@dataclass(frozen=True)
class ByteRange:
    """Inclusive served window ``[start, end]`` of a resource of ``total`` bytes."""

    start: int
    end: int
    total: int | None

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        total = "*" if self.total is None else str(self.total)
        return f"bytes {self.start}-{self.end}/{total}"


def parse_range_header(value: str | None) -> RangeRequest | None:
    """Parse ``bytes=S-E``, ``bytes=S-`` or ``bytes=-N``.

    Returns None when the header is absent, malformed or asks for several
    ranges; callers then serve the full resource.
    """
    if not value:
        return None
    match = _RANGE_RE.match(value)
    if not match:
        return None
    start_str, end_str = match.groups()
    if not start_str and not end_str:
        return None
    if not start_str:
        return RangeRequest(suffix_length=int(end_str))
    return RangeRequest(
        start=int(start_str),
        end=int(end_str) if end_str else None,
    )


def resolve_range(request: RangeRequest, total_size: int) -> ByteRange:
    """Apply a range request to a resource of ``total_size`` bytes.

    Raises RangeNotSatisfiable when the window is empty or starts past the end.
    """
    if request.suffix_length is not None:
        if request.suffix_length == 0 or total_size == 0:
            raise RangeNotSatisfiable(total_size)
        start = max(0, total_size - request.suffix_length)
        return ByteRange(start=start, end=total_size - 1, total=total_size)

    if request.start >= total_size:
        raise RangeNotSatisfiable(total_size)
    end = total_size - 1 if request.end is None else min(request.end, total_size - 1)
    # Inverted window (S > E) is answered with 416 rather than ignored as RFC 9110 allows
    if request.start > end:
        raise RangeNotSatisfiable(total_size)
    return ByteRange(start=request.start, end=end, total=total_size)


def parse_content_range(value: str | None) -> ByteRange | None:
    """Parse an upstream ``Content-Range: bytes S-E/T`` header."""
    if not value:
        return None
    match = _CONTENT_RANGE_RE.match(value)
    if not match:
        return None
    start, end, total = match.groups()
    return ByteRange(
        start=int(start),
        end=int(end),
        total=None if total == "*" else int(total),
    )
