"""Single-range `Range: bytes=start-end` handling for the recording proxy."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import RangeNotSatisfiable

_RANGE_PATTERN = re.compile(r"bytes=(\d+)-(\d*)")


@dataclass(frozen=True, slots=True)
class ByteRange:
    start: int
    end: int
    total: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"


def parse_range_header(header: str | None, total_length: int) -> ByteRange | None:
    """Return the requested range, or None when the full object should be sent.

    An empty end means "to the last byte". Bounds outside the object raise
    RangeNotSatisfiable. Headers that do not match the pattern and empty objects
    fall back to a full response.
    """

    if not header or total_length <= 0:
        return None
    match = _RANGE_PATTERN.search(header)
    if not match:
        return None
    start_str, end_str = match.groups()
    try:
        start = int(start_str)
        end = int(end_str) if end_str else total_length - 1
    except ValueError:
        raise RangeNotSatisfiable(total_length=total_length) from None
    if start > end or end >= total_length:
        raise RangeNotSatisfiable(total_length=total_length)
    return ByteRange(start=start, end=end, total=total_length)


__all__ = ["ByteRange", "parse_range_header"]
