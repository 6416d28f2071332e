"""HTTP Range header parsing for single byte ranges.

Supported forms (RFC 9110 §14.1.2):
    bytes=500-999   explicit range
    bytes=500-      from offset to end of file
    bytes=-500      last 500 bytes (clamped to the file size)

Only the first range of a multi-range list is honoured. Anything that
cannot be served raises RangeNotSatisfiableError, which the gateway turns
into 416 with ``Content-Range: bytes */{size}``. Unlike the RFC's
"ignore an invalid Range" allowance, bounds at or beyond the end of the file
are rejected rather than clamped.
"""

import re
from dataclasses import dataclass

from app.exceptions import RangeNotSatisfiableError

_RANGE_SPEC = re.compile(r"^\s*(\d*)\s*-\s*(\d*)\s*$")


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range within a resource of ``size`` bytes."""

    start: int
    end: int
    size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"


def parse_range(header: str, size: int) -> ByteRange:
    """Parse a Range header value against a file size.

    Args:
        header: Raw header value, e.g. "bytes=0-99".
        size: Size of the file in bytes.

    Returns:
        ByteRange with inclusive bounds.

    Raises:
        RangeNotSatisfiableError: Unit other than bytes, malformed value,
            start > end, or any bound >= size.

    Example:
        >>> parse_range("bytes=0-99", 1000).content_range
        'bytes 0-99/1000'
        >>> parse_range("bytes=-100", 1000).start
        900
    """
    unit, sep, ranges = header.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        raise RangeNotSatisfiableError(size, header)

    first = ranges.split(",", 1)[0]
    match = _RANGE_SPEC.match(first)
    if not match:
        raise RangeNotSatisfiableError(size, header)

    start_str, end_str = match.groups()
    if not start_str and not end_str:
        raise RangeNotSatisfiableError(size, header)

    if not start_str:
        # Suffix range: last N bytes
        suffix = int(end_str)
        if suffix == 0 or size == 0:
            raise RangeNotSatisfiableError(size, header)
        return ByteRange(start=max(size - suffix, 0), end=size - 1, size=size)

    start = int(start_str)
    end = int(end_str) if end_str else size - 1

    if start > end or start >= size or end >= size:
        raise RangeNotSatisfiableError(size, header)

    return ByteRange(start=start, end=end, size=size)
