"""Tests for Range header parsing in app/services/byte_range.py."""

import pytest

from app.exceptions import RangeNotSatisfiableError
from app.services.byte_range import ByteRange, parse_range

SIZE = 1000


class TestParseRange:
    def test_explicit_range(self):
        """[P0] bytes=0-99 covers 100 bytes."""
        byte_range = parse_range("bytes=0-99", SIZE)

        assert byte_range == ByteRange(start=0, end=99, size=SIZE)
        assert byte_range.length == 100
        assert byte_range.content_range == "bytes 0-99/1000"

    def test_open_ended_range(self):
        byte_range = parse_range("bytes=500-", SIZE)

        assert (byte_range.start, byte_range.end) == (500, 999)

    def test_full_file_open_range(self):
        byte_range = parse_range("bytes=0-", SIZE)

        assert byte_range.length == SIZE

    def test_suffix_range(self):
        byte_range = parse_range("bytes=-100", SIZE)

        assert (byte_range.start, byte_range.end) == (900, 999)

    def test_suffix_larger_than_file_is_clamped(self):
        byte_range = parse_range("bytes=-5000", SIZE)

        assert (byte_range.start, byte_range.end) == (0, 999)

    def test_only_first_range_used(self):
        byte_range = parse_range("bytes=0-9, 20-29", SIZE)

        assert (byte_range.start, byte_range.end) == (0, 9)

    def test_whitespace_and_unit_case_tolerated(self):
        byte_range = parse_range(" Bytes = 10 - 19 ", SIZE)

        assert (byte_range.start, byte_range.end) == (10, 19)

    @pytest.mark.parametrize(
        "header",
        [
            "bytes=1000-",  # start == size
            "bytes=0-1000",  # end == size
            "bytes=2000-3000",
            "bytes=50-10",  # start > end
            "bytes=-0",
            "bytes=-",
            "bytes=abc",
            "items=0-10",
            "0-10",
        ],
    )
    def test_unsatisfiable(self, header):
        """[P0] Out-of-bounds or malformed ranges raise with the file size."""
        with pytest.raises(RangeNotSatisfiableError) as exc_info:
            parse_range(header, SIZE)

        assert exc_info.value.size == SIZE

    def test_empty_file_rejects_every_range(self):
        with pytest.raises(RangeNotSatisfiableError):
            parse_range("bytes=0-", 0)
        with pytest.raises(RangeNotSatisfiableError):
            parse_range("bytes=-10", 0)
