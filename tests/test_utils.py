"""Tests for utility functions."""

import time

import pytest

from zipstruct.exceptions import UnsafePathError
from zipstruct.utils import dos_datetime, format_size, sanitize_arcname


class TestFormatSize:
    """Tests for format_size function."""

    def test_decimal_format(self):
        assert format_size(0) == "0 B"
        assert format_size(500) == "500 B"
        assert format_size(1500) == "1.50 KB"
        assert format_size(1_500_000) == "1.50 MB"
        assert format_size(1_500_000_000) == "1.50 GB"

    def test_binary_format(self):
        assert format_size(1024, binary=True) == "1 KiB"
        assert format_size(1536, binary=True) == "1.50 KiB"
        assert format_size(1024 * 1024, binary=True) == "1 MiB"


class TestDosDatetime:
    """Tests for DOS datetime conversion."""

    def test_known_timestamp(self):
        # 2024-01-15 10:30:45
        ts = time.mktime((2024, 1, 15, 10, 30, 45, 0, 0, -1))
        dos_time, dos_date = dos_datetime(ts)

        # Decode and verify
        seconds = (dos_time & 0x1F) * 2
        minutes = (dos_time >> 5) & 0x3F
        hours = (dos_time >> 11) & 0x1F

        day = dos_date & 0x1F
        month = (dos_date >> 5) & 0x0F
        year = ((dos_date >> 9) & 0x7F) + 1980

        assert hours == 10
        assert minutes == 30
        assert seconds == 44  # Rounded down to even
        assert day == 15
        assert month == 1
        assert year == 2024

    def test_fits_16_bits(self):
        dos_time, dos_date = dos_datetime()
        assert 0 <= dos_time <= 0xFFFF
        assert 0 <= dos_date <= 0xFFFF

    def test_before_1980_clamped(self):
        ts = time.mktime((1975, 6, 1, 12, 0, 0, 0, 0, -1))
        _, dos_date = dos_datetime(ts)
        assert (dos_date >> 9) & 0x7F == 0


class TestSanitizeArcname:
    """Tests for archive name sanitization."""

    def test_forward_slashes(self):
        assert sanitize_arcname("dir/file.txt") == "dir/file.txt"

    def test_backslashes_converted(self):
        assert sanitize_arcname("dir\\file.txt") == "dir/file.txt"
        assert sanitize_arcname("dir\\sub\\file.txt") == "dir/sub/file.txt"

    def test_leading_slashes_removed(self):
        assert sanitize_arcname("/dir/file.txt") == "dir/file.txt"
        assert sanitize_arcname("///dir/file.txt") == "dir/file.txt"

    def test_drive_letter_removed(self):
        assert sanitize_arcname("C:/Users/file.txt") == "Users/file.txt"
        assert sanitize_arcname("D:\\Data\\file.txt") == "Data/file.txt"

    def test_double_slashes_normalized(self):
        assert sanitize_arcname("dir//sub//file.txt") == "dir/sub/file.txt"

    def test_directory_slash_kept(self):
        assert sanitize_arcname("dir/sub/") == "dir/sub/"

    def test_parent_segments_collapsed(self):
        assert sanitize_arcname("a/b/../c.txt") == "a/c.txt"

    def test_escape_rejected(self):
        with pytest.raises(UnsafePathError):
            sanitize_arcname("../etc/passwd")
        with pytest.raises(UnsafePathError):
            sanitize_arcname("a/../../b")

    def test_null_byte_rejected(self):
        with pytest.raises(UnsafePathError):
            sanitize_arcname("file\x00.txt")

    def test_name_too_long(self):
        with pytest.raises(ValueError, match="too long"):
            sanitize_arcname("x" * 0x10000)
