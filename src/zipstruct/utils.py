"""Utility functions for zipstruct."""

from __future__ import annotations

import posixpath
import time

from .exceptions import UnsafePathError

MAX_NAME_LENGTH = 0xFFFF


def format_size(size: int, binary: bool = False) -> str:
    """
    Format a size in bytes to a human-readable string.

    Args:
        size: Size in bytes.
        binary: If True, use binary units (KiB, MiB). If False, use decimal (KB, MB).

    Returns:
        Human-readable size string.

    Examples:
        >>> format_size(46)
        '46 B'
        >>> format_size(1572864, binary=True)
        '1.50 MiB'
    """
    if binary:
        units = ["B", "KiB", "MiB", "GiB", "TiB"]
        divisor = 1024.0
    else:
        units = ["B", "KB", "MB", "GB", "TB"]
        divisor = 1000.0

    value = float(size)
    for unit in units[:-1]:
        if abs(value) < divisor:
            return f"{value:.2f} {unit}" if value != int(value) else f"{int(value)} {unit}"
        value /= divisor

    return f"{value:.2f} {units[-1]}"


def dos_datetime(timestamp: float | None = None) -> tuple[int, int]:
    """
    Convert a Unix timestamp to DOS date and time format.

    Args:
        timestamp: Unix timestamp. If None, uses current time.

    Returns:
        Tuple of (dos_time, dos_date) as 16-bit integers.
    """
    if timestamp is None:
        timestamp = time.time()

    t = time.localtime(timestamp)

    # DOS dates start in 1980
    year = max(t.tm_year, 1980)

    # DOS time: bits 0-4 = seconds/2, bits 5-10 = minute, bits 11-15 = hour
    dos_time = (t.tm_sec // 2) | (t.tm_min << 5) | (t.tm_hour << 11)

    # DOS date: bits 0-4 = day, bits 5-8 = month, bits 9-15 = year - 1980
    dos_date = t.tm_mday | (t.tm_mon << 5) | ((year - 1980) << 9)

    return dos_time, dos_date


def sanitize_arcname(path: str) -> str:
    """
    Sanitize a path for use as an archive member name.

    - Converts backslashes to forward slashes
    - Removes leading slashes and drive letters
    - Collapses ``..`` segments, rejecting names that escape the root

    Args:
        path: Original path string.

    Returns:
        Sanitized archive name.

    Raises:
        UnsafePathError: If the name contains a null byte or escapes the root.
        ValueError: If the encoded name does not fit the 16-bit length field.
    """
    if "\x00" in path:
        raise UnsafePathError(path)

    name = path.replace("\\", "/")

    # Remove drive letter (e.g., "C:/")
    if len(name) >= 2 and name[1] == ":":
        name = name[2:]

    # Keep a trailing slash: it marks a directory entry
    is_dir = name.endswith("/")

    name = posixpath.normpath(name.lstrip("/")).lstrip("/")

    if name == ".." or name.startswith("../"):
        raise UnsafePathError(path)

    # normpath of empty string is "."
    if name == ".":
        name = ""
    elif is_dir:
        name += "/"

    encoded_length = len(name.encode("utf-8"))
    if encoded_length > MAX_NAME_LENGTH:
        raise ValueError(
            f"Archive name too long ({encoded_length} bytes, max {MAX_NAME_LENGTH})"
        )

    return name
