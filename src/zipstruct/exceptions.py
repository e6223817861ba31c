"""Custom exceptions for zipstruct."""

from __future__ import annotations


class ZipStructError(Exception):
    """Base exception for all zipstruct errors."""


class SignatureError(ZipStructError, ValueError):
    """Leading magic bytes of a record do not match its signature."""

    record = "record"

    def __init__(self, found: int | None = None) -> None:
        self.found = found
        if found is None:
            message = f"Invalid {self.record} signature"
        else:
            message = f"Invalid {self.record} signature: {found:#010x}"
        super().__init__(message)


class LocalFileHeaderSignatureError(SignatureError):
    record = "local file header"


class DataDescriptorSignatureError(SignatureError):
    record = "data descriptor"


class CentralDirectoryHeaderSignatureError(SignatureError):
    record = "central directory header"


class EndOfCentralDirectorySignatureError(SignatureError):
    record = "end of central directory"


class TruncatedRecordError(ZipStructError):
    """Stream ended before a record was fully read."""

    def __init__(self, record: str, expected: int, actual: int) -> None:
        self.record = record
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Data too short for {record}: {actual} < {expected} bytes"
        )


class FieldRangeError(ZipStructError):
    """A value does not fit the 16/32-bit field reserved for it (ZIP64 not supported)."""

    def __init__(self, record: str, field: str, value: int, limit: int) -> None:
        self.record = record
        self.field = field
        self.value = value
        self.limit = limit
        super().__init__(
            f"{record} field '{field}' is {value}; exceeds ZIP32 limit of {limit}. "
            "ZIP64 not supported."
        )


class FileNameEncodingError(ZipStructError):
    """File name bytes are not valid UTF-8."""

    def __init__(self, raw: bytes) -> None:
        self.raw = raw
        super().__init__(f"File name is not valid UTF-8: {raw!r}")


class CompressionError(ZipStructError):
    """Error during decompression."""


class UnsupportedCompressionError(CompressionError):
    """No decompressor is registered for a compression method."""

    def __init__(self, method: int) -> None:
        self.method = method
        super().__init__(f"Unsupported compression method: {method}")


class ChecksumMismatchError(ZipStructError):
    """CRC mismatch or corrupted data."""

    def __init__(self, expected: int, found: int, filename: str = "") -> None:
        self.expected = expected
        self.found = found
        self.filename = filename
        super().__init__(
            f"CRC32 mismatch for '{filename}': expected {expected:08x}, found {found:08x}"
        )


class DataDescriptorConflictError(ZipStructError):
    """Local file header disagrees with its trailing data descriptor."""

    def __init__(self, field: str, expected: int, found: int) -> None:
        self.field = field
        self.expected = expected
        self.found = found
        super().__init__(
            f"Data descriptor conflicts with local file header on '{field}': "
            f"header has {expected:#x}, descriptor has {found:#x}"
        )


class FileNotFoundInArchiveError(ZipStructError):
    """Requested file not found in archive."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"File not found in archive: '{filename}'")


class UnsafePathError(ZipStructError):
    """Archive member name escapes the archive root."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Unsafe archive member name: '{path}'")
