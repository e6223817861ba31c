"""
zipstruct - Byte-exact codecs for ZIP archive records.

Read and write the structural records of a ZIP file (local file header,
data descriptor, central directory header, end of central directory) and
build or reconstruct the central directory that indexes an archive.

Example:
    >>> import io, zipstruct
    >>>
    >>> stream = io.BytesIO()
    >>> directory = zipstruct.CentralDirectory()
    >>> for name, content in [("a.txt", b"hello"), ("b.txt", b"world")]:
    ...     entry = zipstruct.Entry.create(name, content)
    ...     entry.write(stream)
    ...     directory.add(entry)
    >>> directory.write(stream)
    >>>
    >>> zipstruct.read(stream, "a.txt")
    b'hello'

Pass a ``TracingStream`` instead of the raw stream to log, for every record,
the bytes actually consumed or produced against the record's declared size.
"""

from __future__ import annotations

import logging
from typing import BinaryIO

from .central_directory import CentralDirectory
from .entry import DECOMPRESSORS, Entry
from .exceptions import (
    CentralDirectoryHeaderSignatureError,
    ChecksumMismatchError,
    CompressionError,
    DataDescriptorConflictError,
    DataDescriptorSignatureError,
    EndOfCentralDirectorySignatureError,
    FieldRangeError,
    FileNameEncodingError,
    FileNotFoundInArchiveError,
    LocalFileHeaderSignatureError,
    SignatureError,
    TruncatedRecordError,
    UnsafePathError,
    UnsupportedCompressionError,
    ZipStructError,
)
from .structures import (
    CentralDirectoryHeader,
    Compression,
    DataDescriptor,
    EndOfCentralDirectory,
    GeneralPurposeFlag,
    LocalFileHeader,
    promote_local_header,
)
from .tracing import SizedRecord, TraceEvent, TracingStream

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    # Records
    "LocalFileHeader",
    "DataDescriptor",
    "CentralDirectoryHeader",
    "EndOfCentralDirectory",
    "promote_local_header",
    # Aggregates
    "Entry",
    "CentralDirectory",
    "DECOMPRESSORS",
    # Convenience functions
    "write",
    "read",
    # Diagnostics
    "SizedRecord",
    "TraceEvent",
    "TracingStream",
    # Constants
    "Compression",
    "GeneralPurposeFlag",
    "STORED",
    "DEFLATED",
    # Exceptions
    "ZipStructError",
    "SignatureError",
    "LocalFileHeaderSignatureError",
    "DataDescriptorSignatureError",
    "CentralDirectoryHeaderSignatureError",
    "EndOfCentralDirectorySignatureError",
    "TruncatedRecordError",
    "FieldRangeError",
    "FileNameEncodingError",
    "CompressionError",
    "UnsupportedCompressionError",
    "ChecksumMismatchError",
    "DataDescriptorConflictError",
    "FileNotFoundInArchiveError",
    "UnsafePathError",
]

# Convenience aliases
STORED = Compression.STORED
DEFLATED = Compression.DEFLATED


def write(stream: BinaryIO, entries: list[Entry]) -> CentralDirectory:
    """
    Write a complete archive: every entry, then the central directory.

    *stream* must be positioned at the start of the archive.

    Returns:
        The central directory that was written.
    """
    directory = CentralDirectory()
    for entry in entries:
        entry.write(stream)
        directory.add(entry)
    directory.write(stream)
    return directory


def read(stream: BinaryIO, name: str) -> bytes:
    """
    Read and decompress one member of a complete archive.

    Raises:
        FileNotFoundInArchiveError: If *name* is not in the archive.
        ChecksumMismatchError: If the content fails its CRC-32 check.
    """
    directory = CentralDirectory.read_from_end(stream)
    return directory.read_entry(stream, name).decompress()
