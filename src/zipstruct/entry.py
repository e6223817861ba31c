"""Archive entries: a local file header, its payload and an optional data descriptor."""

from __future__ import annotations

import logging
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO, Callable

from .exceptions import (
    ChecksumMismatchError,
    CompressionError,
    FieldRangeError,
    TruncatedRecordError,
    UnsupportedCompressionError,
)
from .structures import (
    MAX_UINT32,
    Compression,
    DataDescriptor,
    GeneralPurposeFlag,
    LocalFileHeader,
)
from .tracing import traced_read, traced_write
from .utils import dos_datetime, sanitize_arcname

logger = logging.getLogger(__name__)


def _inflate(data: bytes) -> bytes:
    return zlib.decompress(data, -zlib.MAX_WBITS)


# Inverse transforms keyed by compression method. Callers may register more.
DECOMPRESSORS: dict[int, Callable[[bytes], bytes]] = {
    Compression.STORED: bytes,
    Compression.DEFLATED: _inflate,
}


@dataclass
class Entry:
    """
    One archive member as it appears in the byte stream.

    The serialized form is exactly ``header`` + ``data`` + ``data_descriptor``
    (when present). ``data`` is still in the header's compression method.
    """

    header: LocalFileHeader
    data: bytes = field(default=b"", repr=False)
    data_descriptor: DataDescriptor | None = None

    @property
    def filename(self) -> str:
        return self.header.filename

    @property
    def crc32(self) -> int:
        """Declared CRC-32: the header's, or the descriptor's when the header defers it."""
        if self.data_descriptor is not None and self.header.crc32 == 0:
            return self.data_descriptor.crc32
        return self.header.crc32

    @property
    def total_size(self) -> int:
        """Header, payload and descriptor bytes."""
        size = self.header.total_size + len(self.data)
        if self.data_descriptor is not None:
            size += self.data_descriptor.total_size
        return size

    @classmethod
    def read(cls, stream: BinaryIO, end: int | None = None) -> Entry:
        """
        Read an entry at the stream's current position.

        When the header defers its sizes to a data descriptor, the descriptor
        ending at *end* (the end of the stream by default) is resolved first
        to learn the payload length, then read again after the payload.

        Args:
            stream: Seekable binary stream positioned at a local file header.
            end: Offset the entry's data descriptor ends at, when known.
        """

        def _read(stream: BinaryIO) -> Entry:
            header = LocalFileHeader.read(stream)

            if not header.has_data_descriptor:
                data = _read_payload(stream, header.compressed_size)
                return cls(header=header, data=data)

            resolved = DataDescriptor.read_from_end(stream, end)
            data = _read_payload(stream, resolved.compressed_size)
            descriptor = DataDescriptor.read(stream, signed=resolved.has_signature)
            return cls(header=header, data=data, data_descriptor=descriptor)

        return traced_read(stream, "entry", _read)

    def write(self, stream: BinaryIO) -> None:
        def _write(stream: BinaryIO) -> None:
            self.header.write(stream)
            stream.write(self.data)
            if self.data_descriptor is not None:
                self.data_descriptor.write(stream)

        traced_write(stream, "entry", self.total_size, _write)

    def to_bytes(self) -> bytes:
        descriptor = self.data_descriptor.to_bytes() if self.data_descriptor else b""
        return self.header.to_bytes() + self.data + descriptor

    def decompress(self) -> bytes:
        """
        Undo the entry's compression and verify the result.

        Returns:
            The uncompressed content.

        Raises:
            UnsupportedCompressionError: If no decompressor handles the method.
            CompressionError: If the payload cannot be decompressed.
            ChecksumMismatchError: If the content does not hash to the declared CRC-32.
        """
        method = self.header.compression
        try:
            decompressor = DECOMPRESSORS[method]
        except KeyError:
            raise UnsupportedCompressionError(method) from None

        try:
            content = decompressor(self.data)
        except zlib.error as e:
            raise CompressionError(f"Cannot decompress '{self.filename}': {e}") from e

        found = zlib.crc32(content) & MAX_UINT32
        if found != self.crc32:
            raise ChecksumMismatchError(self.crc32, found, self.filename)
        return content

    @classmethod
    def create(
        cls,
        arcname: str,
        content: bytes | str,
        compression: int = Compression.DEFLATED,
        compresslevel: int = 6,
        use_data_descriptor: bool = False,
        signed_descriptor: bool = True,
        timestamp: float | None = None,
        extra: bytes = b"",
    ) -> Entry:
        """
        Build an entry from uncompressed content.

        Args:
            arcname: Name in archive.
            content: File contents (bytes or str).
            compression: Compression method (STORED or DEFLATED).
            compresslevel: DEFLATE compression level 1-9 (default 6).
            use_data_descriptor: Defer CRC-32 and sizes to a trailing data
                descriptor, leaving zero placeholders in the header.
            signed_descriptor: Write the optional descriptor signature.
            timestamp: Modification time. If None, uses current time.
            extra: Extra field bytes.
        """
        if isinstance(content, str):
            content = content.encode("utf-8")

        if compression == Compression.DEFLATED:
            compressor = zlib.compressobj(compresslevel, zlib.DEFLATED, -zlib.MAX_WBITS)
            data = compressor.compress(content) + compressor.flush()
        elif compression == Compression.STORED:
            data = content
        else:
            raise UnsupportedCompressionError(compression)

        if len(content) > MAX_UINT32:
            raise FieldRangeError("entry", "uncompressed_size", len(content), MAX_UINT32)
        if len(data) > MAX_UINT32:
            raise FieldRangeError("entry", "compressed_size", len(data), MAX_UINT32)

        arcname = sanitize_arcname(arcname)
        mod_time, mod_date = dos_datetime(timestamp)
        crc = zlib.crc32(content) & MAX_UINT32

        flags = 0
        if not arcname.isascii():
            flags |= GeneralPurposeFlag.UTF8

        header = LocalFileHeader(
            version_needed=20,
            flags=flags,
            compression=compression,
            mod_time=mod_time,
            mod_date=mod_date,
            crc32=crc,
            compressed_size=len(data),
            uncompressed_size=len(content),
            filename=arcname,
            extra=extra,
        )

        descriptor = None
        if use_data_descriptor:
            descriptor = DataDescriptor(
                crc32=crc,
                compressed_size=len(data),
                uncompressed_size=len(content),
                signature=DataDescriptor.SIGNATURE if signed_descriptor else None,
            )
            header.flags |= GeneralPurposeFlag.DATA_DESCRIPTOR
            header.crc32 = 0
            header.compressed_size = 0
            header.uncompressed_size = 0

        logger.debug(
            "created entry '%s' (method=%d, %d -> %d bytes)",
            arcname,
            compression,
            len(content),
            len(data),
        )
        return cls(header=header, data=data, data_descriptor=descriptor)


def _read_payload(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) < size:
        raise TruncatedRecordError("entry payload", size, len(data))
    return data
