"""ZIP file format record codecs.

Based on PKWARE's APPNOTE.TXT specification.
https://pkware.cachefly.net/webdocs/casestudies/APPNOTE.TXT

Every record reads from and writes to a binary stream, reports its exact
serialized length through ``total_size`` and carries its own signature so
that a corrupted record is refused on the write path as well as on read.
"""

from __future__ import annotations

import io
import logging
import os
import struct
import zlib
from dataclasses import dataclass
from enum import IntEnum
from typing import BinaryIO, ClassVar

from .exceptions import (
    CentralDirectoryHeaderSignatureError,
    DataDescriptorConflictError,
    DataDescriptorSignatureError,
    EndOfCentralDirectorySignatureError,
    FieldRangeError,
    FileNameEncodingError,
    LocalFileHeaderSignatureError,
    SignatureError,
    TruncatedRecordError,
)
from .tracing import traced_read, traced_write

logger = logging.getLogger(__name__)


class Compression(IntEnum):
    """Compression methods supported by ZIP."""

    STORED = 0  # No compression
    DEFLATED = 8  # DEFLATE compression


class GeneralPurposeFlag(IntEnum):
    """General purpose bit flags."""

    ENCRYPTED = 1 << 0
    # Bits 1-2: compression options (for DEFLATE: 0=normal, 1=max, 2=fast, 3=super fast)
    DATA_DESCRIPTOR = 1 << 3  # CRC and sizes in data descriptor after file data
    ENHANCED_DEFLATE = 1 << 4
    COMPRESSED_PATCHED = 1 << 5
    STRONG_ENCRYPTION = 1 << 6
    UTF8 = 1 << 11  # Filename and comment are UTF-8 encoded
    ENHANCED_COMPRESSION = 1 << 12
    MASKED_HEADERS = 1 << 13


# Signatures
LOCAL_FILE_HEADER_SIG = 0x04034B50
CENTRAL_DIR_HEADER_SIG = 0x02014B50
END_OF_CENTRAL_DIR_SIG = 0x06054B50
DATA_DESCRIPTOR_SIG = 0x08074B50

# ZIP32 limits
MAX_UINT16 = 0xFFFF
MAX_UINT32 = 0xFFFFFFFF

_SIGNATURE_SIZE = 4

# Fields a data descriptor can supply to a local file header, in wire order
DESCRIPTOR_FIELDS = ("crc32", "compressed_size", "uncompressed_size")


def _pack(fmt: str, record: str, fields: list[tuple[str, int]]) -> bytes:
    """Pack named values, refusing any that do not fit their field width."""
    for code, (name, value) in zip(fmt[1:], fields):
        limit = MAX_UINT16 if code == "H" else MAX_UINT32
        if not 0 <= value <= limit:
            raise FieldRangeError(record, name, value, limit)
    return struct.pack(fmt, *(value for _, value in fields))


def _read_exact(stream: BinaryIO, size: int, record: str) -> bytes:
    data = stream.read(size)
    if len(data) < size:
        raise TruncatedRecordError(record, size, len(data))
    return data


def _read_prefix(
    stream: BinaryIO,
    record: str,
    signature: int,
    fmt: str,
    fixed_size: int,
    error: type[SignatureError],
) -> tuple[int, ...]:
    """Read and verify the signature, then unpack the rest of the fixed prefix."""
    (found,) = struct.unpack("<I", _read_exact(stream, _SIGNATURE_SIZE, record))
    if found != signature:
        logger.error("read %s signature=%#010x != %#010x", record, found, signature)
        raise error(found)
    rest = _read_exact(stream, fixed_size - _SIGNATURE_SIZE, record)
    return struct.unpack("<" + fmt[2:], rest)


def _decode_filename(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FileNameEncodingError(raw) from e


@dataclass
class LocalFileHeader:
    """Local file header structure (precedes each file's data)."""

    SIGNATURE: ClassVar[int] = LOCAL_FILE_HEADER_SIG
    STRUCT_FORMAT: ClassVar[str] = "<IHHHHHIIIHH"
    FIXED_SIZE: ClassVar[int] = 30  # Size without filename and extra
    RECORD: ClassVar[str] = "local file header"

    version_needed: int = 20  # 2.0 for DEFLATE
    flags: int = 0
    compression: int = Compression.DEFLATED
    mod_time: int = 0
    mod_date: int = 0
    crc32: int = 0
    compressed_size: int = 0
    uncompressed_size: int = 0
    filename: str = ""
    extra: bytes = b""
    signature: int = LOCAL_FILE_HEADER_SIG

    def has_valid_signature(self) -> bool:
        return self.signature == self.SIGNATURE

    @property
    def has_data_descriptor(self) -> bool:
        """True when CRC-32 and sizes are deferred to a trailing data descriptor."""
        return bool(self.flags & GeneralPurposeFlag.DATA_DESCRIPTOR)

    def validate_checksum(self, uncompressed: bytes) -> bool:
        return zlib.crc32(uncompressed) & MAX_UINT32 == self.crc32

    def update(self, descriptor: DataDescriptor) -> None:
        """
        Reconcile deferred fields against a resolved data descriptor.

        Zero placeholders adopt the descriptor's value; non-zero values must
        already agree with it. Nothing is changed unless all three fields
        reconcile.

        Raises:
            DataDescriptorConflictError: If a non-zero field disagrees.
        """
        adopted: dict[str, int] = {}
        for name in DESCRIPTOR_FIELDS:
            current = getattr(self, name)
            value = getattr(descriptor, name)
            if current == 0:
                adopted[name] = value
            elif current != value:
                raise DataDescriptorConflictError(name, current, value)

        for name, value in adopted.items():
            logger.debug(
                "%s of '%s' updated from data descriptor: %#x", name, self.filename, value
            )
            setattr(self, name, value)

    def to_bytes(self) -> bytes:
        """Serialize to bytes."""
        if not self.has_valid_signature():
            raise LocalFileHeaderSignatureError(self.signature)

        filename = self.filename.encode("utf-8")
        header = _pack(
            self.STRUCT_FORMAT,
            self.RECORD,
            [
                ("signature", self.signature),
                ("version_needed", self.version_needed),
                ("flags", self.flags),
                ("compression", self.compression),
                ("mod_time", self.mod_time),
                ("mod_date", self.mod_date),
                ("crc32", self.crc32),
                ("compressed_size", self.compressed_size),
                ("uncompressed_size", self.uncompressed_size),
                ("filename_length", len(filename)),
                ("extra_length", len(self.extra)),
            ],
        )
        return header + filename + self.extra

    def write(self, stream: BinaryIO) -> None:
        data = self.to_bytes()
        traced_write(stream, self.RECORD, self.total_size, lambda s: s.write(data))

    @classmethod
    def read(cls, stream: BinaryIO) -> LocalFileHeader:
        """Read a header at the stream's current position."""
        return traced_read(stream, cls.RECORD, cls._read)

    @classmethod
    def _read(cls, stream: BinaryIO) -> LocalFileHeader:
        (
            version_needed,
            flags,
            compression,
            mod_time,
            mod_date,
            crc32,
            compressed_size,
            uncompressed_size,
            filename_len,
            extra_len,
        ) = _read_prefix(
            stream,
            cls.RECORD,
            cls.SIGNATURE,
            cls.STRUCT_FORMAT,
            cls.FIXED_SIZE,
            LocalFileHeaderSignatureError,
        )

        filename = _decode_filename(_read_exact(stream, filename_len, cls.RECORD))
        extra = _read_exact(stream, extra_len, cls.RECORD)

        return cls(
            version_needed=version_needed,
            flags=flags,
            compression=compression,
            mod_time=mod_time,
            mod_date=mod_date,
            crc32=crc32,
            compressed_size=compressed_size,
            uncompressed_size=uncompressed_size,
            filename=filename,
            extra=extra,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> LocalFileHeader:
        """Deserialize from bytes."""
        return cls.read(io.BytesIO(data))

    @property
    def total_size(self) -> int:
        """Total size of header including variable fields."""
        return self.FIXED_SIZE + len(self.filename.encode("utf-8")) + len(self.extra)


@dataclass
class DataDescriptor:
    """
    Optional data descriptor (follows file data when sizes unknown upfront).

    The leading signature is optional on the wire, so a descriptor is either
    16 bytes (signature present) or 12 bytes (signature absent) and nothing
    in the format says which. ``signature`` is None for the 12-byte layout.
    """

    SIGNATURE: ClassVar[int] = DATA_DESCRIPTOR_SIG
    STRUCT_FORMAT_WITH_SIG: ClassVar[str] = "<IIII"
    STRUCT_FORMAT_NO_SIG: ClassVar[str] = "<III"
    SIZE_WITH_SIG: ClassVar[int] = 16
    SIZE_NO_SIG: ClassVar[int] = 12
    RECORD: ClassVar[str] = "data descriptor"

    crc32: int = 0
    compressed_size: int = 0
    uncompressed_size: int = 0
    signature: int | None = DATA_DESCRIPTOR_SIG

    @property
    def has_signature(self) -> bool:
        return self.signature is not None

    def has_valid_signature(self) -> bool:
        return self.signature is None or self.signature == self.SIGNATURE

    def to_bytes(self) -> bytes:
        """Serialize to bytes, with or without the signature."""
        if not self.has_valid_signature():
            raise DataDescriptorSignatureError(self.signature)

        fields = [
            ("crc32", self.crc32),
            ("compressed_size", self.compressed_size),
            ("uncompressed_size", self.uncompressed_size),
        ]
        if self.signature is not None:
            return _pack(
                self.STRUCT_FORMAT_WITH_SIG,
                self.RECORD,
                [("signature", self.signature), *fields],
            )
        return _pack(self.STRUCT_FORMAT_NO_SIG, self.RECORD, fields)

    def write(self, stream: BinaryIO) -> None:
        data = self.to_bytes()
        traced_write(stream, self.RECORD, self.total_size, lambda s: s.write(data))

    @classmethod
    def resolve(cls, window: bytes) -> DataDescriptor:
        """
        Interpret the bytes immediately preceding a descriptor's end.

        *window* holds up to the last 16 bytes before the boundary. The
        signed layout is tried first: if the four bytes at ``boundary - 16``
        are the signature, the descriptor is 16 bytes long. Otherwise the
        last 12 bytes are taken as an unsigned descriptor.

        Raises:
            TruncatedRecordError: If fewer than 12 bytes are available.
        """
        if len(window) < cls.SIZE_NO_SIG:
            raise TruncatedRecordError(cls.RECORD, cls.SIZE_NO_SIG, len(window))

        crc32, compressed_size, uncompressed_size = struct.unpack(
            cls.STRUCT_FORMAT_NO_SIG, window[-cls.SIZE_NO_SIG :]
        )

        signature = None
        if len(window) >= cls.SIZE_WITH_SIG:
            (candidate,) = struct.unpack(
                "<I", window[-cls.SIZE_WITH_SIG : -cls.SIZE_NO_SIG]
            )
            if candidate == cls.SIGNATURE:
                signature = candidate

        return cls(
            crc32=crc32,
            compressed_size=compressed_size,
            uncompressed_size=uncompressed_size,
            signature=signature,
        )

    @classmethod
    def read_from_end(cls, stream: BinaryIO, end: int | None = None) -> DataDescriptor:
        """
        Resolve the descriptor that ends at *end* without moving the stream.

        Args:
            stream: Seekable binary stream.
            end: Absolute offset the descriptor ends at. Defaults to the end
                of the stream.

        Returns:
            The resolved descriptor. The stream position is restored before
            returning, whichever layout was found.
        """
        position = stream.tell()
        try:
            if end is None:
                end = stream.seek(0, os.SEEK_END)
            start = max(0, end - cls.SIZE_WITH_SIG)
            stream.seek(start)
            window = stream.read(end - start)
        finally:
            stream.seek(position)

        if len(window) < end - start:
            raise TruncatedRecordError(cls.RECORD, end - start, len(window))
        return cls.resolve(window)

    @classmethod
    def read(cls, stream: BinaryIO, signed: bool | None = None) -> DataDescriptor:
        """
        Read a descriptor at the stream's current position.

        Args:
            stream: Binary stream.
            signed: True or False when the layout is already known. None
                peeks at the first four bytes and rewinds if they are not
                the signature.
        """

        def _read(stream: BinaryIO) -> DataDescriptor:
            signature = None
            if signed is None:
                (candidate,) = struct.unpack(
                    "<I", _read_exact(stream, _SIGNATURE_SIZE, cls.RECORD)
                )
                if candidate == cls.SIGNATURE:
                    signature = candidate
                else:
                    stream.seek(-_SIGNATURE_SIZE, os.SEEK_CUR)
            elif signed:
                (signature,) = struct.unpack(
                    "<I", _read_exact(stream, _SIGNATURE_SIZE, cls.RECORD)
                )
                if signature != cls.SIGNATURE:
                    logger.error(
                        "read %s signature=%#010x != %#010x",
                        cls.RECORD,
                        signature,
                        cls.SIGNATURE,
                    )
                    raise DataDescriptorSignatureError(signature)

            crc32, compressed_size, uncompressed_size = struct.unpack(
                cls.STRUCT_FORMAT_NO_SIG, _read_exact(stream, cls.SIZE_NO_SIG, cls.RECORD)
            )
            return cls(
                crc32=crc32,
                compressed_size=compressed_size,
                uncompressed_size=uncompressed_size,
                signature=signature,
            )

        return traced_read(stream, cls.RECORD, _read)

    @classmethod
    def from_bytes(cls, data: bytes) -> DataDescriptor:
        """Deserialize from bytes, detecting the layout from the leading signature."""
        return cls.read(io.BytesIO(data))

    @property
    def total_size(self) -> int:
        return self.SIZE_WITH_SIG if self.signature is not None else self.SIZE_NO_SIG


@dataclass
class CentralDirectoryHeader:
    """Central directory file header."""

    SIGNATURE: ClassVar[int] = CENTRAL_DIR_HEADER_SIG
    STRUCT_FORMAT: ClassVar[str] = "<IHHHHHHIIIHHHHHII"
    FIXED_SIZE: ClassVar[int] = 46
    RECORD: ClassVar[str] = "central directory header"

    version_made_by: int = 20  # 2.0, MS-DOS compatible
    version_needed: int = 20
    flags: int = 0
    compression: int = Compression.DEFLATED
    mod_time: int = 0
    mod_date: int = 0
    crc32: int = 0
    compressed_size: int = 0
    uncompressed_size: int = 0
    disk_number_start: int = 0  # Disk where file starts
    internal_attr: int = 0
    external_attr: int = 0
    local_header_offset: int = 0  # Offset of local header from start of archive
    filename: str = ""
    extra: bytes = b""
    comment: bytes = b""
    signature: int = CENTRAL_DIR_HEADER_SIG

    def has_valid_signature(self) -> bool:
        return self.signature == self.SIGNATURE

    def validate_checksum(self, uncompressed: bytes) -> bool:
        return zlib.crc32(uncompressed) & MAX_UINT32 == self.crc32

    def to_bytes(self) -> bytes:
        """Serialize to bytes."""
        if not self.has_valid_signature():
            raise CentralDirectoryHeaderSignatureError(self.signature)

        filename = self.filename.encode("utf-8")
        header = _pack(
            self.STRUCT_FORMAT,
            self.RECORD,
            [
                ("signature", self.signature),
                ("version_made_by", self.version_made_by),
                ("version_needed", self.version_needed),
                ("flags", self.flags),
                ("compression", self.compression),
                ("mod_time", self.mod_time),
                ("mod_date", self.mod_date),
                ("crc32", self.crc32),
                ("compressed_size", self.compressed_size),
                ("uncompressed_size", self.uncompressed_size),
                ("filename_length", len(filename)),
                ("extra_length", len(self.extra)),
                ("comment_length", len(self.comment)),
                ("disk_number_start", self.disk_number_start),
                ("internal_attr", self.internal_attr),
                ("external_attr", self.external_attr),
                ("local_header_offset", self.local_header_offset),
            ],
        )
        return header + filename + self.extra + self.comment

    def write(self, stream: BinaryIO) -> None:
        data = self.to_bytes()
        traced_write(stream, self.RECORD, self.total_size, lambda s: s.write(data))

    @classmethod
    def read(cls, stream: BinaryIO) -> CentralDirectoryHeader:
        return traced_read(stream, cls.RECORD, cls._read)

    @classmethod
    def _read(cls, stream: BinaryIO) -> CentralDirectoryHeader:
        (
            version_made_by,
            version_needed,
            flags,
            compression,
            mod_time,
            mod_date,
            crc32,
            compressed_size,
            uncompressed_size,
            filename_len,
            extra_len,
            comment_len,
            disk_number_start,
            internal_attr,
            external_attr,
            local_header_offset,
        ) = _read_prefix(
            stream,
            cls.RECORD,
            cls.SIGNATURE,
            cls.STRUCT_FORMAT,
            cls.FIXED_SIZE,
            CentralDirectoryHeaderSignatureError,
        )

        filename = _decode_filename(_read_exact(stream, filename_len, cls.RECORD))
        extra = _read_exact(stream, extra_len, cls.RECORD)
        comment = _read_exact(stream, comment_len, cls.RECORD)

        return cls(
            version_made_by=version_made_by,
            version_needed=version_needed,
            flags=flags,
            compression=compression,
            mod_time=mod_time,
            mod_date=mod_date,
            crc32=crc32,
            compressed_size=compressed_size,
            uncompressed_size=uncompressed_size,
            disk_number_start=disk_number_start,
            internal_attr=internal_attr,
            external_attr=external_attr,
            local_header_offset=local_header_offset,
            filename=filename,
            extra=extra,
            comment=comment,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> CentralDirectoryHeader:
        """Deserialize from bytes."""
        return cls.read(io.BytesIO(data))

    @property
    def total_size(self) -> int:
        """Total size of header including variable fields."""
        return (
            self.FIXED_SIZE
            + len(self.filename.encode("utf-8"))
            + len(self.extra)
            + len(self.comment)
        )


def promote_local_header(header: LocalFileHeader) -> CentralDirectoryHeader:
    """
    Build a central directory header from a local file header.

    Promoted: version (also used as version made by), flags, compression,
    modification time and date, CRC-32, both sizes, file name and extra field.
    Defaulted, since the local header has no such fields: comment (empty),
    disk number, internal and external attributes and the local header
    offset (all zero).
    """
    return CentralDirectoryHeader(
        version_made_by=header.version_needed,
        version_needed=header.version_needed,
        flags=header.flags,
        compression=header.compression,
        mod_time=header.mod_time,
        mod_date=header.mod_date,
        crc32=header.crc32,
        compressed_size=header.compressed_size,
        uncompressed_size=header.uncompressed_size,
        disk_number_start=0,
        internal_attr=0,
        external_attr=0,
        local_header_offset=0,
        filename=header.filename,
        extra=header.extra,
        comment=b"",
    )


@dataclass
class EndOfCentralDirectory:
    """End of central directory record."""

    SIGNATURE: ClassVar[int] = END_OF_CENTRAL_DIR_SIG
    STRUCT_FORMAT: ClassVar[str] = "<IHHHHIIH"
    FIXED_SIZE: ClassVar[int] = 22
    RECORD: ClassVar[str] = "end of central directory"

    disk_number: int = 0  # Number of this disk
    disk_with_cd_start: int = 0  # Disk where central directory starts
    entries_on_disk: int = 0  # Entries in central directory on this disk
    total_entries: int = 0  # Total entries in central directory
    cd_size: int = 0  # Size of central directory
    cd_offset: int = 0  # Offset of central directory from start of archive
    comment: bytes = b""
    signature: int = END_OF_CENTRAL_DIR_SIG

    def has_valid_signature(self) -> bool:
        return self.signature == self.SIGNATURE

    def to_bytes(self) -> bytes:
        """Serialize to bytes."""
        if not self.has_valid_signature():
            raise EndOfCentralDirectorySignatureError(self.signature)

        return _pack(
            self.STRUCT_FORMAT,
            self.RECORD,
            [
                ("signature", self.signature),
                ("disk_number", self.disk_number),
                ("disk_with_cd_start", self.disk_with_cd_start),
                ("entries_on_disk", self.entries_on_disk),
                ("total_entries", self.total_entries),
                ("cd_size", self.cd_size),
                ("cd_offset", self.cd_offset),
                ("comment_length", len(self.comment)),
            ],
        ) + self.comment

    def write(self, stream: BinaryIO) -> None:
        data = self.to_bytes()
        traced_write(stream, self.RECORD, self.total_size, lambda s: s.write(data))

    @classmethod
    def locate(cls, stream: BinaryIO) -> int:
        """
        Find the offset of the end of central directory record.

        The record sits ``FIXED_SIZE`` bytes before the end of the stream
        when the archive comment is empty. Otherwise the trailing window that
        could hold a comment is scanned backwards for a signature whose
        comment length reaches exactly to the end of the stream. The stream
        position is restored before returning.

        Raises:
            EndOfCentralDirectorySignatureError: If no record is found.
        """
        signature = struct.pack("<I", cls.SIGNATURE)
        position = stream.tell()
        try:
            end = stream.seek(0, os.SEEK_END)
            if end < cls.FIXED_SIZE:
                raise TruncatedRecordError(cls.RECORD, cls.FIXED_SIZE, end)

            stream.seek(end - cls.FIXED_SIZE)
            probe = stream.read(_SIGNATURE_SIZE)
            if probe == signature:
                return end - cls.FIXED_SIZE

            window_start = max(0, end - cls.FIXED_SIZE - MAX_UINT16)
            stream.seek(window_start)
            window = stream.read(end - window_start)
        finally:
            stream.seek(position)

        index = window.rfind(signature)
        while index != -1:
            comment_start = index + cls.FIXED_SIZE
            if comment_start <= len(window):
                (comment_len,) = struct.unpack("<H", window[comment_start - 2 : comment_start])
                if comment_start + comment_len == len(window):
                    return window_start + index
            index = window.rfind(signature, 0, index)

        (found,) = struct.unpack("<I", probe)
        logger.error("no %s signature found in the last %d bytes", cls.RECORD, len(window))
        raise EndOfCentralDirectorySignatureError(found)

    @classmethod
    def read(cls, stream: BinaryIO) -> EndOfCentralDirectory:
        return traced_read(stream, cls.RECORD, cls._read)

    @classmethod
    def _read(cls, stream: BinaryIO) -> EndOfCentralDirectory:
        (
            disk_number,
            disk_with_cd_start,
            entries_on_disk,
            total_entries,
            cd_size,
            cd_offset,
            comment_len,
        ) = _read_prefix(
            stream,
            cls.RECORD,
            cls.SIGNATURE,
            cls.STRUCT_FORMAT,
            cls.FIXED_SIZE,
            EndOfCentralDirectorySignatureError,
        )

        comment = _read_exact(stream, comment_len, cls.RECORD)

        return cls(
            disk_number=disk_number,
            disk_with_cd_start=disk_with_cd_start,
            entries_on_disk=entries_on_disk,
            total_entries=total_entries,
            cd_size=cd_size,
            cd_offset=cd_offset,
            comment=comment,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> EndOfCentralDirectory:
        """Deserialize from bytes."""
        return cls.read(io.BytesIO(data))

    @property
    def total_size(self) -> int:
        """Total size of record including comment."""
        return self.FIXED_SIZE + len(self.comment)
