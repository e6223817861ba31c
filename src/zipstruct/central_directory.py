"""Central directory: one header per entry plus the end of central directory record."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator

from .entry import Entry
from .exceptions import FieldRangeError, FileNotFoundInArchiveError
from .structures import (
    MAX_UINT16,
    MAX_UINT32,
    CentralDirectoryHeader,
    EndOfCentralDirectory,
    promote_local_header,
)
from .tracing import traced_read, traced_write

logger = logging.getLogger(__name__)


@dataclass
class CentralDirectory:
    """
    Index of an archive.

    Built either incrementally, one :meth:`add` per entry in the order the
    entries are written, or in bulk with :meth:`read` / :meth:`read_from_end`.

    After every :meth:`add` the summary record satisfies:
        - ``entries_on_disk == total_entries == len(files)``
        - ``cd_size`` is the sum of every directory header's ``total_size``
        - ``cd_offset`` is the sum of every added entry's ``total_size``

    Example:
        >>> directory = CentralDirectory()
        >>> for entry in entries:
        ...     entry.write(stream)
        ...     directory.add(entry)
        >>> directory.write(stream)
    """

    files: list[CentralDirectoryHeader] = field(default_factory=list)
    end: EndOfCentralDirectory = field(default_factory=EndOfCentralDirectory)

    @property
    def total_size(self) -> int:
        return sum(f.total_size for f in self.files) + self.end.total_size

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self) -> Iterator[CentralDirectoryHeader]:
        return iter(self.files)

    def namelist(self) -> list[str]:
        return [f.filename for f in self.files]

    def get(self, name: str) -> CentralDirectoryHeader:
        """Directory header for *name*."""
        for header in self.files:
            if header.filename == name:
                return header
        raise FileNotFoundInArchiveError(name)

    def add(self, entry: Entry) -> CentralDirectoryHeader:
        """
        Index an entry written directly after the previously added ones.

        A header that defers its sizes is reconciled (on a copy) against the
        entry's data descriptor before being promoted to a directory header.

        Returns:
            The appended directory header.

        Raises:
            DataDescriptorConflictError: If header and descriptor disagree.
            FieldRangeError: If the archive outgrows the ZIP32 fields. The
                directory is left unchanged.
        """
        header = dataclasses.replace(entry.header)
        if header.has_data_descriptor and entry.data_descriptor is not None:
            header.update(entry.data_descriptor)

        file = promote_local_header(header)
        file.local_header_offset = self.end.cd_offset

        count = len(self.files) + 1
        cd_size = self.end.cd_size + file.total_size
        cd_offset = self.end.cd_offset + entry.total_size
        if count > MAX_UINT16:
            raise FieldRangeError(self.end.RECORD, "total_entries", count, MAX_UINT16)
        if cd_size > MAX_UINT32:
            raise FieldRangeError(self.end.RECORD, "cd_size", cd_size, MAX_UINT32)
        if cd_offset > MAX_UINT32:
            raise FieldRangeError(self.end.RECORD, "cd_offset", cd_offset, MAX_UINT32)

        self.files.append(file)
        self.end.entries_on_disk = count
        self.end.total_entries = count
        self.end.cd_size = cd_size
        self.end.cd_offset = cd_offset

        logger.debug(
            "indexed '%s' at %#010x (%d entries, directory at %#010x)",
            file.filename,
            file.local_header_offset,
            count,
            cd_offset,
        )
        return file

    @classmethod
    def read(cls, stream: BinaryIO) -> CentralDirectory:
        """
        Read an end of central directory record at the current position, then
        the directory headers it declares.

        The stream is left after the end of central directory record.
        """
        end = EndOfCentralDirectory.read(stream)
        end_position = stream.tell()

        def _read(stream: BinaryIO) -> CentralDirectory:
            files = [CentralDirectoryHeader.read(stream) for _ in range(end.total_entries)]
            stream.seek(end_position)
            return cls(files=files, end=end)

        stream.seek(end.cd_offset)
        return traced_read(stream, "central directory", _read)

    @classmethod
    def read_from_end(cls, stream: BinaryIO) -> CentralDirectory:
        """Read the central directory of a complete archive, keeping the stream position."""
        position = stream.tell()
        try:
            stream.seek(EndOfCentralDirectory.locate(stream))
            return cls.read(stream)
        finally:
            stream.seek(position)

    def write(self, stream: BinaryIO) -> None:
        """Write every directory header, then the end of central directory record."""

        def _write(stream: BinaryIO) -> None:
            for file in self.files:
                file.write(stream)
            self.end.write(stream)

        traced_write(stream, "central directory", self.total_size, _write)

    def _entry_ends(self) -> dict[int, int]:
        """Map each local header offset to the offset its entry ends at."""
        offsets = sorted({f.local_header_offset for f in self.files})
        return dict(zip(offsets, offsets[1:] + [self.end.cd_offset]))

    def read_entries(self, stream: BinaryIO) -> Iterator[Entry]:
        """
        Read every indexed entry from *stream*, in directory order.

        Each entry's data descriptor, if any, is resolved against the nearest
        following local header, or the directory start for the last entry.
        Directory order need not match the order entries appear in the stream.
        """
        ends = self._entry_ends()
        for file in self.files:
            stream.seek(file.local_header_offset)
            yield Entry.read(stream, end=ends[file.local_header_offset])

    def read_entry(self, stream: BinaryIO, name: str) -> Entry:
        """Read the entry named *name* from *stream*."""
        file = self.get(name)
        stream.seek(file.local_header_offset)
        return Entry.read(stream, end=self._entry_ends()[file.local_header_offset])
