"""Optional read/write diagnostics.

Wrap a seekable stream in :class:`TracingStream` and hand the wrapper to any
codec. Every record read or written through it produces a :class:`TraceEvent`
comparing the bytes actually consumed or produced with the record's own
``total_size``. The wrapper only observes: values returned by the codecs and
bytes written to the underlying stream are identical with or without it.

Example:
    >>> traced = TracingStream(open("archive.zip", "rb"), on_trace=events.append)
    >>> directory = CentralDirectory.read_from_end(traced)
"""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Callable, Protocol, TypeVar, runtime_checkable

from .utils import format_size


@runtime_checkable
class SizedRecord(Protocol):
    """Anything that knows its exact serialized length."""

    @property
    def total_size(self) -> int: ...


R = TypeVar("R", bound=SizedRecord)
T = TypeVar("T")


@dataclass(frozen=True)
class TraceEvent:
    """One observed record read or write."""

    operation: str  # "read" or "write"
    record: str
    start: int
    end: int
    expected_size: int

    @property
    def actual_size(self) -> int:
        return self.end - self.start

    @property
    def matches(self) -> bool:
        return self.actual_size == self.expected_size


class TracingStream(io.RawIOBase):
    """
    Transparent proxy over a seekable binary stream that reports byte accounting.

    Args:
        raw: Underlying seekable binary stream.
        on_trace: Optional callback receiving every :class:`TraceEvent`.
        logger: Logger for trace output. Defaults to this module's logger.
    """

    def __init__(
        self,
        raw: BinaryIO,
        on_trace: Callable[[TraceEvent], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__()
        self.raw = raw
        self.on_trace = on_trace
        self._logger = logger or logging.getLogger(__name__)

    # Stream protocol

    def readable(self) -> bool:
        return self.raw.readable()

    def writable(self) -> bool:
        return self.raw.writable()

    def seekable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        return self.raw.read(size)

    def readinto(self, buffer) -> int:
        data = self.raw.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)

    def write(self, data) -> int:
        return self.raw.write(data)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self.raw.seek(offset, whence)

    def tell(self) -> int:
        return self.raw.tell()

    def flush(self) -> None:
        self.raw.flush()

    def close(self) -> None:
        # The wrapped stream belongs to the caller.
        super().close()

    # Observation

    def observe_read(self, record: str, function: Callable[[BinaryIO], R]) -> R:
        start = self.tell()
        self._logger.debug("read %s -> address=%#010x", record, start)
        value = function(self)
        self._report("read", record, start, self.tell(), value.total_size)
        return value

    def observe_write(
        self, record: str, expected_size: int, function: Callable[[BinaryIO], T]
    ) -> T:
        start = self.tell()
        self._logger.debug("write %s -> address=%#010x", record, start)
        value = function(self)
        self._report("write", record, start, self.tell(), expected_size)
        return value

    def _report(
        self, operation: str, record: str, start: int, end: int, expected_size: int
    ) -> None:
        event = TraceEvent(operation, record, start, end, expected_size)
        self._logger.debug(
            "%s %s <- address=%#010x size=%s expected=%s",
            operation,
            record,
            end,
            format_size(event.actual_size),
            format_size(expected_size),
        )
        if not event.matches:
            self._logger.warning(
                "%s %s expected to end at %#010x, not %#010x",
                operation,
                record,
                start + expected_size,
                end,
            )
        if self.on_trace:
            self.on_trace(event)


def traced_read(stream: BinaryIO, record: str, function: Callable[[BinaryIO], R]) -> R:
    """Run a record read, reporting it when *stream* is a :class:`TracingStream`."""
    if isinstance(stream, TracingStream):
        return stream.observe_read(record, function)
    return function(stream)


def traced_write(
    stream: BinaryIO, record: str, expected_size: int, function: Callable[[BinaryIO], T]
) -> T:
    """Run a record write, reporting it when *stream* is a :class:`TracingStream`."""
    if isinstance(stream, TracingStream):
        return stream.observe_write(record, expected_size, function)
    return function(stream)
