"""Tests for the read/write diagnostics wrapper."""

import io
import logging

import pytest

import zipstruct
from zipstruct import CentralDirectory, Entry, TraceEvent, TracingStream
from zipstruct.structures import Compression, DataDescriptor, LocalFileHeader
from zipstruct.tracing import SizedRecord, traced_read, traced_write

TIMESTAMP = 1_700_000_000


@pytest.fixture
def entries():
    return [
        Entry.create("a.txt", b"hello", compression=Compression.STORED, timestamp=TIMESTAMP),
        Entry.create("b.txt", b"b" * 500, use_data_descriptor=True, timestamp=TIMESTAMP),
    ]


class TestTracingStream:
    """Tests for TracingStream."""

    def test_written_bytes_identical(self, entries):
        plain = io.BytesIO()
        zipstruct.write(plain, entries)

        raw = io.BytesIO()
        events = []
        zipstruct.write(TracingStream(raw, on_trace=events.append), entries)

        assert raw.getvalue() == plain.getvalue()
        assert events

    def test_read_values_identical(self, entries):
        raw = io.BytesIO()
        zipstruct.write(raw, entries)

        plain = CentralDirectory.read_from_end(raw)
        traced = CentralDirectory.read_from_end(TracingStream(raw))

        assert traced == plain

    def test_write_events(self, entries):
        events = []
        stream = TracingStream(io.BytesIO(), on_trace=events.append)

        entries[1].write(stream)

        assert [e.record for e in events] == ["local file header", "data descriptor", "entry"]
        assert all(e.operation == "write" for e in events)
        assert all(e.matches for e in events)
        assert events[-1].start == 0
        assert events[-1].actual_size == entries[1].total_size

    def test_read_events(self, entries):
        raw = io.BytesIO()
        entries[1].write(raw)
        raw.seek(0)
        events = []

        Entry.read(TracingStream(raw, on_trace=events.append))

        assert [e.record for e in events] == ["local file header", "data descriptor", "entry"]
        assert all(e.operation == "read" for e in events)
        assert all(e.matches for e in events)

    def test_directory_read_event(self, entries):
        raw = io.BytesIO()
        directory = zipstruct.write(raw, entries)
        events = []

        CentralDirectory.read_from_end(TracingStream(raw, on_trace=events.append))

        assert [e.record for e in events] == [
            "end of central directory",
            "central directory header",
            "central directory header",
            "central directory",
        ]
        assert events[-1].start == directory.end.cd_offset
        assert events[-1].actual_size == directory.total_size
        assert all(e.matches for e in events)

    def test_descriptor_probe_is_not_traced(self):
        descriptor = DataDescriptor(crc32=1, compressed_size=2, uncompressed_size=3)
        events = []
        stream = TracingStream(io.BytesIO(b"\x00" * 8 + descriptor.to_bytes()), on_trace=events.append)
        stream.seek(4)

        assert DataDescriptor.read_from_end(stream) == descriptor
        assert stream.tell() == 4
        assert events == []

    def test_mismatch_logged(self, caplog):
        events = []
        stream = TracingStream(io.BytesIO(), on_trace=events.append)

        with caplog.at_level(logging.WARNING, logger="zipstruct.tracing"):
            traced_write(stream, "probe", 10, lambda s: s.write(b"abc"))

        assert not events[0].matches
        assert events[0].actual_size == 3
        assert "expected to end at" in caplog.text

    def test_debug_logging(self, caplog):
        stream = TracingStream(io.BytesIO())

        with caplog.at_level(logging.DEBUG, logger="zipstruct.tracing"):
            LocalFileHeader(filename="x").write(stream)

        assert "write local file header" in caplog.text
        assert "size=31 B expected=31 B" in caplog.text

    def test_custom_logger(self, caplog):
        stream = TracingStream(io.BytesIO(), logger=logging.getLogger("custom.trace"))

        with caplog.at_level(logging.DEBUG, logger="custom.trace"):
            LocalFileHeader(filename="x").write(stream)

        assert any(r.name == "custom.trace" for r in caplog.records)

    def test_close_leaves_raw_open(self):
        raw = io.BytesIO()
        TracingStream(raw).close()
        assert not raw.closed


class TestHelpers:
    """Tests for traced_read and traced_write without a tracing stream."""

    def test_passthrough(self):
        raw = io.BytesIO(LocalFileHeader(filename="x").to_bytes())

        header = traced_read(raw, "local file header", LocalFileHeader._read)
        written = traced_write(io.BytesIO(), "anything", 99, lambda s: s.write(b"ab"))

        assert header.filename == "x"
        assert written == 2

    def test_trace_event(self):
        event = TraceEvent("read", "entry", start=10, end=40, expected_size=30)
        assert event.actual_size == 30
        assert event.matches

    def test_records_are_sized(self, entries):
        for record in (
            LocalFileHeader(),
            DataDescriptor(),
            entries[0],
            CentralDirectory(),
        ):
            assert isinstance(record, SizedRecord)
