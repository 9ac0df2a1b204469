import io
import logging

import pytest

from bitendpoints import (
    BufferedSink,
    BufferedSource,
    ByteSink,
    ByteSource,
    MemorySink,
    MemorySource,
    as_sink,
    as_source,
)
from biterrors import EndOfData, FlushFailure, SinkFailure
from bitops import BitReader, BitWriter


class _TrickleWriter:
    """Raw stream accepting at most one byte per write call."""

    def __init__(self):
        self.data = bytearray()
        self.flushed = 0

    def write(self, buffer):
        self.data += bytes(buffer[:1])
        return 1

    def flush(self):
        self.flushed += 1


class _BrokenWriter:
    def write(self, buffer):
        raise OSError("broken pipe")


def test_native_endpoints_are_used_directly():
    source = MemorySource(b"\x01")
    sink = MemorySink()
    assert isinstance(source, ByteSource)
    assert isinstance(sink, ByteSink)
    assert as_source(source) is source
    assert as_sink(sink) is sink
    assert BitReader(source).source is source
    assert BitWriter(sink).sink is sink


def test_streams_get_adapters():
    assert not isinstance(io.BytesIO(), ByteSource)
    assert isinstance(as_source(io.BytesIO(b"")), BufferedSource)
    assert isinstance(as_sink(io.BytesIO()), BufferedSink)


def test_non_streams_are_rejected():
    with pytest.raises(TypeError):
        as_source(object())
    with pytest.raises(TypeError):
        as_sink(object())
    with pytest.raises(ValueError):
        BufferedSource(io.BytesIO(), buffer_size=0)


def test_resolution_is_logged(caplog):
    with caplog.at_level(logging.DEBUG, logger="bitendpoints"):
        as_source(io.BytesIO(b""), buffer_size=32)
    assert "BufferedSource(32)" in caplog.text


def test_buffered_source_refills_across_reads():
    src = BufferedSource(io.BytesIO(bytes(range(10))), buffer_size=3)
    assert [src.read_byte() for _ in range(4)] == [0, 1, 2, 3]
    buf = bytearray(8)
    assert src.readinto(buf) == 2
    assert buf[:2] == bytes([4, 5])
    # Buffer drained and request larger than buffer_size: raw read.
    assert src.readinto(buf) == 4
    assert buf[:4] == bytes([6, 7, 8, 9])
    with pytest.raises(EndOfData):
        src.read_byte()
    assert src.readinto(buf) == 0


def test_buffered_source_large_read_bypasses_buffer():
    src = BufferedSource(io.BytesIO(bytes(range(10))), buffer_size=4)
    buf = bytearray(6)
    assert src.readinto(buf) == 6
    assert buf == bytes(range(6))
    assert src.read_byte() == 6


def test_buffered_sink_handles_short_writes():
    raw = _TrickleWriter()
    sink = BufferedSink(raw, buffer_size=4)
    sink.write_byte(1)
    assert sink.write(b"\x02\x03") == 2
    assert raw.data == b""
    sink.write_byte(4)
    assert raw.data == b"\x01\x02\x03\x04"
    sink.write_byte(5)
    sink.flush()
    assert raw.data == b"\x01\x02\x03\x04\x05"
    assert raw.flushed == 1


def test_buffered_sink_reports_raw_failures():
    sink = BufferedSink(_BrokenWriter(), buffer_size=2)
    sink.write_byte(1)
    with pytest.raises(SinkFailure) as excinfo:
        sink.write_byte(2)
    assert not isinstance(excinfo.value, FlushFailure)

    sink = BufferedSink(_BrokenWriter())
    sink.write_byte(1)
    with pytest.raises(FlushFailure):
        sink.flush()


def test_writer_close_surfaces_flush_failure():
    w = BitWriter(_BrokenWriter())
    w.write_bits(0x3, 2)
    with pytest.raises(FlushFailure) as excinfo:
        w.close()
    assert excinfo.value.count == 6
    assert not w.closed


def test_memory_source_remaining():
    src = MemorySource(b"abc")
    src.read_byte()
    assert src.remaining() == 2
    assert src.readinto(bytearray(5)) == 2
    assert src.remaining() == 0


class _FailOnceWriter:
    """Raw stream rejecting its first write call, accepting the rest."""

    def __init__(self):
        self.data = bytearray()
        self.failed = False

    def write(self, buffer):
        if not self.failed:
            self.failed = True
            raise OSError("transient failure")
        self.data += buffer
        return len(buffer)


def test_buffered_sink_keeps_first_failure():
    raw = _FailOnceWriter()
    sink = BufferedSink(raw, buffer_size=1)
    with pytest.raises(SinkFailure):
        sink.write_byte(0x01)
    assert isinstance(sink.error, OSError)
    with pytest.raises(SinkFailure):
        sink.write_byte(0x02)
    with pytest.raises(SinkFailure):
        sink.write(b"\x03")
    with pytest.raises(FlushFailure):
        sink.flush()
    assert raw.data == b""


def test_writer_does_not_deliver_rejected_bytes():
    raw = _FailOnceWriter()
    w = BitWriter(raw, buffer_size=1)
    w.write_bool(True)
    with pytest.raises(SinkFailure):
        w.write_bits(0xFF, 8)
    with pytest.raises(SinkFailure):
        w.close()
    assert not w.closed
    assert raw.data == b""
