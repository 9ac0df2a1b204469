import io
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bitendpoints import MemorySink, MemorySource  # noqa: E402
from biterrors import SinkFailure  # noqa: E402

#: Source bytes shared by the reader sequence tests.
READER_DATA = bytes(
    [3, 255, 0xCC, 0x1A, 0xBC, 0xDE, 0x80, 0x01, 0x02, 0xF8, 0x08, 0xF0]
)

#: Bytes produced by the writer sequence tests.
WRITER_DATA = bytes(
    [0xC1, 0x7F, 0xAC, 0x89, 0x24, 0x78, 0x01, 0x02, 0xF8, 0x08, 0xF0, 0xFF,
     0x80]
)


class LimitedSink:
    """Native sink accepting ``limit`` bytes, then rejecting every write.

    :ivar calls: Number of write_byte/write calls received.
    :type calls: int
    """

    def __init__(self, limit: int = 0):
        self.limit = limit
        self.data = bytearray()
        self.calls = 0

    def write_byte(self, value: int) -> None:
        self.calls += 1
        if self.limit == 0:
            raise SinkFailure("Can't write more!")
        self.limit -= 1
        self.data.append(value)

    def write(self, buffer) -> int:
        self.calls += 1
        n = min(self.limit, len(buffer))
        self.data += bytes(buffer[:n])
        self.limit -= n
        if n < len(buffer):
            raise SinkFailure("Can't write more!", count=n)
        return n


@pytest.fixture()
def limited_sink():
    """Provide the LimitedSink class for building failing sinks."""
    return LimitedSink


@pytest.fixture(params=["native", "stream"])
def source_factory(request):
    """Build a source over given bytes, with and without a byte path."""
    if request.param == "native":
        return MemorySource
    return lambda data: io.BytesIO(data)


@pytest.fixture(params=["native", "stream"])
def sink_pair(request):
    """Return ``(sink, getvalue)`` with and without a native byte path."""
    if request.param == "native":
        sink = MemorySink()
    else:
        sink = io.BytesIO()
    return sink, sink.getvalue


@pytest.fixture()
def reader_data():
    return READER_DATA


@pytest.fixture()
def writer_data():
    return WRITER_DATA
