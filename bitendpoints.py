"""Byte-level endpoints the bit engines read from and write to.

The engines only need a single-byte path and a bulk slice path. Objects that
already provide both (see :class:`ByteSource` and :class:`ByteSink`) are used
directly; plain binary streams are wrapped in a buffering adapter once, when
the engine is constructed.
"""

import io
import logging
from typing import Callable, Optional, Protocol, runtime_checkable

from biterrors import EndOfData, FlushFailure, SinkFailure

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = io.DEFAULT_BUFFER_SIZE  #: Adapter buffer size in bytes


@runtime_checkable
class ByteSource(Protocol):
    """Source with a native single-byte read path."""

    def read_byte(self) -> int:
        """Return the next byte; raise :class:`EndOfData` when exhausted."""
        ...

    def readinto(self, buffer) -> int:
        """Fill ``buffer``; short reads allowed, ``0`` at end of data."""
        ...


@runtime_checkable
class ByteSink(Protocol):
    """Sink with a native single-byte write path."""

    def write_byte(self, value: int) -> None:
        """Write one byte; raise :class:`SinkFailure` if rejected."""
        ...

    def write(self, buffer) -> int:
        """Write ``buffer``; return the number of bytes accepted."""
        ...


class BufferedSource:
    """Read-ahead adapter giving a plain binary stream a single-byte path.

    :ivar raw: Wrapped stream, anything with ``read(size)``.
    :ivar buffer_size: Number of bytes requested from ``raw`` per refill.
    :type buffer_size: int
    """

    def __init__(self, raw, buffer_size: int = DEFAULT_BUFFER_SIZE):
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")
        self.raw = raw
        self.buffer_size = buffer_size
        self._buf = b""
        self._pos = 0

    def _fill(self) -> bool:
        data = self.raw.read(self.buffer_size)
        if not data:
            return False
        self._buf = data
        self._pos = 0
        return True

    def read_byte(self) -> int:
        """Return the next byte of the stream.

        :returns: Byte value (0-255).
        :rtype: int
        :raises EndOfData: If the stream is exhausted.
        """
        if self._pos >= len(self._buf) and not self._fill():
            raise EndOfData("Unexpected end of data")
        b = self._buf[self._pos]
        self._pos += 1
        return b

    def readinto(self, buffer) -> int:
        """Fill ``buffer`` from the read-ahead buffer or the raw stream.

        At most one refill (or one direct raw read) happens per call, so the
        result may be short.

        :param buffer: Writable bytes-like object.
        :returns: Number of bytes stored, ``0`` at end of data.
        :rtype: int
        """
        view = memoryview(buffer).cast("B")
        if not len(view):
            return 0
        if self._pos >= len(self._buf):
            if len(view) >= self.buffer_size:
                data = self.raw.read(len(view))
                if not data:
                    return 0
                view[:len(data)] = data
                return len(data)
            if not self._fill():
                return 0
        n = min(len(view), len(self._buf) - self._pos)
        view[:n] = self._buf[self._pos:self._pos + n]
        self._pos += n
        return n


class BufferedSink:
    """Write-behind adapter giving a plain binary stream a single-byte path.

    Bytes are collected until ``buffer_size`` is reached or :meth:`flush` is
    called. Errors of the raw stream surface as :class:`SinkFailure` while
    writing and as :class:`FlushFailure` while flushing. The first raw error
    is kept: every later write or flush fails with it and nothing more
    reaches the raw stream.
    """

    def __init__(self, raw, buffer_size: int = DEFAULT_BUFFER_SIZE):
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")
        self.raw = raw
        self.buffer_size = buffer_size
        self._buf = bytearray()
        self._error = None

    @property
    def error(self) -> Optional[OSError]:
        """First error of the raw stream, or ``None``."""
        return self._error

    def _drain(self) -> None:
        if self._error is not None:
            raise self._error
        try:
            while self._buf:
                n = self.raw.write(self._buf)
                if not n:
                    raise OSError("Sink accepted no bytes")
                del self._buf[:n]
        except OSError as err:
            self._error = err
            raise

    def _check(self) -> None:
        if self._error is not None:
            raise SinkFailure(
                f"Write to sink failed: {self._error}"
            ) from self._error

    def _drain_or_fail(self) -> None:
        try:
            self._drain()
        except OSError as err:
            raise SinkFailure(f"Write to sink failed: {err}") from err

    def write_byte(self, value: int) -> None:
        """Append one byte, draining the buffer once it is full.

        :param value: Byte value (0-255).
        :type value: int
        :raises SinkFailure: If the raw stream rejects the buffered bytes,
            now or in an earlier call.
        """
        self._check()
        self._buf.append(value)
        if len(self._buf) >= self.buffer_size:
            self._drain_or_fail()

    def write(self, buffer) -> int:
        """Append ``buffer``; return its length.

        :raises SinkFailure: If the raw stream rejects the buffered bytes,
            now or in an earlier call.
        """
        self._check()
        self._buf += buffer
        if len(self._buf) >= self.buffer_size:
            self._drain_or_fail()
        return len(buffer)

    def flush(self) -> None:
        """Write every buffered byte to the raw stream and flush it.

        :raises FlushFailure: If the raw stream fails to accept or flush,
            now or in an earlier call.
        """
        try:
            self._drain()
            flush = getattr(self.raw, "flush", None)
            if flush is not None:
                flush()
        except OSError as err:
            self._error = err
            raise FlushFailure(f"Flushing sink failed: {err}") from err


class MemorySource:
    """In-memory source with a native single-byte path.

    :ivar data: Bytes served by the source.
    :type data: bytes
    :ivar pos: Index of the next byte to serve.
    :type pos: int
    """

    def __init__(self, data: bytes = b""):
        self.data = bytes(data)
        self.pos = 0

    def read_byte(self) -> int:
        """Return the next byte.

        :returns: Byte value (0-255).
        :rtype: int
        :raises EndOfData: If every byte has been served.
        """
        if self.pos >= len(self.data):
            raise EndOfData("Unexpected end of data")
        b = self.data[self.pos]
        self.pos += 1
        return b

    def readinto(self, buffer) -> int:
        """Copy the next bytes into ``buffer``.

        :param buffer: Writable bytes-like object.
        :returns: Number of bytes copied, ``0`` once exhausted.
        :rtype: int
        """
        view = memoryview(buffer).cast("B")
        chunk = self.data[self.pos:self.pos + len(view)]
        view[:len(chunk)] = chunk
        self.pos += len(chunk)
        return len(chunk)

    def remaining(self) -> int:
        """Return the number of bytes not served yet.

        :rtype: int
        """
        return len(self.data) - self.pos


class MemorySink:
    """In-memory sink with a native single-byte path.

    :ivar buffer: Every byte written so far.
    :type buffer: bytearray
    """

    def __init__(self):
        self.buffer = bytearray()

    def write_byte(self, value: int) -> None:
        """Append one byte.

        :param value: Byte value (0-255).
        :type value: int
        :returns: None
        :rtype: None
        """
        self.buffer.append(value)

    def write(self, buffer) -> int:
        """Append ``buffer``.

        :param buffer: Bytes-like object.
        :returns: Number of bytes appended, always ``len(buffer)``.
        :rtype: int
        """
        self.buffer += buffer
        return len(buffer)

    def getvalue(self) -> bytes:
        """Return a copy of everything written.

        :rtype: bytes
        """
        return bytes(self.buffer)


def as_source(obj, buffer_size: int = DEFAULT_BUFFER_SIZE) -> ByteSource:
    """Resolve ``obj`` to an endpoint with a single-byte read path.

    :param obj: A :class:`ByteSource`, or any binary stream with ``read``.
    :param buffer_size: Read-ahead size used when an adapter is needed.
    :type buffer_size: int
    :returns: ``obj`` itself, or a :class:`BufferedSource` around it.
    :rtype: ByteSource
    :raises TypeError: If ``obj`` cannot be read from.
    """
    if isinstance(obj, ByteSource):
        logger.debug("Using native byte source %s", type(obj).__name__)
        return obj
    if callable(getattr(obj, "read", None)):
        logger.debug("Wrapping %s in BufferedSource(%d)",
                     type(obj).__name__, buffer_size)
        return BufferedSource(obj, buffer_size)
    raise TypeError(f"Not a readable byte source: {type(obj).__name__}")


def as_sink(obj, buffer_size: int = DEFAULT_BUFFER_SIZE) -> ByteSink:
    """Resolve ``obj`` to an endpoint with a single-byte write path.

    :param obj: A :class:`ByteSink`, or any binary stream with ``write``.
    :param buffer_size: Buffer size used when an adapter is needed.
    :type buffer_size: int
    :returns: ``obj`` itself, or a :class:`BufferedSink` around it.
    :rtype: ByteSink
    :raises TypeError: If ``obj`` cannot be written to.
    """
    if isinstance(obj, ByteSink):
        logger.debug("Using native byte sink %s", type(obj).__name__)
        return obj
    if callable(getattr(obj, "write", None)):
        logger.debug("Wrapping %s in BufferedSink(%d)",
                     type(obj).__name__, buffer_size)
        return BufferedSink(obj, buffer_size)
    raise TypeError(f"Not a writable byte sink: {type(obj).__name__}")


def flush_of(sink) -> Optional[Callable[[], None]]:
    """Return the sink's ``flush`` method, or ``None`` if it has none."""
    flush = getattr(sink, "flush", None)
    return flush if callable(flush) else None
