"""Wrappers that change how a bit reader/writer reports progress and failure.

``BitReader`` and ``BitWriter`` raise on every failure. The wrappers here
can be stacked on top of them (and of each other):

- ``CountingReader`` / ``CountingWriter`` keep the exact number of bits
  moved so far, including the part of a slice transfer that completed
  before a failure.
- ``StickyReader`` / ``StickyWriter`` never raise from a transfer. The first
  failure is stored in ``error`` and every later call returns a zero value
  without touching the wrapped object, so a long sequence of calls can be
  checked once at the end.
"""

import logging

from bitendpoints import DEFAULT_BUFFER_SIZE
from biterrors import BitIOError
from bitops import BitReader, BitWriter

logger = logging.getLogger(__name__)

#: Exceptions a sticky wrapper records instead of raising.
STICKY_ERRORS = (EOFError, OSError)


class _Wrapper:
    """Forwards attributes it does not define to the wrapped object."""

    def __init__(self, inner):
        self._inner = inner

    @property
    def inner(self):
        return self._inner

    def __getattr__(self, name):
        if name == "_inner":
            raise AttributeError(name)
        return getattr(self._inner, name)


class CountingReader(_Wrapper):
    """Reader wrapper exposing the number of bits consumed so far.

    :ivar bits_count: Bits handed to the caller since construction.
    :type bits_count: int
    """

    def __init__(self, inner):
        super().__init__(inner)
        self._count = 0

    @property
    def bits_count(self) -> int:
        return self._count

    def read_bits(self, n: int) -> int:
        u = self._inner.read_bits(n)
        self._count += n
        return u

    def read_byte(self) -> int:
        b = self._inner.read_byte()
        self._count += 8
        return b

    def read_bool(self) -> bool:
        b = self._inner.read_bool()
        self._count += 1
        return b

    def readinto(self, buffer) -> int:
        try:
            n = self._inner.readinto(buffer)
        except BitIOError as err:
            self._count += 8 * err.count
            raise
        self._count += 8 * n
        return n

    def align(self) -> int:
        skipped = self._inner.align()
        self._count += skipped
        return skipped


class CountingWriter(_Wrapper):
    """Writer wrapper exposing the number of bits produced so far.

    Padding written by :meth:`align` is counted as well.
    """

    def __init__(self, inner):
        super().__init__(inner)
        self._count = 0

    @property
    def bits_count(self) -> int:
        return self._count

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def write_bits(self, value: int, n: int) -> None:
        self._inner.write_bits(value, n)
        self._count += n

    def write_bits_unsafe(self, value: int, n: int) -> None:
        self._inner.write_bits_unsafe(value, n)
        self._count += n

    def write_byte(self, b: int) -> None:
        self._inner.write_byte(b)
        self._count += 8

    def write_bool(self, b: bool) -> None:
        self._inner.write_bool(b)
        self._count += 1

    def write(self, buffer) -> int:
        try:
            n = self._inner.write(buffer)
        except BitIOError as err:
            self._count += 8 * err.count
            raise
        self._count += 8 * n
        return n

    def align(self) -> int:
        try:
            skipped = self._inner.align()
        except BitIOError as err:
            self._count += err.count
            raise
        self._count += skipped
        return skipped

    def close(self) -> None:
        if self._inner.closed:
            return
        # Align here so the padding bits are counted.
        self.align()
        self._inner.close()


class _Sticky(_Wrapper):
    """Shared failure bookkeeping of the sticky wrappers.

    :ivar error: First failure seen, or ``None``.
    :type error: Optional[BaseException]
    """

    def __init__(self, inner):
        super().__init__(inner)
        self.error = None

    def _record(self, err: BaseException) -> None:
        logger.debug("%s stopped after failure: %r",
                     type(self).__name__, err)
        self.error = err


class StickyReader(_Sticky):
    """Reader wrapper recording the first failure instead of raising it."""

    def read_bits(self, n: int) -> int:
        if self.error is not None:
            return 0
        try:
            return self._inner.read_bits(n)
        except STICKY_ERRORS as err:
            self._record(err)
            return 0

    def read_byte(self) -> int:
        if self.error is not None:
            return 0
        try:
            return self._inner.read_byte()
        except STICKY_ERRORS as err:
            self._record(err)
            return 0

    def read_bool(self) -> bool:
        if self.error is not None:
            return False
        try:
            return self._inner.read_bool()
        except STICKY_ERRORS as err:
            self._record(err)
            return False

    def readinto(self, buffer) -> int:
        """Fill ``buffer``; on failure return the bytes stored before it."""
        if self.error is not None:
            return 0
        try:
            return self._inner.readinto(buffer)
        except STICKY_ERRORS as err:
            self._record(err)
            return getattr(err, "count", 0)

    def align(self) -> int:
        if self.error is not None:
            return 0
        return self._inner.align()


class StickyWriter(_Sticky):
    """Writer wrapper recording the first failure instead of raising it.

    :meth:`close` is the exception: it raises the recorded failure, since
    a writer that could not flush has lost data.
    """

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def write_bits(self, value: int, n: int) -> None:
        if self.error is not None:
            return
        try:
            self._inner.write_bits(value, n)
        except STICKY_ERRORS as err:
            self._record(err)

    def write_bits_unsafe(self, value: int, n: int) -> None:
        if self.error is not None:
            return
        try:
            self._inner.write_bits_unsafe(value, n)
        except STICKY_ERRORS as err:
            self._record(err)

    def write_byte(self, b: int) -> None:
        if self.error is not None:
            return
        try:
            self._inner.write_byte(b)
        except STICKY_ERRORS as err:
            self._record(err)

    def write_bool(self, b: bool) -> None:
        if self.error is not None:
            return
        try:
            self._inner.write_bool(b)
        except STICKY_ERRORS as err:
            self._record(err)

    def write(self, buffer) -> int:
        """Write ``buffer``; on failure return the bytes written before it."""
        if self.error is not None:
            return 0
        try:
            return self._inner.write(buffer)
        except STICKY_ERRORS as err:
            self._record(err)
            return getattr(err, "count", 0)

    def align(self) -> int:
        if self.error is not None:
            return 0
        try:
            return self._inner.align()
        except STICKY_ERRORS as err:
            self._record(err)
            return 0

    def close(self) -> None:
        """Close the wrapped writer, then raise the recorded failure if any.

        :raises OSError: The first failure of this writer, if one occurred.
        """
        if self.error is None:
            try:
                self._inner.close()
            except STICKY_ERRORS as err:
                self._record(err)
        if self.error is not None:
            raise self.error


def open_reader(source, *, sticky: bool = False, counting: bool = False,
                buffer_size: int = DEFAULT_BUFFER_SIZE):
    """Build a bit reader on ``source`` with the requested wrappers.

    :param source: A ``ByteSource`` or any binary stream with ``read``.
    :param sticky: Record the first failure instead of raising.
    :type sticky: bool
    :param counting: Track the number of bits read.
    :type counting: bool
    :param buffer_size: Read-ahead size if ``source`` needs an adapter.
    :type buffer_size: int
    :returns: ``BitReader``, optionally wrapped (counting innermost).
    """
    reader = BitReader(source, buffer_size)
    if counting:
        reader = CountingReader(reader)
    if sticky:
        reader = StickyReader(reader)
    return reader


def open_writer(sink, *, sticky: bool = False, counting: bool = False,
                buffer_size: int = DEFAULT_BUFFER_SIZE):
    """Build a bit writer on ``sink`` with the requested wrappers.

    :param sink: A ``ByteSink`` or any binary stream with ``write``.
    :param sticky: Record the first failure instead of raising.
    :type sticky: bool
    :param counting: Track the number of bits written.
    :type counting: bool
    :param buffer_size: Buffer size if ``sink`` needs an adapter.
    :type buffer_size: int
    :returns: ``BitWriter``, optionally wrapped (counting innermost).
    """
    writer = BitWriter(sink, buffer_size)
    if counting:
        writer = CountingWriter(writer)
    if sticky:
        writer = StickyWriter(writer)
    return writer
