from bitendpoints import DEFAULT_BUFFER_SIZE, as_sink, as_source, flush_of
from biterrors import BitIOError, EndOfData, FlushFailure

MAX_BITS = 64  #: Widest value a single read_bits/write_bits call moves


class BitReader:
    """Bit-level reader over a byte source, MSB first.

    Holds at most 7 unread bits of the last byte pulled from the source.
    Exclusively owned by one caller; not safe to share between threads.

    :ivar _in: Resolved byte source (native or buffered adapter).
    :type _in: bitendpoints.ByteSource
    :ivar _cache: Unread bits, right-justified in the low ``_bits`` positions.
    :type _cache: int
    :ivar _bits: Number of unread bits in ``_cache`` (0-7).
    :type _bits: int
    """

    def __init__(self, source, buffer_size: int = DEFAULT_BUFFER_SIZE):
        """Create a bit reader on top of ``source``.

        :param source: A ``ByteSource`` or any binary stream with ``read``.
        :param buffer_size: Read-ahead size if ``source`` needs an adapter.
        :type buffer_size: int
        :returns: None
        :rtype: None
        """
        self._in = as_source(source, buffer_size)
        self._cache = 0
        self._bits = 0

    @property
    def source(self):
        """The resolved byte source this reader pulls from."""
        return self._in

    def read_bits(self, n: int) -> int:
        """Read the next ``n`` bits and return them right-justified.

        :param n: Number of bits to read (0-64).
        :type n: int
        :returns: Integer whose lowest ``n`` bits are the bits read.
        :rtype: int
        :raises ValueError: If ``n`` is outside 0-64.
        :raises EndOfData: If the source ends before ``n`` bits are available.
            Bits and bytes consumed before the failure are not restored.
        """
        if not 0 <= n <= MAX_BITS:
            raise ValueError(f"Bit count out of range: {n}")
        bits = self._bits
        if n < bits:
            shift = bits - n
            u = self._cache >> shift
            self._cache &= (1 << shift) - 1
            self._bits = shift
            return u

        if n > bits:
            u = self._cache
            n -= bits
            self._cache = 0
            self._bits = 0
            read_byte = self._in.read_byte
            while n >= 8:
                u = (u << 8) | read_byte()
                n -= 8
            if n > 0:
                b = read_byte()
                shift = 8 - n
                u = (u << n) | (b >> shift)
                self._cache = b & ((1 << shift) - 1)
                self._bits = shift
            return u

        u = self._cache
        self._cache = 0
        self._bits = 0
        return u

    def read_byte(self) -> int:
        """Read the next 8 bits.

        :returns: Byte value (0-255).
        :rtype: int
        :raises EndOfData: If the source is exhausted. The cache is untouched.
        """
        if self._bits == 0:
            return self._in.read_byte()
        return self._read_unaligned_byte()

    def _read_unaligned_byte(self) -> int:
        # The number of cached bits is the same after taking 8 bits.
        bits = self._bits
        nxt = self._in.read_byte()
        b = ((self._cache << (8 - bits)) | (nxt >> bits)) & 0xFF
        self._cache = nxt & ((1 << bits) - 1)
        return b

    def read_bool(self) -> bool:
        """Read one bit.

        :returns: ``True`` if the bit is 1.
        :rtype: bool
        :raises EndOfData: If the source is exhausted.
        """
        if self._bits == 0:
            b = self._in.read_byte()
            self._cache = b & 0x7F
            self._bits = 7
            return (b & 0x80) != 0

        self._bits -= 1
        mask = 1 << self._bits
        bit = (self._cache & mask) != 0
        self._cache &= mask - 1
        return bit

    def readinto(self, buffer) -> int:
        """Fill ``buffer`` with the next bytes of the bit stream.

        When the stream is byte-aligned the call is passed straight to the
        source and may return a short count. Otherwise each byte is
        assembled from the cached bits and the next source byte.

        :param buffer: Writable bytes-like object.
        :returns: Number of bytes stored in ``buffer``.
        :rtype: int
        :raises EndOfData: If no byte at all could be read, or if the source
            ends part way through an unaligned fill; ``count`` on the
            exception tells how many bytes were stored.
        """
        view = memoryview(buffer).cast("B")
        if self._bits == 0:
            n = self._in.readinto(view)
            if not n and len(view):
                raise EndOfData("Unexpected end of data")
            return n or 0

        n = 0
        try:
            for n in range(len(view)):
                view[n] = self._read_unaligned_byte()
        except BitIOError as err:
            err.count = n
            raise
        return len(view)

    def align(self) -> int:
        """Skip the unread bits of the current byte.

        :returns: Number of bits discarded (0-7).
        :rtype: int
        """
        skipped = self._bits
        self._cache = 0
        self._bits = 0
        return skipped


class BitWriter:
    """Bit-level writer over a byte sink, MSB first.

    Holds at most 7 bits that do not yet form a complete byte. They reach
    the sink only on :meth:`align` or :meth:`close`; the sink itself is
    never closed. Once closed, every write or align raises
    ``ValueError``. Exclusively owned by one caller; not safe to share
    between threads.

    :ivar _out: Resolved byte sink (native or buffered adapter).
    :type _out: bitendpoints.ByteSink
    :ivar _cache: Pending bits, left-justified in an 8-bit register.
    :type _cache: int
    :ivar _bits: Number of pending bits in ``_cache`` (0-7).
    :type _bits: int
    """

    def __init__(self, sink, buffer_size: int = DEFAULT_BUFFER_SIZE):
        """Create a bit writer on top of ``sink``.

        :param sink: A ``ByteSink`` or any binary stream with ``write``.
        :param buffer_size: Buffer size if ``sink`` needs an adapter.
        :type buffer_size: int
        :returns: None
        :rtype: None
        """
        self._out = as_sink(sink, buffer_size)
        self._flush = flush_of(self._out)
        self._cache = 0
        self._bits = 0
        self._closed = False

    @property
    def sink(self):
        """The resolved byte sink this writer pushes to."""
        return self._out

    @property
    def closed(self) -> bool:
        """Whether :meth:`close` has completed.

        :returns: ``True`` once the writer is closed; writes then raise
            ``ValueError``.
        :rtype: bool
        """
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed writer")

    def write_bits(self, value: int, n: int) -> None:
        """Write the lowest ``n`` bits of ``value``, MSB first.

        Bits of ``value`` above position ``n - 1`` are ignored.

        :param value: Integer whose low bits are written.
        :type value: int
        :param n: Number of bits to write (0-64).
        :type n: int
        :returns: None
        :rtype: None
        :raises ValueError: If ``n`` is outside 0-64.
        :raises SinkFailure: If the sink rejects a completed byte.
        """
        if not 0 <= n <= MAX_BITS:
            raise ValueError(f"Bit count out of range: {n}")
        self.write_bits_unsafe(value & ((1 << n) - 1), n)

    def write_bits_unsafe(self, value: int, n: int) -> None:
        """Write the lowest ``n`` bits of ``value`` without masking it.

        ``value`` must not have bits set at positions ``n`` or higher, and
        ``n`` must be in 0-64. If it does, the stray bits are OR-ed into the
        bytes being assembled and corrupt the stream.

        :param value: Integer with no bits set above position ``n - 1``.
        :type value: int
        :param n: Number of bits to write.
        :type n: int
        :returns: None
        :rtype: None
        :raises SinkFailure: If the sink rejects a completed byte. Bits
            accepted before the failure are not restored.
        """
        self._check_open()
        newbits = self._bits + n
        if newbits < 8:
            # Fits into the cache, nothing is written.
            self._cache |= (value << (8 - newbits)) & 0xFF
            self._bits = newbits
            return

        if newbits > 8:
            write_byte = self._out.write_byte
            free = 8 - self._bits
            write_byte(self._cache | ((value >> (n - free)) & 0xFF))
            n -= free
            while n >= 8:
                n -= 8
                write_byte((value >> n) & 0xFF)
            if n > 0:
                self._cache = (value & ((1 << n) - 1)) << (8 - n)
                self._bits = n
            else:
                self._cache = 0
                self._bits = 0
            return

        b = self._cache | (value & 0xFF)
        self._cache = 0
        self._bits = 0
        self._out.write_byte(b)

    def write_byte(self, b: int) -> None:
        """Write 8 bits.

        :param b: Byte value (0-255).
        :type b: int
        :returns: None
        :rtype: None
        :raises SinkFailure: If the sink rejects the byte.
        """
        self._check_open()
        if self._bits == 0:
            self._out.write_byte(b)
            return
        self._write_unaligned_byte(b)

    def _write_unaligned_byte(self, b: int) -> None:
        # The number of cached bits is the same after adding 8 bits.
        bits = self._bits
        self._out.write_byte(self._cache | (b >> bits))
        self._cache = ((b & ((1 << bits) - 1)) << (8 - bits)) & 0xFF

    def write_bool(self, b: bool) -> None:
        """Write one bit: 1 if ``b`` is true, 0 otherwise.

        :param b: Bit to write.
        :type b: bool
        :returns: None
        :rtype: None
        :raises SinkFailure: If the sink rejects the completed byte.
        """
        self._check_open()
        if self._bits == 7:
            self._out.write_byte((self._cache | 1) if b else self._cache)
            self._cache = 0
            self._bits = 0
            return

        self._bits += 1
        if b:
            self._cache |= 1 << (8 - self._bits)

    def write(self, buffer) -> int:
        """Write ``buffer`` as 8 bits per byte.

        When the stream is byte-aligned the call is passed straight to the
        sink and may report a partial write. Otherwise each byte is spread
        over the cached bits and a new byte.

        :param buffer: Bytes-like object to write.
        :returns: Number of bytes written.
        :rtype: int
        :raises SinkFailure: If the sink rejects a byte part way through an
            unaligned write; ``count`` on the exception tells how many bytes
            were written.
        """
        self._check_open()
        if self._bits == 0:
            return self._out.write(buffer)

        view = memoryview(buffer).cast("B")
        n = 0
        try:
            for n, b in enumerate(view):
                self._write_unaligned_byte(b)
        except BitIOError as err:
            err.count = n
            raise
        return len(view)

    def align(self) -> int:
        """Pad the current byte with zero bits and push it to the sink.

        Also flushes the sink when it buffers internally.

        :returns: Number of padding bits written (0-7).
        :rtype: int
        :raises SinkFailure: If the padded byte is rejected; the pending bits
            stay cached.
        :raises FlushFailure: If flushing the sink fails; ``count`` on the
            exception holds the padding bits already written.
        """
        self._check_open()
        skipped = 0
        if self._bits > 0:
            self._out.write_byte(self._cache)
            skipped = 8 - self._bits
            self._cache = 0
            self._bits = 0
        if self._flush is not None:
            try:
                self._flush()
            except FlushFailure as err:
                err.count = skipped
                raise
            except OSError as err:
                raise FlushFailure(
                    f"Flushing sink failed: {err}", count=skipped
                ) from err
        return skipped

    def close(self) -> None:
        """Align the stream and flush pending bits to the sink.

        The sink itself is left open. Closing an already closed writer does
        nothing.

        :returns: None
        :rtype: None
        :raises SinkFailure: If the final byte or the flush is rejected.
        """
        if self._closed:
            return
        self.align()
        self._closed = True
