class BitIOError(Exception):
    """Base class for failures raised by the bit reader and writer.

    :ivar count: Amount already transferred by the failing call, in the unit
        the call returns on success (bytes for slice transfers, padding bits
        for ``BitWriter.align``). Zero for single-value calls.
    :type count: int
    """

    def __init__(self, message: str = "", count: int = 0):
        super().__init__(message)
        self.count = count


class EndOfData(BitIOError, EOFError):
    """The source ran out of bytes before the request could be served."""


class SinkFailure(BitIOError, OSError):
    """The sink rejected a byte write."""


class FlushFailure(SinkFailure):
    """Flushing a buffering sink failed during ``align`` or ``close``."""
