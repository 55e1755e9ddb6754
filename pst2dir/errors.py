"""Exception taxonomy for PST decoding.

InvalidFormat   the container itself is unusable (magic, version, crypt).
CorruptBlock    one block, page or structure failed validation; fatal to the
                node being read, the rest of the archive stays readable.
NotFound        a key has no entry in an index. Used to tell legitimately
                missing optional data apart from corruption.
ABSENT          not an exception: the value returned for a property that is
                simply not set.
"""


class PSTError(Exception):
    """Base class for all archive decoding errors."""


class InvalidFormat(PSTError):
    """Header magic, version or crypt method not supported."""


class CorruptBlock(PSTError):
    """A block, page or heap structure failed validation."""

    def __init__(self, message, bid=None, nid=None):
        super().__init__(message)
        self.bid = bid
        self.nid = nid

    def __str__(self):
        msg = super().__str__()
        where = []
        if self.nid is not None:
            where.append(f"nid=0x{self.nid:X}")
        if self.bid is not None:
            where.append(f"bid=0x{self.bid:X}")
        if where:
            return f"{msg} ({', '.join(where)})"
        return msg


class NotFound(PSTError, LookupError):
    """A requested ID is absent from an index."""

    def __init__(self, kind, key):
        super().__init__(f"{kind} 0x{key:X} not found")
        self.kind = kind
        self.key = key


class _Absent:
    """Singleton marking a property that is not set on an object."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'ABSENT'

    def __reduce__(self):
        return (_Absent, ())


ABSENT = _Absent()
