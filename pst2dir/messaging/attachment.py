"""Attachment objects for PST Messaging layer.

Each attachment is a sub-node of its message (NID type 5) holding an
attachment PC. The data property (PR_ATTACH_DATA_BIN) is either a heap
item or, for anything larger than a heap allocation, a sub-node of the
attachment whose data tree is streamed one block at a time.

See [MS-PST] 2.4.6.
"""

import io

from ..errors import ABSENT, CorruptBlock, NotFound
from ..ltp.pc import PropertyContext
from ..ltp.values import ObjectRef
from ..mapi.properties import (
    ATTACH_EMBEDDED_MSG,
    PR_ATTACH_CONTENT_ID, PR_ATTACH_DATA_BIN, PR_ATTACH_DATA_OBJ, PR_ATTACH_EXTENSION,
    PR_ATTACH_FILENAME, PR_ATTACH_LONG_FILENAME, PR_ATTACH_METHOD, PR_ATTACH_MIME_TAG,
    PR_ATTACH_SIZE, PR_DISPLAY_NAME, PR_RENDERING_POSITION,
)


class AttachmentStream(io.RawIOBase):
    """Pull-based reader over an attachment's data blocks.

    readinto() returns the number of bytes copied, 0 at end of stream.
    Only the current block is held in memory.
    """

    def __init__(self, chunks, size):
        super().__init__()
        self._chunks = iter(chunks)
        self._buf = b''
        self._pos = 0
        self._eof = False
        self.size = size

    def readable(self):
        return True

    def _next_chunk(self):
        try:
            self._buf = next(self._chunks)
        except StopIteration:
            self._buf = b''
            self._eof = True
        self._pos = 0

    def readinto(self, buffer):
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        view = memoryview(buffer).cast('B')
        n = 0
        while n < len(view) and not self._eof:
            if self._pos >= len(self._buf):
                self._next_chunk()
                continue
            take = min(len(view) - n, len(self._buf) - self._pos)
            view[n:n + take] = self._buf[self._pos:self._pos + take]
            self._pos += take
            n += take
        return n

    def close(self):
        self._chunks = iter(())
        self._buf = b''
        super().close()


class Attachment:
    """Read-only view of one attachment."""

    def __init__(self, archive, node, message=None):
        self.archive = archive
        self.node = node
        self.nid = node.nid
        self.message = message
        encoding = message.pc.encoding if message is not None else None
        self.pc = PropertyContext(node, archive.config, encoding)

    def __repr__(self):
        return f"<Attachment nid=0x{self.nid:X} {self.long_filename!r}>"

    def _get(self, tag, default=None):
        value = self.pc.get(tag)
        return default if value is ABSENT else value

    @property
    def long_filename(self):
        """Long filename, '' when the attachment carries none."""
        return self._get(PR_ATTACH_LONG_FILENAME, '')

    @property
    def filename(self):
        """8.3 filename, '' when absent."""
        return self._get(PR_ATTACH_FILENAME, '')

    @property
    def display_name(self):
        return self._get(PR_DISPLAY_NAME)

    @property
    def extension(self):
        return self._get(PR_ATTACH_EXTENSION)

    @property
    def mime_tag(self):
        return self._get(PR_ATTACH_MIME_TAG)

    @property
    def content_id(self):
        return self._get(PR_ATTACH_CONTENT_ID)

    @property
    def method(self):
        return self._get(PR_ATTACH_METHOD, 0)

    @property
    def rendering_position(self):
        return self._get(PR_RENDERING_POSITION)

    @property
    def best_filename(self):
        return self.long_filename or self.filename or self.display_name or ''

    @property
    def data_size(self):
        """Byte length of the attachment data."""
        size = self.pc.value_size(PR_ATTACH_DATA_BIN)
        return 0 if size is ABSENT else size

    @property
    def size(self):
        """PR_ATTACH_SIZE, falling back to the data length."""
        return self._get(PR_ATTACH_SIZE, self.data_size)

    def open_stream(self) -> AttachmentStream:
        """Open the attachment data for streaming."""
        chunks = self.pc.open_stream(PR_ATTACH_DATA_BIN)
        if chunks is ABSENT:
            chunks = ()
        return AttachmentStream(chunks, self.data_size)

    def read_bytes(self) -> bytes:
        with self.open_stream() as stream:
            return stream.read()

    def embedded_message(self):
        """The attached message for ATTACH_EMBEDDED_MSG attachments, else None."""
        from .message import Message

        if self.method != ATTACH_EMBEDDED_MSG:
            return None
        ref = self.pc.get(PR_ATTACH_DATA_OBJ)
        if not isinstance(ref, ObjectRef):
            raise CorruptBlock("Embedded message attachment without PR_ATTACH_DATA_OBJ",
                               nid=self.nid)
        try:
            node = self.node.get_subnode(ref.nid)
        except NotFound:
            raise CorruptBlock(f"Embedded message sub-node 0x{ref.nid:X} missing",
                               nid=self.nid) from None
        return Message(self.archive, node)

    def get_property(self, tag):
        return self.pc.get(tag)
