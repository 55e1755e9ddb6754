"""Opening a PST/OST archive.

    with open_archive('mailbox.pst') as archive:
        root = archive.root_folder()
        for folder in root.walk():
            ...

The file is mapped read-only; every structure is decoded on demand.
"""

import logging
import mmap
import os

from .config import DEFAULT_CONFIG
from .errors import CorruptBlock, InvalidFormat, NotFound
from .mapi.properties import FOLDER_NID_TYPES, NID_ROOT_FOLDER, nid_type
from .messaging.folder import Folder
from .messaging.message import Message
from .messaging.nameid import NameToIdMap
from .messaging.store import MessageStore
from .ndb.header import HEADER_SIZE, parse_header
from .ndb.node import NodeDatabase

logger = logging.getLogger(__name__)


class Archive:
    """An opened archive.

    Folders are materialized lazily and cached for the archive's lifetime.
    Not thread-safe: use one Archive per thread.
    """

    def __init__(self, buffer, config=None, name=None, _file=None):
        self.config = config or DEFAULT_CONFIG
        self.name = name
        self._buffer = buffer
        self._file = _file
        self.header = parse_header(buffer[:HEADER_SIZE], self.config.verify_crc)
        self.ndb = NodeDatabase(buffer, self.header, self.config)
        self._folders = {}
        self._store = None
        self._names = None
        logger.info("Opened %s (%s, crypt=%s, %d bytes)",
                    name or 'archive', self.header.variant.name,
                    self.header.crypt_name, len(buffer))

    def __repr__(self):
        return f"<Archive {self.name or ''} {self.header.variant.name}>"

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        """Release the file mapping. Objects read from the archive become unusable."""
        if isinstance(self._buffer, mmap.mmap):
            self._buffer.close()
        if self._file is not None:
            self._file.close()
            self._file = None

    @property
    def message_store(self) -> MessageStore:
        if self._store is None:
            self._store = MessageStore(self.ndb, self.config)
        return self._store

    @property
    def named_properties(self) -> NameToIdMap:
        if self._names is None:
            self._names = NameToIdMap(self.ndb, self.config)
        return self._names

    def root_folder(self) -> Folder:
        """The root folder (NID 0x122). Its absence means a corrupt archive."""
        return self.open_folder(NID_ROOT_FOLDER)

    def get_folder(self, nid) -> Folder:
        """Folder by NID. Raises NotFound when the NBT has no such node."""
        folder = self._folders.get(nid)
        if folder is None:
            if nid_type(nid) not in FOLDER_NID_TYPES:
                raise NotFound('folder', nid)
            folder = Folder(self, self.ndb.get_node(nid))
            self._folders[nid] = folder
        return folder

    def get_message(self, nid) -> Message:
        """Message by NID. Raises NotFound when the NBT has no such node."""
        return Message(self, self.ndb.get_node(nid))

    def open_folder(self, nid) -> Folder:
        """Folder referenced by another object; a missing node is corruption."""
        try:
            return self.get_folder(nid)
        except NotFound:
            raise CorruptBlock("Referenced folder missing", nid=nid) from None

    def open_message(self, nid) -> Message:
        """Message referenced by a contents table; a missing node is corruption."""
        return Message(self, self.ndb.require_node(nid))

    def iter_nodes(self):
        """Every NBT entry in NID order."""
        return self.ndb.iter_nodes()


def open_archive(path_or_bytes, config=None) -> Archive:
    """Open an archive from a path or from its bytes.

    Raises:
        InvalidFormat: the header is not a supported PST/OST header.
        OSError: the file cannot be read.
    """
    if isinstance(path_or_bytes, (bytes, bytearray, memoryview)):
        return Archive(bytes(path_or_bytes), config)

    path = os.fspath(path_or_bytes)
    f = open(path, 'rb')
    try:
        size = os.fstat(f.fileno()).st_size
        if size < HEADER_SIZE:
            raise InvalidFormat(f"File too small for a PST header ({size} bytes)")
        buffer = mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ)
    except BaseException:
        f.close()
        raise
    try:
        return Archive(buffer, config, name=os.path.basename(path), _file=f)
    except BaseException:
        buffer.close()
        f.close()
        raise
