"""Message Store node (NID 0x21).

The Message Store is the root object of a PST file. Its PC carries the
store's display name, record key and the entry IDs of the well-known
folders.

See [MS-PST] 2.4.3.
"""

import struct
from dataclasses import dataclass

from ..errors import ABSENT
from ..ltp.pc import PropertyContext
from ..mapi.properties import (
    NID_MESSAGE_STORE,
    PR_DISPLAY_NAME, PR_FINDER_ENTRYID, PR_IPM_SUBTREE_ENTRYID,
    PR_IPM_WASTEBASKET_ENTRYID, PR_PST_PASSWORD, PR_RECORD_KEY,
)

# flags(4) + provider UID(16) + nid(4)
ENTRY_ID_SIZE = 24


@dataclass(frozen=True)
class EntryID:
    """PST entry ID.

    PST entry IDs are 24 bytes:
    - 4 bytes flags (0)
    - 16 bytes provider UID (matches the store's PR_RECORD_KEY)
    - 4 bytes NID
    """

    flags: int
    provider_uid: bytes
    nid: int

    @classmethod
    def parse(cls, data):
        """Decode an entry ID, or return None for anything malformed."""
        if not data or len(data) < ENTRY_ID_SIZE:
            return None
        flags, uid, nid = struct.unpack_from('<I16sI', data, 0)
        return cls(flags, uid, nid)


class MessageStore:
    """Read-only view of the message store PC."""

    def __init__(self, ndb, config):
        self.node = ndb.require_node(NID_MESSAGE_STORE)
        self.pc = PropertyContext(self.node, config)

    def __repr__(self):
        return f"<MessageStore {self.display_name!r}>"

    def _get(self, tag):
        value = self.pc.get(tag)
        return None if value is ABSENT else value

    @property
    def display_name(self):
        return self._get(PR_DISPLAY_NAME)

    @property
    def record_key(self):
        return self._get(PR_RECORD_KEY)

    @property
    def ipm_subtree_entry_id(self):
        return EntryID.parse(self._get(PR_IPM_SUBTREE_ENTRYID))

    @property
    def wastebasket_entry_id(self):
        return EntryID.parse(self._get(PR_IPM_WASTEBASKET_ENTRYID))

    @property
    def finder_entry_id(self):
        return EntryID.parse(self._get(PR_FINDER_ENTRYID))

    @property
    def password_crc(self):
        """PR_PST_PASSWORD, the CRC of the store password (0 when unset)."""
        value = self.pc.get(PR_PST_PASSWORD)
        return value & 0xFFFFFFFF if value else 0

    def get_property(self, tag):
        return self.pc.get(tag)
