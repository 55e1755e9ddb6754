"""Name-to-ID Map (NID 0x61).

Maps named properties (property set GUID + string name or numeric LID)
to the property ids 0x8000+ used in PCs and TCs.

Streams (all PT_BINARY on the map's PC):
    0x0002  GUID stream: 16-byte GUIDs, index 3 onwards
    0x0003  entry stream: 8-byte NAMEID records
    0x0004  string stream: dwLength(4) + UTF-16LE name, 4-byte aligned

NAMEID: dwPropertyID(4) + wGuid/N(2) + wPropIdx(2)
    N = 0: dwPropertyID is a numeric LID
    N = 1: dwPropertyID is an offset into the string stream

See [MS-PST] 2.4.7.
"""

import logging
import struct
import uuid
from dataclasses import dataclass
from typing import Optional

from ..errors import ABSENT, CorruptBlock, NotFound
from ..ltp.pc import PropertyContext
from ..mapi.properties import (
    NAMED_PROP_BASE, NID_NAME_TO_ID_MAP, PR_NAMEID_STREAM_ENTRY,
    PR_NAMEID_STREAM_GUID, PR_NAMEID_STREAM_STRING, PS_MAPI, PS_PUBLIC_STRINGS,
)
from ..utils import decode_utf16

logger = logging.getLogger(__name__)

NAMEID_SIZE = 8
GUID_SIZE = 16

# wGuid values below this index are predefined
GUID_NONE = 0
GUID_PS_MAPI = 1
GUID_PS_PUBLIC_STRINGS = 2
GUID_STREAM_BASE = 3


@dataclass(frozen=True)
class NamedProperty:
    """One entry of the name-to-id map."""

    prop_id: int
    guid: Optional[uuid.UUID]
    name: Optional[str] = None
    lid: Optional[int] = None

    @property
    def key(self):
        return self.name if self.name is not None else self.lid


def _as_uuid(guid):
    if guid is None or isinstance(guid, uuid.UUID):
        return guid
    return uuid.UUID(str(guid))


class NameToIdMap:
    """Decoded name-to-id map of an archive."""

    def __init__(self, ndb, config):
        self._by_id = {}
        self._by_key = {}
        try:
            node = ndb.get_node(NID_NAME_TO_ID_MAP)
        except NotFound:
            logger.debug("Archive has no name-to-id map")
            return
        pc = PropertyContext(node, config)
        self._load(pc)

    def _load(self, pc):
        guid_stream = pc.get(PR_NAMEID_STREAM_GUID)
        entry_stream = pc.get(PR_NAMEID_STREAM_ENTRY)
        string_stream = pc.get(PR_NAMEID_STREAM_STRING)
        guid_stream = b'' if guid_stream is ABSENT else guid_stream
        entry_stream = b'' if entry_stream is ABSENT else entry_stream
        string_stream = b'' if string_stream is ABSENT else string_stream

        if len(entry_stream) % NAMEID_SIZE:
            raise CorruptBlock(f"Name-to-id entry stream of {len(entry_stream)} bytes",
                               nid=NID_NAME_TO_ID_MAP)

        guids = [uuid.UUID(bytes_le=bytes(guid_stream[i:i + GUID_SIZE]))
                 for i in range(0, len(guid_stream) - GUID_SIZE + 1, GUID_SIZE)]

        for off in range(0, len(entry_stream), NAMEID_SIZE):
            dw_prop, guid_n, prop_idx = struct.unpack_from('<IHH', entry_stream, off)
            is_string = guid_n & 0x1
            guid = self._guid(guid_n >> 1, guids)
            prop = NAMED_PROP_BASE + prop_idx
            if is_string:
                named = NamedProperty(prop, guid, name=self._string(string_stream, dw_prop))
            else:
                named = NamedProperty(prop, guid, lid=dw_prop)
            self._by_id[prop] = named
            self._by_key[(guid, named.key)] = prop
        logger.debug("Name-to-id map: %d named properties", len(self._by_id))

    @staticmethod
    def _guid(index, guids):
        if index == GUID_NONE:
            return None
        if index == GUID_PS_MAPI:
            return uuid.UUID(PS_MAPI)
        if index == GUID_PS_PUBLIC_STRINGS:
            return uuid.UUID(PS_PUBLIC_STRINGS)
        i = index - GUID_STREAM_BASE
        if i >= len(guids):
            raise CorruptBlock(f"Named property GUID index {index} past the GUID stream",
                               nid=NID_NAME_TO_ID_MAP)
        return guids[i]

    @staticmethod
    def _string(stream, offset):
        if offset + 4 > len(stream):
            raise CorruptBlock(f"Named property string offset {offset} past the string stream",
                               nid=NID_NAME_TO_ID_MAP)
        length, = struct.unpack_from('<I', stream, offset)
        if offset + 4 + length > len(stream):
            raise CorruptBlock("Named property string overruns the string stream",
                               nid=NID_NAME_TO_ID_MAP)
        return decode_utf16(stream[offset + 4:offset + 4 + length])

    def lookup(self, guid, name_or_lid):
        """Property id of a named property, or None.

        Args:
            guid: Property set as uuid.UUID or string.
            name_or_lid: String name or numeric LID.
        """
        return self._by_key.get((_as_uuid(guid), name_or_lid))

    def name_of(self, prop_id):
        """NamedProperty for a property id >= 0x8000, or None."""
        return self._by_id.get(prop_id)

    def __len__(self):
        return len(self._by_id)

    def __iter__(self):
        return iter(self._by_id.values())
