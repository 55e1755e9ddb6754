"""Property Context (PC) reader.

A PC is a BTH that stores MAPI properties for an object (message, folder,
store, attachment). Each entry maps a property ID (2 bytes) to
wPropType(2) + dwValueHnid(4).

dwValueHnid is either:
  - Inline value (fixed-size <= 4 bytes)
  - HID (heap allocation) for larger fixed-size values
  - HNID (HID or sub-node NID) for variable-size and multi-valued values,
    with 0 meaning an empty value

See [MS-PST] 2.3.3.
"""

import logging
import struct

from ..errors import ABSENT, CorruptBlock
from ..mapi.properties import (
    PT_UNSPECIFIED, fixed_size, is_fixed_type, prop_id, prop_tag, prop_type, types_match,
)
from .bth import BTreeOnHeap
from .heap import HN_CLIENT_PC, HeapOnNode
from .values import decode_value

logger = logging.getLogger(__name__)


class PropertyContext:
    """Single-row property bag of a node.

    Entries are decoded once into a {prop_id: (prop_type, dwValueHnid)}
    table; values are decoded on access.
    """

    def __init__(self, node, config, encoding=None):
        self.node = node
        self.config = config
        self.encoding = encoding or config.string8_encoding
        self.heap = HeapOnNode(node, config, HN_CLIENT_PC)
        bth = BTreeOnHeap(self.heap, self.heap.user_root)
        if bth.key_size != 2 or bth.data_size != 6:
            raise CorruptBlock(
                f"PC BTH has cbKey={bth.key_size}, cbEnt={bth.data_size}", nid=node.nid)
        self._props = {}
        for key, data in bth.records():
            ptype, hnid = struct.unpack('<HI', data)
            self._props[key] = (ptype, hnid)
        logger.debug("PC nid=0x%X: %d properties", node.nid, len(self._props))

    def __repr__(self):
        return f"<PropertyContext nid=0x{self.node.nid:X} props={len(self._props)}>"

    def _entry(self, tag):
        """(prop_type, dwValueHnid) for a full tag or bare prop id, or None.

        A full tag only matches a compatible stored type (see types_match).
        """
        if tag > 0xFFFF:
            pid, wanted = prop_id(tag), prop_type(tag)
        else:
            pid, wanted = tag, PT_UNSPECIFIED
        entry = self._props.get(pid)
        if entry is None:
            return None
        return entry if types_match(wanted, entry[0]) else None

    def has(self, tag) -> bool:
        return self._entry(tag) is not None

    def __contains__(self, tag):
        return self.has(tag)

    def tags(self):
        """Full property tags in property id order."""
        return [prop_tag(pid, ptype) for pid, (ptype, _) in sorted(self._props.items())]

    def _value_bytes(self, ptype, hnid):
        if is_fixed_type(ptype):
            size = fixed_size(ptype)
            if size <= 4:
                return hnid.to_bytes(4, 'little')[:size]
            return self.heap.resolve(hnid)
        return self.heap.resolve_hnid(hnid)

    def get_raw(self, tag):
        """Undecoded value bytes, or ABSENT."""
        entry = self._entry(tag)
        if entry is None:
            return ABSENT
        return self._value_bytes(*entry)

    def get(self, tag):
        """Decoded value, or ABSENT when the property is not set."""
        entry = self._entry(tag)
        if entry is None:
            return ABSENT
        ptype, hnid = entry
        try:
            return decode_value(ptype, self._value_bytes(ptype, hnid), self.encoding)
        except CorruptBlock as e:
            if e.nid is None:
                e.nid = self.node.nid
            raise

    def get_type(self, tag):
        entry = self._entry(tag)
        return ABSENT if entry is None else entry[0]

    def items(self):
        """Yield (tag, value) for every property."""
        for tag in self.tags():
            yield tag, self.get(tag)

    def value_size(self, tag):
        """Size in bytes of a variable-size value, or ABSENT."""
        entry = self._entry(tag)
        if entry is None:
            return ABSENT
        ptype, hnid = entry
        if is_fixed_type(ptype):
            return fixed_size(ptype)
        return self.heap.hnid_size(hnid)

    def open_stream(self, tag):
        """Iterator over the value's bytes one block at a time, or ABSENT.

        Values stored in a sub-node are read lazily from its data tree.
        """
        entry = self._entry(tag)
        if entry is None:
            return ABSENT
        ptype, hnid = entry
        if is_fixed_type(ptype):
            return iter((self._value_bytes(ptype, hnid),))
        return self.heap.open_hnid(hnid)

    def get_hnid(self, tag):
        """The raw dwValueHnid of a property, or ABSENT."""
        entry = self._entry(tag)
        return ABSENT if entry is None else entry[1]
