"""Subnode BTree (SL/SI blocks) for PST NDB layer.

Subnodes store child data trees within a parent node.
Used for folder TCs, message recipient/attachment TCs, attachments and
property values too large for the heap.

The subnode BTree is stored in internal blocks, not pages:
    SLBLOCK (cLevel 0): SLENTRY = nid + bidData + bidSub
    SIBLOCK (cLevel 1): SIENTRY = nid + bid (of an SLBLOCK)
See [MS-PST] 2.2.2.8.3.3.
"""

import struct
from dataclasses import dataclass

from ..errors import CorruptBlock, NotFound
from .block import BTYPE_SLBLOCK, bid_key, is_internal


@dataclass(frozen=True)
class SubnodeEntry:
    """SLENTRY."""

    nid: int
    bid_data: int
    bid_sub: int


class SubnodeTable:
    """All sub-node entries of one node, decoded on first use."""

    def __init__(self, reader, bid_sub: int):
        self.reader = reader
        self.bid_sub = bid_sub
        self._entries = None

    def _load(self):
        if self._entries is not None:
            return self._entries
        entries = {}
        if self.bid_sub:
            for entry in self._walk(self.bid_sub, None, frozenset()):
                entries[entry.nid] = entry
        self._entries = entries
        return entries

    def _walk(self, bid, expected_level, path):
        if bid_key(bid) in path:
            raise CorruptBlock("Cyclic sub-node tree", bid=bid)
        if not is_internal(bid):
            raise CorruptBlock("Sub-node tree points to an external block", bid=bid)

        data = self.reader.read(bid)
        v = self.reader.variant
        if len(data) < v.sl_header_size:
            raise CorruptBlock("Sub-node block too short", bid=bid)
        # btype(1) + cLevel(1) + cEnt(2) (+ dwPadding on Unicode)
        btype, level, count = struct.unpack_from('<BBH', data, 0)
        if btype != BTYPE_SLBLOCK or level not in (0, 1):
            raise CorruptBlock(f"Bad SLBLOCK header (btype={btype}, cLevel={level})", bid=bid)
        if expected_level is not None and level != expected_level:
            raise CorruptBlock(f"Sub-node block level {level}, expected {expected_level}",
                               bid=bid)

        idf = v.id_fmt
        entry_size = v.sl_entry_size if level == 0 else v.si_entry_size
        if v.sl_header_size + count * entry_size > len(data):
            raise CorruptBlock(f"Sub-node block with {count} entries overruns the block",
                               bid=bid)

        path = path | {bid_key(bid)}
        fmt = struct.Struct(f'<{idf}{idf}{idf}' if level == 0 else f'<{idf}{idf}')
        for i in range(count):
            fields = fmt.unpack_from(data, v.sl_header_size + i * entry_size)
            if level == 0:
                nid, bid_data, bid_sub = fields
                yield SubnodeEntry(nid & 0xFFFFFFFF, bid_data, bid_sub)
            else:
                _nid, child = fields
                yield from self._walk(child, 0, path)

    def lookup(self, nid: int) -> SubnodeEntry:
        try:
            return self._load()[nid]
        except KeyError:
            raise NotFound('subnode', nid) from None

    def __contains__(self, nid):
        return nid in self._load()

    def __iter__(self):
        return iter(self._load().values())

    def __len__(self):
        return len(self._load())
