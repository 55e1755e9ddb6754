"""BTree-on-Heap (BTH) reader.

BTH stores sorted key-value pairs inside a Heap-on-Node.
Used by Property Context for property storage and by Table Context for
the row index.

See [MS-PST] 2.3.2.
"""

import struct
from bisect import bisect_right

from ..errors import CorruptBlock
from .heap import HN_CLIENT_BTH

# BTHHEADER: bType(1) + cbKey(1) + cbEnt(1) + bIdxLevels(1) + hidRoot(4) = 8 bytes
BTH_HEADER_SIZE = 8


class BTreeOnHeap:
    """Sorted (key, data) records stored on a heap.

    Keys are returned as little-endian integers, data as raw bytes.
    """

    def __init__(self, heap, hid):
        self.heap = heap
        header = heap.resolve(hid)
        if len(header) < BTH_HEADER_SIZE:
            raise CorruptBlock("BTH header too short", nid=heap.node.nid)
        (b_type, self.key_size, self.data_size,
         self.levels, self.root) = struct.unpack_from('<BBBBI', header, 0)
        if b_type != HN_CLIENT_BTH:
            raise CorruptBlock(f"Bad BTH signature 0x{b_type:02X}", nid=heap.node.nid)
        if self.key_size not in (2, 4, 8, 16) or self.data_size == 0:
            raise CorruptBlock(f"Bad BTH layout (cbKey={self.key_size}, cbEnt={self.data_size})",
                               nid=heap.node.nid)

    def _split(self, hid, level):
        """Decode one BTH node into parallel key / value lists."""
        data = self.heap.resolve(hid)
        ks = self.key_size
        rs = ks + (self.data_size if level == 0 else 4)
        if len(data) % rs:
            raise CorruptBlock(f"BTH node of {len(data)} bytes is not a multiple of {rs}",
                               nid=self.heap.node.nid)
        keys = []
        values = []
        for off in range(0, len(data), rs):
            keys.append(int.from_bytes(data[off:off + ks], 'little'))
            if level == 0:
                values.append(data[off + ks:off + rs])
            else:
                values.append(struct.unpack_from('<I', data, off + ks)[0])
        return keys, values

    def records(self):
        """Yield (key, data) for every leaf record in key order."""
        if self.root == 0:
            return
        yield from self._walk(self.root, self.levels)

    def _walk(self, hid, level):
        keys, values = self._split(hid, level)
        if level == 0:
            yield from zip(keys, values)
            return
        for child in values:
            yield from self._walk(child, level - 1)

    def find(self, key: int):
        """Data for key, or None."""
        if self.root == 0:
            return None
        hid = self.root
        for level in range(self.levels, 0, -1):
            keys, values = self._split(hid, level)
            i = bisect_right(keys, key) - 1
            if i < 0:
                return None
            hid = values[i]
        keys, values = self._split(hid, 0)
        i = bisect_right(keys, key) - 1
        if i >= 0 and keys[i] == key:
            return values[i]
        return None
