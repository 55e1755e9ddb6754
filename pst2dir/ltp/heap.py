"""Heap-on-Node (HN) reader.

HN provides a variable-size allocator within a node's data blocks.
It's the foundation for Property Context and Table Context.

Block 0 starts with HNHDR, later blocks with HNPAGEHDR / HNBITMAPHDR.
All three begin with ibHnpm, the offset of the block's HNPAGEMAP:
    cAlloc(2) + cFree(2) + rgibAlloc[cAlloc + 1](2 each)

See [MS-PST] 2.3.1.
"""

import logging
import struct
from collections import OrderedDict

from ..errors import CorruptBlock, NotFound

logger = logging.getLogger(__name__)

# HN heap signature (always 0xEC for any HN block)
HN_SIG = 0xEC

# HN client signatures (bClientSig)
HN_CLIENT_TC = 0x7C  # Table Context
HN_CLIENT_BTH = 0xB5  # BTree-on-Heap
HN_CLIENT_PC = 0xBC  # Property Context

# HNHDR: 12 bytes (page 0 only)
HNHDR_SIZE = 12

# HNPAGEHDR: 2 bytes (pages after page 0)
HNPAGEHDR_SIZE = 2


def make_hid(block_index, index):
    """Create a Heap ID (HID).

    HID layout (32-bit):
    - bits 0-4: hidType (always 0 for HN allocations)
    - bits 5-15: hidIndex (1-based allocation index within the page)
    - bits 16-31: hidBlockIndex (0-based data block index)
    """
    return ((block_index & 0xFFFF) << 16) | ((index & 0x7FF) << 5)


def hid_index(hid):
    return (hid >> 5) & 0x7FF


def hid_block_index(hid):
    return (hid >> 16) & 0xFFFF


def is_hid(hnid):
    """An HNID is a HID when its low 5 bits (hidType / nidType) are zero."""
    return hnid & 0x1F == 0


class _HeapBlock:
    __slots__ = ('data', 'offsets', 'ib_hnpm')

    def __init__(self, data, offsets, ib_hnpm):
        self.data = data
        self.offsets = offsets
        self.ib_hnpm = ib_hnpm


class HeapOnNode:
    """Resolves HIDs and HNIDs against one node.

    Usage:
        hn = HeapOnNode(node, config, HN_CLIENT_PC)
        root = hn.resolve(hn.user_root)
    """

    def __init__(self, node, config, client_sig=None):
        self.node = node
        self.config = config
        self._cache = OrderedDict()

        data = self._fetch(0)
        if len(data) < HNHDR_SIZE:
            raise CorruptBlock("Heap block 0 shorter than HNHDR", nid=node.nid)
        # HNHDR: ibHnpm(2) + bSig(1) + bClientSig(1) + hidUserRoot(4) + rgbFillLevel(4)
        _, sig, self.client_sig, self.user_root, _ = struct.unpack_from('<HBBII', data, 0)
        if sig != HN_SIG:
            raise CorruptBlock(f"Bad heap signature 0x{sig:02X}", nid=node.nid)
        if client_sig is not None and self.client_sig != client_sig:
            raise CorruptBlock(
                f"Heap client signature 0x{self.client_sig:02X}, expected 0x{client_sig:02X}",
                nid=node.nid)
        logger.debug("Heap nid=0x%X: client signature 0x%02X", node.nid, self.client_sig)

    @property
    def block_count(self):
        return self.node.data.block_count

    def _fetch(self, block_index):
        try:
            return self.node.data.block(block_index)
        except CorruptBlock as e:
            if e.nid is None:
                e.nid = self.node.nid
            raise

    def _block(self, block_index) -> _HeapBlock:
        block = self._cache.get(block_index)
        if block is not None:
            self._cache.move_to_end(block_index)
            return block

        data = self._fetch(block_index)
        header_size = HNHDR_SIZE if block_index == 0 else HNPAGEHDR_SIZE
        if len(data) < header_size + 4:
            raise CorruptBlock(f"Heap block {block_index} too short", nid=self.node.nid)
        ib_hnpm, = struct.unpack_from('<H', data, 0)
        if ib_hnpm + 4 > len(data):
            raise CorruptBlock(f"Heap page map offset 0x{ib_hnpm:X} outside block {block_index}",
                               nid=self.node.nid)
        c_alloc, _c_free = struct.unpack_from('<HH', data, ib_hnpm)
        end = ib_hnpm + 4 + (c_alloc + 1) * 2
        if end > len(data):
            raise CorruptBlock(f"Heap page map of block {block_index} overruns the block",
                               nid=self.node.nid)
        offsets = struct.unpack_from(f'<{c_alloc + 1}H', data, ib_hnpm + 4)

        block = _HeapBlock(data, offsets, ib_hnpm)
        self._cache[block_index] = block
        if len(self._cache) > self.config.heap_block_cache_size:
            self._cache.popitem(last=False)
        return block

    def resolve(self, hid: int) -> bytes:
        """Return the bytes of heap item hid.

        Raises:
            CorruptBlock: null HID, non-HID, or an index outside the block
                or its allocation table.
        """
        if not is_hid(hid):
            raise CorruptBlock(f"0x{hid:X} is not a heap ID", nid=self.node.nid)
        index = hid_index(hid)
        block_index = hid_block_index(hid)
        if index == 0:
            raise CorruptBlock(f"Null heap ID 0x{hid:X}", nid=self.node.nid)
        if block_index >= self.block_count:
            raise CorruptBlock(
                f"Heap ID 0x{hid:X} refers to block {block_index} of {self.block_count}",
                nid=self.node.nid)

        block = self._block(block_index)
        if index >= len(block.offsets):
            raise CorruptBlock(
                f"Heap ID 0x{hid:X} past the end of the item directory "
                f"({len(block.offsets) - 1} items)", nid=self.node.nid)
        start, end = block.offsets[index - 1], block.offsets[index]
        if start > end or end > block.ib_hnpm:
            raise CorruptBlock(f"Heap item 0x{hid:X} has bad bounds {start}..{end}",
                               nid=self.node.nid)
        return block.data[start:end]

    def _subnode(self, nid):
        try:
            return self.node.get_subnode(nid)
        except NotFound:
            raise CorruptBlock(f"Sub-node 0x{nid:X} missing", nid=self.node.nid) from None

    def resolve_hnid(self, hnid: int) -> bytes:
        """Return the bytes behind an HNID (heap item or sub-node data).

        HNID 0 is the empty value.
        """
        if hnid == 0:
            return b''
        if is_hid(hnid):
            return self.resolve(hnid)
        return self._subnode(hnid).data.read_all()

    def open_hnid(self, hnid: int):
        """Iterate over the bytes behind an HNID one block at a time."""
        if hnid == 0:
            return iter(())
        if is_hid(hnid):
            return iter((self.resolve(hnid),))
        return self._subnode(hnid).data.blocks()

    def hnid_size(self, hnid: int) -> int:
        if hnid == 0:
            return 0
        if is_hid(hnid):
            return len(self.resolve(hnid))
        return self._subnode(hnid).data.size

    def subnode_tree(self, hnid: int):
        """DataTree of a sub-node HNID."""
        return self._subnode(hnid).data
