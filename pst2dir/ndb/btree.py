"""B-tree page structures for PST NDB layer.

The NDB uses two B-trees:
- NBT (Node B-Tree): maps NID -> (bidData, bidSub, nidParent)
- BBT (Block B-Tree): maps BID -> (ib, cb, cRef)

Each page is 512 bytes (4096 on the 4k variant). Pages are read on demand
and kept in a bounded LRU cache. See [MS-PST] 2.2.2.7.
"""

import logging
import struct
from bisect import bisect_left, bisect_right
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from ..crc import compute_crc
from ..errors import CorruptBlock, NotFound
from .header import BlockRef

logger = logging.getLogger(__name__)

# Page types
PTYPE_BBT = 0x80
PTYPE_NBT = 0x81
PTYPE_FMAP = 0x82
PTYPE_PMAP = 0x83
PTYPE_AMAP = 0x84
PTYPE_FPMAP = 0x85
PTYPE_DLIST = 0x86

PTYPE_NAMES = {PTYPE_BBT: 'BBT', PTYPE_NBT: 'NBT'}

NID_MASK = 0xFFFFFFFF


@dataclass(frozen=True)
class BlockRecord:
    """BBTENTRY: where a block lives and how big it is."""

    bid: int
    ib: int
    cb: int
    ref_count: int
    cb_inflated: Optional[int] = None

    @property
    def is_internal(self):
        return bool(self.bid & 0x02)


@dataclass(frozen=True)
class NodeDescriptor:
    """NBTENTRY: a node's data and sub-node blocks."""

    nid: int
    bid_data: int
    bid_sub: int
    nid_parent: int

    @property
    def nid_type(self):
        return self.nid & 0x1F

    @property
    def nid_index(self):
        return self.nid >> 5


class _Page:
    """One decoded B-tree page: sorted keys plus parallel values."""

    __slots__ = ('ref', 'level', 'keys', 'values')

    def __init__(self, ref, level, keys, values):
        self.ref = ref
        self.level = level
        self.keys = keys
        self.values = values


class BTree:
    """On-demand reader for one NBT or BBT.

    Branch values are BlockRef child pointers, leaf values are
    NodeDescriptor (NBT) or BlockRecord (BBT).
    """

    def __init__(self, source, variant, root: BlockRef, ptype: int, config):
        self.source = source
        self.variant = variant
        self.root = root
        self.ptype = ptype
        self.config = config
        self.name = PTYPE_NAMES.get(ptype, hex(ptype))
        self._cache = OrderedDict()

        v = variant
        idf = v.id_fmt
        if v.is_ansi:
            # ptype(1) + ptypeRepeat(1) + wSig(2) + bid(4) + dwCRC(4)
            self._trailer_fmt = '<BBHII'
        else:
            # ptype(1) + ptypeRepeat(1) + wSig(2) + dwCRC(4) + bid(8)
            self._trailer_fmt = '<BBHIQ'
        # btkey + BREF
        self._branch = struct.Struct(f'<{idf}{idf}{idf}')
        if ptype == PTYPE_NBT:
            # nid + bidData + bidSub + nidParent (+ dwPadding)
            self._leaf = struct.Struct('<IIII' if v.is_ansi else '<QQQI4x')
            self._leaf_size = v.nbt_entry_size
        elif v.page_size > 512:
            # BREF + cb + cbInflated + cRef + padding
            self._leaf = struct.Struct('<QQHHH2x')
            self._leaf_size = v.bbt_entry_size
        else:
            # BREF + cb + cRef (+ dwPadding)
            self._leaf = struct.Struct('<IIHH' if v.is_ansi else '<QQHH4x')
            self._leaf_size = v.bbt_entry_size

    def _read_page(self, ref: BlockRef) -> _Page:
        page = self._cache.get(ref.ib)
        if page is not None:
            self._cache.move_to_end(ref.ib)
            return page

        page = self._parse_page(ref, self.source.read(ref.ib, self.variant.page_size))
        logger.debug("Loaded %s page at 0x%X: level %d, %d entries",
                     self.name, ref.ib, page.level, len(page.keys))
        self._cache[ref.ib] = page
        if len(self._cache) > self.config.page_cache_size:
            self._cache.popitem(last=False)
        return page

    def _parse_page(self, ref, data) -> _Page:
        v = self.variant
        t = v.page_trailer_offset
        if v.is_ansi:
            ptype, ptype_repeat, _sig, bid, crc = struct.unpack_from(self._trailer_fmt, data, t)
        else:
            ptype, ptype_repeat, _sig, crc, bid = struct.unpack_from(self._trailer_fmt, data, t)

        if ptype != ptype_repeat:
            raise CorruptBlock(f"{self.name} page type 0x{ptype:02X} != repeat 0x{ptype_repeat:02X}",
                               bid=ref.bid)
        if ptype != self.ptype:
            raise CorruptBlock(f"Expected {self.name} page, found type 0x{ptype:02X}",
                               bid=ref.bid)
        if self.config.verify_crc:
            actual = compute_crc(data[:t])
            if actual != crc:
                raise CorruptBlock(
                    f"{self.name} page checksum mismatch (stored 0x{crc:08X}, "
                    f"computed 0x{actual:08X})", bid=ref.bid)
        if (bid & ~1) != (ref.bid & ~1):
            raise CorruptBlock(f"{self.name} page trailer BID 0x{bid:X} does not match",
                               bid=ref.bid)

        count, _count_max, entry_size, level = struct.unpack_from(
            v.page_meta_fmt, data, v.page_meta_offset)
        expected = self._branch.size if level else self._leaf_size
        if entry_size < expected or count * entry_size > v.page_meta_offset:
            raise CorruptBlock(
                f"{self.name} page has bad entry layout (cEnt={count}, cbEnt={entry_size}, "
                f"cLevel={level})", bid=ref.bid)

        keys = []
        values = []
        for i in range(count):
            off = i * entry_size
            if level:
                key, child_bid, child_ib = self._branch.unpack_from(data, off)
                values.append(BlockRef(child_bid, child_ib))
            else:
                fields = self._leaf.unpack_from(data, off)
                key = fields[0]
                values.append(self._make_record(fields))
            keys.append(self._key(key))

        if any(keys[i] > keys[i + 1] for i in range(len(keys) - 1)):
            raise CorruptBlock(f"{self.name} page keys out of order", bid=ref.bid)
        return _Page(ref, level, keys, values)

    def _key(self, key):
        if self.ptype == PTYPE_NBT:
            return key & NID_MASK
        return key & ~1

    def _make_record(self, fields):
        if self.ptype == PTYPE_NBT:
            nid, bid_data, bid_sub, nid_parent = fields
            return NodeDescriptor(nid & NID_MASK, bid_data, bid_sub, nid_parent)
        if len(fields) == 5:
            bid, ib, cb, cb_inflated, ref_count = fields
            return BlockRecord(bid, ib, cb, ref_count, cb_inflated)
        bid, ib, cb, ref_count = fields
        return BlockRecord(bid, ib, cb, ref_count)

    def _check_child(self, parent: _Page, child: _Page, visited, depth):
        if child.ref.ib in visited:
            raise CorruptBlock(f"{self.name} page revisited", bid=child.ref.bid)
        if child.level != parent.level - 1:
            raise CorruptBlock(
                f"{self.name} page level {child.level} under level {parent.level}",
                bid=child.ref.bid)
        if depth > self.config.max_btree_depth:
            raise CorruptBlock(f"{self.name} deeper than {self.config.max_btree_depth}",
                               bid=child.ref.bid)

    def find(self, key: int):
        """Return the leaf record for key, or raise NotFound."""
        key = self._key(key)
        page = self._read_page(self.root)
        visited = {page.ref.ib}
        depth = 0
        while page.level:
            i = bisect_right(page.keys, key) - 1
            if i < 0:
                raise NotFound('node' if self.ptype == PTYPE_NBT else 'block', key)
            child = self._read_page(page.values[i])
            depth += 1
            self._check_child(page, child, visited, depth)
            visited.add(child.ref.ib)
            page = child

        i = bisect_left(page.keys, key)
        if i < len(page.keys) and page.keys[i] == key:
            return page.values[i]
        raise NotFound('node' if self.ptype == PTYPE_NBT else 'block', key)

    def __iter__(self):
        """Yield every leaf record in key order."""
        root = self._read_page(self.root)
        yield from self._iter_page(root, {root.ref.ib}, 0)

    def _iter_page(self, page, visited, depth):
        if not page.level:
            yield from page.values
            return
        for ref in page.values:
            child = self._read_page(ref)
            self._check_child(page, child, visited, depth + 1)
            visited.add(child.ref.ib)
            yield from self._iter_page(child, visited, depth + 1)


class NodeIndex:
    """Both NDB B-trees of an archive."""

    def __init__(self, source, header, config):
        self.nbt = BTree(source, header.variant, header.nbt_root, PTYPE_NBT, config)
        self.bbt = BTree(source, header.variant, header.bbt_root, PTYPE_BBT, config)

    def lookup(self, nid: int) -> NodeDescriptor:
        return self.nbt.find(nid)

    def lookup_block(self, bid: int) -> BlockRecord:
        return self.bbt.find(bid)

    def iter_nodes(self):
        return iter(self.nbt)

    def iter_blocks(self):
        return iter(self.bbt)
