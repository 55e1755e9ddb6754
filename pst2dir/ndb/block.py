"""Data block structures for PST NDB layer.

Blocks are the fundamental data storage units. Each block is aligned
(64 bytes, 512 for the 4k variant) and ends with a BLOCKTRAILER:
    ANSI:    cb(2) + wSig(2) + bid(4) + dwCRC(4)  = 12 bytes
    Unicode: cb(2) + wSig(2) + dwCRC(4) + bid(8)  = 16 bytes

External blocks hold node data (possibly encoded). Internal blocks
(BID bit 1 set) hold XBLOCK / XXBLOCK / SLBLOCK / SIBLOCK tables and are
never encoded.

See [MS-PST] 2.2.2.8.
"""

import logging
import struct
import zlib

from ..crc import compute_crc
from ..errors import CorruptBlock, NotFound
from .crypt import decode_block

logger = logging.getLogger(__name__)

# BID flag bits
BID_RESERVED = 0x01
BID_INTERNAL = 0x02

# Internal block types
BTYPE_XBLOCK = 0x01  # XBLOCK (cLevel 1) and XXBLOCK (cLevel 2)
BTYPE_SLBLOCK = 0x02  # SLBLOCK (cLevel 0) and SIBLOCK (cLevel 1)

# XBLOCK header: btype(1) + cLevel(1) + cEnt(2) + lcbTotal(4)
XBLOCK_HEADER_SIZE = 8


def is_internal(bid: int) -> bool:
    """True for BIDs of internal (pointer table) blocks."""
    return bool(bid & BID_INTERNAL)


def bid_key(bid: int) -> int:
    """BID with the reserved bit cleared, as used for BBT lookups."""
    return bid & ~BID_RESERVED


class Source:
    """Random-access, read-only view of the archive bytes.

    Wraps an mmap or a bytes object. Every read is a positioned slice;
    there is no shared cursor.
    """

    def __init__(self, buffer):
        self._buffer = buffer
        self.size = len(buffer)

    def read(self, offset: int, size: int) -> bytes:
        if offset < 0 or size < 0 or offset + size > self.size:
            raise CorruptBlock(
                f"Read of {size} bytes at 0x{offset:X} past end of file (0x{self.size:X})")
        return bytes(self._buffer[offset:offset + size])


class BlockReader:
    """Resolves BIDs to validated, decoded block payloads."""

    def __init__(self, source, header, index, config):
        self.source = source
        self.header = header
        self.variant = header.variant
        self.index = index
        self.config = config
        if self.variant.is_ansi:
            # cb(2) + wSig(2) + bid(4) + dwCRC(4)
            self._trailer_fmt = '<HHII'
        else:
            # cb(2) + wSig(2) + dwCRC(4) + bid(8)
            self._trailer_fmt = '<HHIQ'

    def record(self, bid: int):
        """BBT record for bid. A referenced BID without one is corrupt."""
        try:
            return self.index.lookup_block(bid_key(bid))
        except NotFound:
            raise CorruptBlock("Block not found in BBT", bid=bid) from None

    def read_stored(self, bid: int) -> bytes:
        """Block bytes exactly as stored, after trailer and CRC checks."""
        rec = self.record(bid)
        ts = self.variant.block_trailer_size
        total = self.variant.block_total_size(rec.cb)
        raw = self.source.read(rec.ib, total)

        if self.variant.is_ansi:
            cb, _sig, trailer_bid, crc = struct.unpack_from(self._trailer_fmt, raw, total - ts)
        else:
            cb, _sig, crc, trailer_bid = struct.unpack_from(self._trailer_fmt, raw, total - ts)

        if cb != rec.cb:
            raise CorruptBlock(f"Block trailer size {cb} does not match BBT size {rec.cb}",
                               bid=bid)
        if bid_key(trailer_bid) != bid_key(bid):
            raise CorruptBlock(f"Block trailer BID 0x{trailer_bid:X} does not match", bid=bid)

        data = raw[:cb]
        if self.config.verify_crc:
            actual = compute_crc(data)
            if actual != crc:
                raise CorruptBlock(
                    f"Block checksum mismatch (stored 0x{crc:08X}, computed 0x{actual:08X})",
                    bid=bid)
        return data

    def read(self, bid: int) -> bytes:
        """Return the block's decoded content.

        External blocks are decoded with the archive crypt method and, on
        the 4k variant, inflated when the BBT records a larger size.
        """
        data = self.read_stored(bid)
        if is_internal(bid):
            return data
        data = decode_block(data, self.header.crypt_method)
        rec = self.record(bid)
        if rec.cb_inflated and rec.cb_inflated > rec.cb:
            logger.debug("Inflating block 0x%X: %d -> %d bytes", bid, rec.cb, rec.cb_inflated)
            try:
                data = zlib.decompress(data)
            except zlib.error as e:
                raise CorruptBlock(f"Cannot inflate block: {e}", bid=bid) from None
            if len(data) != rec.cb_inflated:
                raise CorruptBlock(
                    f"Inflated block is {len(data)} bytes, expected {rec.cb_inflated}",
                    bid=bid)
        return data

    def data_tree(self, bid: int):
        """Return the DataTree rooted at bid."""
        return DataTree(self, bid)


class DataTree:
    """A node's data: one external block or an XBLOCK / XXBLOCK tree.

    Leaf BIDs are collected once (pointer tables are small); leaf payloads
    are read on demand, one block at a time.
    """

    def __init__(self, reader: BlockReader, bid: int):
        self.reader = reader
        self.bid = bid
        self._leaf_bids = None
        self._first = None  # decoded payload of a single external block

        if bid == 0:
            self.size = 0
            self._leaf_bids = []
        elif not is_internal(bid):
            self._first = reader.read(bid)
            self.size = len(self._first)
            self._leaf_bids = [bid]
        else:
            level, _, total, _ = self._parse_xblock(bid, reader.read(bid))
            if level > reader.config.max_data_tree_depth:
                raise CorruptBlock(f"Data tree depth {level} exceeds limit", bid=bid)
            self.size = total

    def _parse_xblock(self, bid, data):
        """Decode an XBLOCK / XXBLOCK header and its BID array."""
        if len(data) < XBLOCK_HEADER_SIZE:
            raise CorruptBlock("Internal block too short", bid=bid)
        btype, level, count, total = struct.unpack_from('<BBHI', data, 0)
        if btype != BTYPE_XBLOCK or level not in (1, 2):
            raise CorruptBlock(f"Bad XBLOCK header (btype={btype}, cLevel={level})", bid=bid)
        id_size = self.reader.variant.id_size
        if XBLOCK_HEADER_SIZE + count * id_size > len(data):
            raise CorruptBlock(f"XBLOCK with {count} entries overruns the block", bid=bid)
        fmt = f'<{count}{self.reader.variant.id_fmt}'
        children = struct.unpack_from(fmt, data, XBLOCK_HEADER_SIZE)
        return level, count, total, children

    def _walk(self, bid, expected_level, path):
        if bid_key(bid) in path:
            raise CorruptBlock("Cyclic data tree", bid=bid)
        if len(path) > self.reader.config.max_data_tree_depth:
            raise CorruptBlock("Data tree too deep", bid=bid)
        level, _, _, children = self._parse_xblock(bid, self.reader.read(bid))
        if expected_level is not None and level != expected_level:
            raise CorruptBlock(f"XBLOCK level {level}, expected {expected_level}", bid=bid)
        path = path | {bid_key(bid)}
        for child in children:
            if level == 1:
                if is_internal(child):
                    raise CorruptBlock("XBLOCK points to an internal block", bid=child)
                yield child
            else:
                if not is_internal(child):
                    raise CorruptBlock("XXBLOCK points to an external block", bid=child)
                yield from self._walk(child, level - 1, path)

    def leaf_bids(self) -> list:
        """BIDs of the external blocks in data order."""
        if self._leaf_bids is None:
            self._leaf_bids = list(self._walk(self.bid, None, frozenset()))
            logger.debug("Data tree 0x%X: %d leaf blocks, %d bytes",
                         self.bid, len(self._leaf_bids), self.size)
        return self._leaf_bids

    @property
    def block_count(self) -> int:
        return len(self.leaf_bids())

    def block(self, i: int) -> bytes:
        """Decoded payload of the i-th leaf block."""
        bids = self.leaf_bids()
        if not 0 <= i < len(bids):
            raise CorruptBlock(f"Block index {i} out of range ({len(bids)} blocks)",
                               bid=self.bid)
        if i == 0 and self._first is not None:
            return self._first
        return self.reader.read(bids[i])

    def blocks(self):
        """Yield leaf payloads lazily, in order."""
        for i in range(self.block_count):
            yield self.block(i)

    def read_all(self) -> bytes:
        """Concatenate every leaf block and check the recorded total size."""
        data = b''.join(self.blocks())
        if len(data) != self.size:
            raise CorruptBlock(f"Data tree holds {len(data)} bytes, expected {self.size}",
                               bid=self.bid)
        return data

    def __len__(self):
        return self.size
