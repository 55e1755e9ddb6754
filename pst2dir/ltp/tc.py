"""Table Context (TC) reader.

A TC is a 2D table (rows x columns) stored in a Heap-on-Node.
Used for folder hierarchy, contents, recipients, and attachments.

TCINFO: bType(1) + cCols(1) + rgib[4](2 each) + hidRowIndex(4) +
        hnidRows(4) + hidIndex(4) = 22 bytes, then cCols TCOLDESCs.

Row layout (rgib boundaries):
    [0, rgib[TCI_4b])            4- and 8-byte columns, dwRowID first
    [rgib[TCI_4b], TCI_2b)       2-byte columns
    [rgib[TCI_2b], TCI_1b)       1-byte columns
    [rgib[TCI_1b], TCI_bm)       Cell Existence Bitmap, TCI_bm = row size

The row matrix lives either in a heap item or in a sub-node data tree.
Rows never span blocks.

See [MS-PST] 2.3.4.
"""

import logging
import struct
from dataclasses import dataclass

from ..errors import ABSENT, CorruptBlock
from ..mapi.properties import (
    fixed_size, is_fixed_type, prop_id, prop_type, types_match,
)
from .bth import BTreeOnHeap
from .heap import HN_CLIENT_TC, HeapOnNode, is_hid
from .values import decode_value

logger = logging.getLogger(__name__)

# TCINFO header size and rgib indices
TCINFO_FIXED_SIZE = 22
TCI_4B = 0
TCI_2B = 1
TCI_1B = 2
TCI_BM = 3

# TCOLDESC: tag(4) + ibData(2) + cbData(1) + iBit(1) = 8 bytes
TCOLDESC_SIZE = 8

# Inline cells hold fixed-size values up to this many bytes
MAX_INLINE_CELL = 8


@dataclass(frozen=True)
class Column:
    """TCOLDESC."""

    tag: int
    offset: int
    size: int
    bit: int

    @property
    def prop_type(self):
        return prop_type(self.tag)

    @property
    def inline(self):
        return is_fixed_type(self.prop_type) and fixed_size(self.prop_type) <= MAX_INLINE_CELL


class TableContext:
    """Row-and-column view of a node.

    Column layout is decoded once; rows are sliced out of the row matrix
    with one block held at a time.
    """

    def __init__(self, node, config, encoding=None):
        self.node = node
        self.config = config
        self.encoding = encoding or config.string8_encoding
        self.heap = HeapOnNode(node, config, HN_CLIENT_TC)

        info = self.heap.resolve(self.heap.user_root)
        if len(info) < TCINFO_FIXED_SIZE:
            raise CorruptBlock("TCINFO too short", nid=node.nid)
        (b_type, c_cols, *rgib,
         self.hid_row_index, self.hnid_rows, _hid_index) = struct.unpack_from(
            '<BBHHHHIII', info, 0)
        if b_type != HN_CLIENT_TC:
            raise CorruptBlock(f"Bad TCINFO signature 0x{b_type:02X}", nid=node.nid)
        if TCINFO_FIXED_SIZE + c_cols * TCOLDESC_SIZE > len(info):
            raise CorruptBlock(f"TCINFO with {c_cols} columns overruns its heap item",
                               nid=node.nid)
        if not rgib[TCI_4B] <= rgib[TCI_2B] <= rgib[TCI_1B] <= rgib[TCI_BM]:
            raise CorruptBlock(f"TCINFO has unordered rgib {rgib}", nid=node.nid)

        self.rgib = tuple(rgib)
        self.row_size = rgib[TCI_BM]
        self.ceb_offset = rgib[TCI_1B]
        ceb_size = rgib[TCI_BM] - rgib[TCI_1B]

        self.columns = []
        for i in range(c_cols):
            tag, offset, size, bit = struct.unpack_from(
                '<IHBB', info, TCINFO_FIXED_SIZE + i * TCOLDESC_SIZE)
            if offset + size > self.ceb_offset or bit // 8 >= ceb_size:
                raise CorruptBlock(f"Column 0x{tag:08X} lies outside the row", nid=node.nid)
            self.columns.append(Column(tag, offset, size, bit))
        self._by_id = {}
        for col in self.columns:
            self._by_id.setdefault(prop_id(col.tag), col)

        self._init_rows()
        self._row_index = None
        self._block_no = None
        self._block_data = None
        logger.debug("TC nid=0x%X: %d columns, %d rows, row size %d",
                     node.nid, len(self.columns), self._count, self.row_size)

    def __repr__(self):
        return f"<TableContext nid=0x{self.node.nid:X} rows={self._count}>"

    def _init_rows(self):
        self._tree = None
        self._single = None
        if self.hnid_rows == 0 or self.row_size == 0:
            self._count = 0
            self.rows_per_block = 0
            return
        if is_hid(self.hnid_rows):
            self._single = self.heap.resolve(self.hnid_rows)
            if len(self._single) % self.row_size:
                raise CorruptBlock(
                    f"Row matrix of {len(self._single)} bytes is not a multiple of "
                    f"{self.row_size}", nid=self.node.nid)
            self._count = len(self._single) // self.row_size
            self.rows_per_block = self._count
            return

        self._tree = self.heap.subnode_tree(self.hnid_rows)
        payload = self.node.reader.variant.max_block_payload
        self.rows_per_block = payload // self.row_size
        if self.rows_per_block == 0:
            raise CorruptBlock(f"Row size {self.row_size} exceeds a block", nid=self.node.nid)
        block_bytes = self.rows_per_block * self.row_size
        full, rest = divmod(self._tree.size, block_bytes)
        if rest % self.row_size:
            raise CorruptBlock(
                f"Row matrix of {self._tree.size} bytes does not hold whole rows",
                nid=self.node.nid)
        self._count = full * self.rows_per_block + rest // self.row_size

    def row_count(self) -> int:
        return self._count

    def __len__(self):
        return self._count

    def _row_bytes(self, i):
        if not 0 <= i < self._count:
            raise IndexError(f"Row {i} out of range ({self._count} rows)")
        if self._single is not None:
            start = i * self.row_size
            return self._single[start:start + self.row_size]

        block_no, slot = divmod(i, self.rows_per_block)
        if block_no != self._block_no:
            try:
                data = self._tree.block(block_no)
            except CorruptBlock as e:
                if e.nid is None:
                    e.nid = self.node.nid
                raise
            self._block_no, self._block_data = block_no, data
        start = slot * self.row_size
        row = self._block_data[start:start + self.row_size]
        if len(row) != self.row_size:
            raise CorruptBlock(f"Row {i} truncated in block {block_no}", nid=self.node.nid)
        return row

    def row_id(self, i: int) -> int:
        """dwRowID of row i (the NID of the object the row describes)."""
        return struct.unpack_from('<I', self._row_bytes(i), 0)[0]

    def row_ids(self):
        return [self.row_id(i) for i in range(self._count)]

    def column(self, tag):
        """Column for a full tag or bare prop id, or None."""
        if tag > 0xFFFF:
            col = self._by_id.get(prop_id(tag))
            if col is None or types_match(prop_type(tag), col.prop_type):
                return col
            return None
        return self._by_id.get(tag)

    def _cell(self, row, col):
        if not row[self.ceb_offset + col.bit // 8] & (0x80 >> (col.bit % 8)):
            return ABSENT
        raw = row[col.offset:col.offset + col.size]
        if col.inline:
            data = raw
        else:
            hnid, = struct.unpack('<I', raw[:4].ljust(4, b'\x00'))
            data = self.heap.resolve_hnid(hnid)
        try:
            return decode_value(col.prop_type, data, self.encoding)
        except CorruptBlock as e:
            if e.nid is None:
                e.nid = self.node.nid
            raise

    def get_cell(self, i: int, tag):
        """Decoded cell value, or ABSENT when the column or cell is missing."""
        col = self.column(tag)
        if col is None:
            return ABSENT
        return self._cell(self._row_bytes(i), col)

    def row(self, i: int) -> dict:
        """All present cells of row i as {tag: value}."""
        data = self._row_bytes(i)
        result = {}
        for col in self.columns:
            value = self._cell(data, col)
            if value is not ABSENT:
                result[col.tag] = value
        return result

    def rows(self):
        for i in range(self._count):
            yield self.row(i)

    def find_row(self, row_id: int):
        """Index of the row with dwRowID row_id, or None."""
        if self._row_index is None:
            if not self.hid_row_index:
                self._row_index = {}
            else:
                bth = BTreeOnHeap(self.heap, self.hid_row_index)
                self._row_index = {
                    key: int.from_bytes(data, 'little') for key, data in bth.records()}
        return self._row_index.get(row_id)
