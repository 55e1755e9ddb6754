"""Uniform view of NDB nodes.

A Node is a data tree plus an optional sub-node table, whether it comes
from the NBT or from a parent's sub-node table. Nodes hold IDs only; block
contents are fetched through the BlockReader when needed.
"""

from ..errors import CorruptBlock, NotFound
from .block import BlockReader, Source
from .btree import NodeIndex
from .subnode import SubnodeTable


class Node:
    """A node's data tree and sub-nodes."""

    def __init__(self, reader: BlockReader, nid: int, bid_data: int, bid_sub: int,
                 nid_parent: int = 0):
        self.reader = reader
        self.nid = nid
        self.bid_data = bid_data
        self.bid_sub = bid_sub
        self.nid_parent = nid_parent
        self._data = None
        self._subnodes = None

    def __repr__(self):
        return f"<Node nid=0x{self.nid:X} data=0x{self.bid_data:X} sub=0x{self.bid_sub:X}>"

    @property
    def nid_type(self):
        return self.nid & 0x1F

    @property
    def data(self):
        """DataTree with the node's data."""
        if self._data is None:
            try:
                self._data = self.reader.data_tree(self.bid_data)
            except CorruptBlock as e:
                if e.nid is None:
                    e.nid = self.nid
                raise
        return self._data

    @property
    def subnodes(self) -> SubnodeTable:
        if self._subnodes is None:
            self._subnodes = SubnodeTable(self.reader, self.bid_sub)
        return self._subnodes

    def has_subnode(self, nid: int) -> bool:
        return nid in self.subnodes

    def get_subnode(self, nid: int) -> 'Node':
        """Child node from the sub-node table. Raises NotFound."""
        entry = self.subnodes.lookup(nid)
        return Node(self.reader, entry.nid, entry.bid_data, entry.bid_sub, self.nid)


class NodeDatabase:
    """The NDB layer of one archive: source, B-trees and block reader."""

    def __init__(self, buffer, header, config):
        self.header = header
        self.config = config
        self.source = Source(buffer)
        self.index = NodeIndex(self.source, header, config)
        self.blocks = BlockReader(self.source, header, self.index, config)

    def get_node(self, nid: int) -> Node:
        """Node from the NBT. Raises NotFound."""
        desc = self.index.lookup(nid)
        return Node(self.blocks, desc.nid, desc.bid_data, desc.bid_sub, desc.nid_parent)

    def require_node(self, nid: int) -> Node:
        """Node that must exist. A missing entry is corruption, not absence."""
        try:
            return self.get_node(nid)
        except NotFound:
            raise CorruptBlock("Referenced node missing from NBT", nid=nid) from None

    def iter_nodes(self):
        return self.index.iter_nodes()
