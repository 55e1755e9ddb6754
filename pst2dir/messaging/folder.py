"""Folder objects for PST Messaging layer.

Each folder has 4 nodes:
- Folder PC (nid): Property Context with folder properties
- Hierarchy TC (nid | 0x0D): Table Context listing subfolders
- Contents TC (nid | 0x0E): Table Context listing messages
- Associated Contents TC (nid | 0x0F): Table Context for FAI messages

Search folders have no hierarchy table and list their results in a
search contents table (nid | 0x10).

See [MS-PST] 2.4.4.
"""

import logging

from ..errors import ABSENT, CorruptBlock
from ..ltp.pc import PropertyContext
from ..ltp.tc import TableContext
from ..mapi.properties import (
    FOLDER_NID_TYPES, NID_TYPE_ASSOC_CONTENTS_TABLE, NID_TYPE_CONTENTS_TABLE,
    NID_TYPE_HIERARCHY_TABLE, NID_TYPE_SEARCH_CONTENTS_TABLE, NID_TYPE_SEARCH_FOLDER,
    PR_CONTAINER_CLASS, PR_CONTENT_COUNT, PR_CONTENT_UNREAD_COUNT, PR_DISPLAY_NAME,
    PR_SUBFOLDERS, nid_type, table_nid,
)

logger = logging.getLogger(__name__)


class Folder:
    """Read-only view of one folder.

    Folders are created by the Archive and cached for its lifetime. The
    content cursor used by get_next_child() belongs to this instance.
    """

    def __init__(self, archive, node):
        self.archive = archive
        self.node = node
        self.nid = node.nid
        self.pc = PropertyContext(node, archive.config)
        self._hierarchy = None
        self._contents = None
        self._assoc = None
        self._cursor = 0

    def __repr__(self):
        return f"<Folder nid=0x{self.nid:X} {self.display_name!r}>"

    def _get(self, tag, default=None):
        value = self.pc.get(tag)
        return default if value is ABSENT else value

    @property
    def is_search_folder(self):
        return nid_type(self.nid) == NID_TYPE_SEARCH_FOLDER

    @property
    def display_name(self):
        return self._get(PR_DISPLAY_NAME, '')

    @property
    def container_class(self):
        return self._get(PR_CONTAINER_CLASS)

    @property
    def has_subfolders(self):
        value = self.pc.get(PR_SUBFOLDERS)
        if value is ABSENT:
            tc = self._hierarchy_table()
            return tc is not None and tc.row_count() > 0
        return value

    @property
    def content_count(self):
        """PR_CONTENT_COUNT, or the contents table size when absent."""
        value = self.pc.get(PR_CONTENT_COUNT)
        if value is ABSENT:
            return self._contents_table().row_count()
        return value

    @property
    def unread_count(self):
        return self._get(PR_CONTENT_UNREAD_COUNT, 0)

    @property
    def parent_nid(self):
        return self.node.nid_parent

    def get_property(self, tag):
        return self.pc.get(tag)

    # --- tables ---

    def _table(self, table_type):
        node = self.archive.ndb.require_node(table_nid(self.nid, table_type))
        return TableContext(node, self.archive.config)

    def _hierarchy_table(self):
        if self.is_search_folder:
            return None
        if self._hierarchy is None:
            self._hierarchy = self._table(NID_TYPE_HIERARCHY_TABLE)
        return self._hierarchy

    def _contents_table(self):
        if self._contents is None:
            kind = (NID_TYPE_SEARCH_CONTENTS_TABLE if self.is_search_folder
                    else NID_TYPE_CONTENTS_TABLE)
            self._contents = self._table(kind)
        return self._contents

    def associated_contents_table(self):
        """The folder-associated information (FAI) table."""
        if self._assoc is None:
            self._assoc = self._table(NID_TYPE_ASSOC_CONTENTS_TABLE)
        return self._assoc

    def contents_table(self):
        return self._contents_table()

    # --- traversal ---

    def get_sub_folders(self):
        """Child folders in hierarchy table row order."""
        tc = self._hierarchy_table()
        if tc is None:
            return []
        logger.debug("Folder 0x%X: %d subfolders", self.nid, tc.row_count())
        return [self.archive.open_folder(nid) for nid in tc.row_ids()]

    def _child(self, nid):
        if nid_type(nid) in FOLDER_NID_TYPES:
            return self.archive.open_folder(nid)
        return self.archive.open_message(nid)

    def get_next_child(self):
        """Next Message (or nested Folder) from the contents table.

        Returns None on every call once the table is exhausted. The cursor
        advances before the child is decoded, so a corrupt child raises
        once and the next call moves on.
        """
        tc = self._contents_table()
        if self._cursor >= tc.row_count():
            return None
        i = self._cursor
        self._cursor += 1
        return self._child(tc.row_id(i))

    def reset_cursor(self):
        self._cursor = 0

    def iter_children(self):
        """Yield every content child without touching the cursor."""
        tc = self._contents_table()
        for i in range(tc.row_count()):
            yield self._child(tc.row_id(i))

    def walk(self, _seen=None):
        """Yield this folder and every folder below it, depth first."""
        seen = set() if _seen is None else _seen
        if self.nid in seen:
            raise CorruptBlock("Folder hierarchy revisits a folder", nid=self.nid)
        seen.add(self.nid)
        yield self
        for sub in self.get_sub_folders():
            yield from sub.walk(seen)
