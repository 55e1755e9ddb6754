"""MAPI property tags, types, and constants for PST files."""

# --- Property Types (low 2 bytes of property tag) ---
PT_UNSPECIFIED = 0x0000
PT_NULL = 0x0001
PT_SHORT = 0x0002  # 16-bit integer
PT_LONG = 0x0003  # 32-bit integer
PT_FLOAT = 0x0004  # 4-byte float
PT_DOUBLE = 0x0005  # 8-byte float
PT_CURRENCY = 0x0006  # 64-bit integer, 4 implied decimals
PT_APPTIME = 0x0007  # OLE automation date (double)
PT_ERROR = 0x000A  # 32-bit SCODE
PT_BOOLEAN = 0x000B  # 8-bit boolean (in 4-byte PC slot)
PT_OBJECT = 0x000D  # nid(4) + size(4), data in a sub-node
PT_LONG_LONG = 0x0014  # 64-bit integer
PT_STRING8 = 0x001E  # 8-bit string (null-terminated)
PT_UNICODE = 0x001F  # UTF-16LE string (null-terminated)
PT_SYSTIME = 0x0040  # FILETIME (8 bytes)
PT_GUID = 0x0048  # 16-byte GUID
PT_SVREID = 0x00FB  # server entry ID, binary
PT_SRESTRICT = 0x00FD  # restriction, binary
PT_ACTIONS = 0x00FE  # rule actions, binary
PT_BINARY = 0x0102  # Binary blob

MV_FLAG = 0x1000
PT_MV_SHORT = MV_FLAG | PT_SHORT
PT_MV_LONG = MV_FLAG | PT_LONG
PT_MV_FLOAT = MV_FLAG | PT_FLOAT
PT_MV_DOUBLE = MV_FLAG | PT_DOUBLE
PT_MV_CURRENCY = MV_FLAG | PT_CURRENCY
PT_MV_APPTIME = MV_FLAG | PT_APPTIME
PT_MV_LONG_LONG = MV_FLAG | PT_LONG_LONG
PT_MV_STRING8 = MV_FLAG | PT_STRING8
PT_MV_UNICODE = MV_FLAG | PT_UNICODE  # Multi-valued Unicode string
PT_MV_SYSTIME = MV_FLAG | PT_SYSTIME
PT_MV_GUID = MV_FLAG | PT_GUID
PT_MV_BINARY = MV_FLAG | PT_BINARY  # Multi-valued binary

# Fixed-size property data lengths
PROP_TYPE_SIZES = {
    PT_SHORT: 2,
    PT_LONG: 4,
    PT_FLOAT: 4,
    PT_DOUBLE: 8,
    PT_CURRENCY: 8,
    PT_APPTIME: 8,
    PT_ERROR: 4,
    PT_BOOLEAN: 1,
    PT_LONG_LONG: 8,
    PT_SYSTIME: 8,
    PT_GUID: 16,
}

VARIABLE_TYPES = frozenset((
    PT_STRING8, PT_UNICODE, PT_BINARY, PT_OBJECT,
    PT_SVREID, PT_SRESTRICT, PT_ACTIONS,
))

STRING_TYPES = (PT_STRING8, PT_UNICODE)

PROP_TYPE_NAMES = {
    PT_UNSPECIFIED: 'PT_UNSPECIFIED',
    PT_NULL: 'PT_NULL',
    PT_SHORT: 'PT_SHORT',
    PT_LONG: 'PT_LONG',
    PT_FLOAT: 'PT_FLOAT',
    PT_DOUBLE: 'PT_DOUBLE',
    PT_CURRENCY: 'PT_CURRENCY',
    PT_APPTIME: 'PT_APPTIME',
    PT_ERROR: 'PT_ERROR',
    PT_BOOLEAN: 'PT_BOOLEAN',
    PT_OBJECT: 'PT_OBJECT',
    PT_LONG_LONG: 'PT_LONG_LONG',
    PT_STRING8: 'PT_STRING8',
    PT_UNICODE: 'PT_UNICODE',
    PT_SYSTIME: 'PT_SYSTIME',
    PT_GUID: 'PT_GUID',
    PT_SVREID: 'PT_SVREID',
    PT_SRESTRICT: 'PT_SRESTRICT',
    PT_ACTIONS: 'PT_ACTIONS',
    PT_BINARY: 'PT_BINARY',
}


def is_multi_valued(prop_type):
    return bool(prop_type & MV_FLAG)


def base_type(prop_type):
    return prop_type & ~MV_FLAG


def is_fixed_type(prop_type):
    return prop_type in PROP_TYPE_SIZES


def fixed_size(prop_type):
    return PROP_TYPE_SIZES.get(prop_type, 0)


def is_variable_type(prop_type):
    return prop_type in VARIABLE_TYPES or is_multi_valued(prop_type)


def types_match(wanted, stored):
    """True when a lookup for type wanted may return a value stored as stored.

    PT_UNSPECIFIED matches anything; 8-bit and Unicode strings (single or
    multi-valued) stand in for each other.
    """
    if wanted in (PT_UNSPECIFIED, stored):
        return True
    return (is_multi_valued(wanted) == is_multi_valued(stored)
            and base_type(wanted) in STRING_TYPES and base_type(stored) in STRING_TYPES)


def type_name(prop_type):
    if is_multi_valued(prop_type):
        return 'PT_MV_' + PROP_TYPE_NAMES.get(base_type(prop_type), hex(prop_type))[3:]
    return PROP_TYPE_NAMES.get(prop_type, f'0x{prop_type:04X}')


def prop_tag(prop_id, prop_type):
    return (prop_id << 16) | prop_type


def prop_id(tag):
    return (tag >> 16) & 0xFFFF


def prop_type(tag):
    return tag & 0xFFFF


# --- Message Store Properties ---
PR_RECORD_KEY = prop_tag(0x0FF9, PT_BINARY)
PR_DISPLAY_NAME = prop_tag(0x3001, PT_UNICODE)
PR_IPM_SUBTREE_ENTRYID = prop_tag(0x35E0, PT_BINARY)
PR_IPM_WASTEBASKET_ENTRYID = prop_tag(0x35E3, PT_BINARY)
PR_FINDER_ENTRYID = prop_tag(0x35E7, PT_BINARY)
PR_STORE_SUPPORT_MASK = prop_tag(0x340D, PT_LONG)
PR_VALID_FOLDER_MASK = prop_tag(0x35DF, PT_LONG)
PR_PST_PASSWORD = prop_tag(0x67FF, PT_LONG)

# --- Folder Properties ---
PR_CONTENT_COUNT = prop_tag(0x3602, PT_LONG)
PR_CONTENT_UNREAD_COUNT = prop_tag(0x3603, PT_LONG)
PR_SUBFOLDERS = prop_tag(0x360A, PT_BOOLEAN)
PR_CONTAINER_CLASS = prop_tag(0x3613, PT_UNICODE)

# --- Message Properties ---
PR_IMPORTANCE = prop_tag(0x0017, PT_LONG)
PR_MESSAGE_CLASS = prop_tag(0x001A, PT_UNICODE)
PR_SENSITIVITY = prop_tag(0x0036, PT_LONG)
PR_SUBJECT = prop_tag(0x0037, PT_UNICODE)
PR_CLIENT_SUBMIT_TIME = prop_tag(0x0039, PT_SYSTIME)
PR_SUBJECT_PREFIX = prop_tag(0x003D, PT_UNICODE)
PR_TRANSPORT_MESSAGE_HEADERS = prop_tag(0x007D, PT_UNICODE)
PR_DISPLAY_BCC = prop_tag(0x0E02, PT_UNICODE)
PR_DISPLAY_CC = prop_tag(0x0E03, PT_UNICODE)
PR_DISPLAY_TO = prop_tag(0x0E04, PT_UNICODE)
PR_MESSAGE_DELIVERY_TIME = prop_tag(0x0E06, PT_SYSTIME)
PR_MESSAGE_FLAGS = prop_tag(0x0E07, PT_LONG)
PR_MESSAGE_SIZE = prop_tag(0x0E08, PT_LONG)
PR_HASATTACH = prop_tag(0x0E1B, PT_BOOLEAN)
PR_NORMALIZED_SUBJECT = prop_tag(0x0E1D, PT_UNICODE)
PR_BODY = prop_tag(0x1000, PT_UNICODE)
PR_RTF_COMPRESSED = prop_tag(0x1009, PT_BINARY)
PR_HTML = prop_tag(0x1013, PT_BINARY)
PR_INTERNET_MESSAGE_ID = prop_tag(0x1035, PT_UNICODE)
PR_CREATION_TIME = prop_tag(0x3007, PT_SYSTIME)
PR_LAST_MODIFICATION_TIME = prop_tag(0x3008, PT_SYSTIME)
PR_INTERNET_CPID = prop_tag(0x3FDE, PT_LONG)  # Internet code page (65001 = UTF-8)
PR_MESSAGE_CODEPAGE = prop_tag(0x3FFD, PT_LONG)  # Message code page

# --- Sender Properties ---
PR_SENT_REPRESENTING_NAME = prop_tag(0x0042, PT_UNICODE)
PR_SENT_REPRESENTING_ADDRTYPE = prop_tag(0x0064, PT_UNICODE)
PR_SENT_REPRESENTING_EMAIL = prop_tag(0x0065, PT_UNICODE)
PR_SENDER_NAME = prop_tag(0x0C1A, PT_UNICODE)
PR_SENDER_ADDRTYPE = prop_tag(0x0C1E, PT_UNICODE)
PR_SENDER_EMAIL_ADDRESS = prop_tag(0x0C1F, PT_UNICODE)

# --- Recipient Properties ---
PR_RECIPIENT_TYPE = prop_tag(0x0C15, PT_LONG)
PR_ROWID = prop_tag(0x3000, PT_LONG)
PR_ADDRTYPE = prop_tag(0x3002, PT_UNICODE)
PR_EMAIL_ADDRESS = prop_tag(0x3003, PT_UNICODE)
PR_SMTP_ADDRESS = prop_tag(0x39FE, PT_UNICODE)

# Recipient types
MAPI_ORIG = 0
MAPI_TO = 1
MAPI_CC = 2
MAPI_BCC = 3

# --- Attachment Properties ---
PR_ATTACH_SIZE = prop_tag(0x0E20, PT_LONG)
PR_ATTACH_NUM = prop_tag(0x0E21, PT_LONG)
PR_ATTACH_DATA_BIN = prop_tag(0x3701, PT_BINARY)
PR_ATTACH_DATA_OBJ = prop_tag(0x3701, PT_OBJECT)
PR_ATTACH_EXTENSION = prop_tag(0x3703, PT_UNICODE)
PR_ATTACH_FILENAME = prop_tag(0x3704, PT_UNICODE)
PR_ATTACH_METHOD = prop_tag(0x3705, PT_LONG)
PR_ATTACH_LONG_FILENAME = prop_tag(0x3707, PT_UNICODE)
PR_RENDERING_POSITION = prop_tag(0x370B, PT_LONG)
PR_ATTACH_MIME_TAG = prop_tag(0x370E, PT_UNICODE)
PR_ATTACH_CONTENT_ID = prop_tag(0x3712, PT_UNICODE)

# Attachment methods
ATTACH_NO_ATTACHMENT = 0
ATTACH_BY_VALUE = 1
ATTACH_BY_REFERENCE = 2
ATTACH_BY_REF_RESOLVE = 3
ATTACH_BY_REF_ONLY = 4
ATTACH_EMBEDDED_MSG = 5
ATTACH_OLE = 6

# --- Common Entry ID / NID Properties ---
PR_ENTRYID = prop_tag(0x0FFF, PT_BINARY)
PR_PARENT_ENTRYID = prop_tag(0x0E09, PT_BINARY)

# --- Name-to-ID map streams ---
PR_NAMEID_BUCKET_COUNT = prop_tag(0x0001, PT_LONG)
PR_NAMEID_STREAM_GUID = prop_tag(0x0002, PT_BINARY)
PR_NAMEID_STREAM_ENTRY = prop_tag(0x0003, PT_BINARY)
PR_NAMEID_STREAM_STRING = prop_tag(0x0004, PT_BINARY)

# --- Message Flags ---
MSGFLAG_READ = 0x0001
MSGFLAG_UNMODIFIED = 0x0002
MSGFLAG_SUBMIT = 0x0004
MSGFLAG_UNSENT = 0x0008
MSGFLAG_HASATTACH = 0x0010

# --- NID Types ---
NID_TYPE_NONE = 0x00
NID_TYPE_INTERNAL = 0x01
NID_TYPE_NORMAL_FOLDER = 0x02
NID_TYPE_SEARCH_FOLDER = 0x03
NID_TYPE_NORMAL_MESSAGE = 0x04
NID_TYPE_ATTACHMENT = 0x05
NID_TYPE_SEARCH_UPDATE_QUEUE = 0x06
NID_TYPE_SEARCH_CRITERIA_OBJECT = 0x07
NID_TYPE_ASSOC_MESSAGE = 0x08
NID_TYPE_CONTENTS_TABLE_INDEX = 0x0A
NID_TYPE_RECEIVE_FOLDER_TABLE = 0x0B
NID_TYPE_OUTGOING_QUEUE_TABLE = 0x0C
NID_TYPE_HIERARCHY_TABLE = 0x0D
NID_TYPE_CONTENTS_TABLE = 0x0E
NID_TYPE_ASSOC_CONTENTS_TABLE = 0x0F
NID_TYPE_SEARCH_CONTENTS_TABLE = 0x10
NID_TYPE_ATTACHMENT_TABLE = 0x11
NID_TYPE_RECIPIENT_TABLE = 0x12
NID_TYPE_SEARCH_TABLE_INDEX = 0x13
NID_TYPE_LTP = 0x1F

FOLDER_NID_TYPES = (NID_TYPE_NORMAL_FOLDER, NID_TYPE_SEARCH_FOLDER)
MESSAGE_NID_TYPES = (NID_TYPE_NORMAL_MESSAGE, NID_TYPE_ASSOC_MESSAGE)

# --- Special Internal NIDs ---
NID_MESSAGE_STORE = 0x21  # type=INTERNAL, index=1
NID_NAME_TO_ID_MAP = 0x61  # type=INTERNAL, index=3
NID_NORMAL_FOLDER_TEMPLATE = 0xA1  # type=INTERNAL, index=5
NID_SEARCH_FOLDER_TEMPLATE = 0xC1  # type=INTERNAL, index=6
NID_ROOT_FOLDER = 0x122  # type=NORMAL_FOLDER, index=9

# Fixed sub-node NIDs inside a message node
NID_ATTACHMENT_TABLE = 0x671
NID_RECIPIENT_TABLE = 0x692


def make_nid(nid_type, nid_index):
    return (nid_index << 5) | nid_type


def nid_type(nid):
    return nid & 0x1F


def nid_index(nid):
    return (nid >> 5) & 0x7FFFFFF


def table_nid(folder_nid, table_type):
    """NID of one of a folder's tables (hierarchy, contents, associated)."""
    return (folder_nid & ~0x1F) | table_type


# --- LTP Internal Properties (for TC row index) ---
PidTagLtpRowId = prop_tag(0x67F2, PT_LONG)   # Required first TCOLDESC: dwRowID at offset 0
PidTagLtpRowVer = prop_tag(0x67F3, PT_LONG)   # Optional row version

# --- Named property sets ---
PS_MAPI = '00020328-0000-0000-c000-000000000046'
PS_PUBLIC_STRINGS = '00020329-0000-0000-c000-000000000046'
PSETID_COMMON = '00062008-0000-0000-c000-000000000046'
PSETID_ADDRESS = '00062004-0000-0000-c000-000000000046'
PS_INTERNET_HEADERS = '00020386-0000-0000-c000-000000000046'

# First property id assigned to named properties
NAMED_PROP_BASE = 0x8000
