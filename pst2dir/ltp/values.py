"""Typed property value decoding.

Turns the raw bytes of a PC or TC value into Python objects:

    PT_SHORT / PT_LONG / PT_LONG_LONG / PT_ERROR   int
    PT_FLOAT / PT_DOUBLE                          float
    PT_CURRENCY                                   Decimal
    PT_APPTIME / PT_SYSTIME                       aware UTC datetime
    PT_BOOLEAN                                    bool
    PT_STRING8 / PT_UNICODE                       str
    PT_GUID                                       uuid.UUID
    PT_OBJECT                                     ObjectRef
    PT_BINARY and everything else                 bytes
    PT_MV_*                                       list of the above

See [MS-PST] 2.3.3.4.
"""

import struct
import uuid
from dataclasses import dataclass
from decimal import Decimal

from ..errors import CorruptBlock
from ..mapi.properties import (
    PT_SHORT, PT_LONG, PT_FLOAT, PT_DOUBLE, PT_CURRENCY, PT_APPTIME, PT_ERROR,
    PT_BOOLEAN, PT_OBJECT, PT_LONG_LONG, PT_STRING8, PT_UNICODE, PT_SYSTIME,
    PT_GUID, base_type, fixed_size, is_fixed_type, is_multi_valued, type_name,
)
from ..utils import apptime_to_datetime, decode_string8, decode_utf16, filetime_to_datetime

_FIXED_FORMATS = {
    PT_SHORT: '<h',
    PT_LONG: '<i',
    PT_FLOAT: '<f',
    PT_DOUBLE: '<d',
    PT_CURRENCY: '<q',
    PT_APPTIME: '<d',
    PT_ERROR: '<I',
    PT_LONG_LONG: '<q',
    PT_SYSTIME: '<Q',
}


@dataclass(frozen=True)
class ObjectRef:
    """PT_OBJECT value: the sub-node holding the object and its size."""

    nid: int
    size: int


def _decode_fixed(ptype, data):
    size = fixed_size(ptype)
    if len(data) < size:
        raise CorruptBlock(f"{type_name(ptype)} value needs {size} bytes, got {len(data)}")
    if ptype == PT_BOOLEAN:
        return data[0] != 0
    if ptype == PT_GUID:
        return uuid.UUID(bytes_le=bytes(data[:16]))
    value, = struct.unpack_from(_FIXED_FORMATS[ptype], data, 0)
    if ptype == PT_CURRENCY:
        return Decimal(value) / 10000
    if ptype == PT_SYSTIME:
        return filetime_to_datetime(value)
    if ptype == PT_APPTIME:
        return apptime_to_datetime(value)
    return value


def _decode_single(ptype, data, encoding):
    if is_fixed_type(ptype):
        return _decode_fixed(ptype, data)
    if ptype == PT_UNICODE:
        return decode_utf16(data)
    if ptype == PT_STRING8:
        return decode_string8(data, encoding)
    if ptype == PT_OBJECT:
        if len(data) < 8:
            raise CorruptBlock(f"PT_OBJECT value needs 8 bytes, got {len(data)}")
        nid, size = struct.unpack_from('<II', data, 0)
        return ObjectRef(nid, size)
    return bytes(data)


def _decode_multi(ptype, data, encoding):
    single = base_type(ptype)
    if is_fixed_type(single):
        size = fixed_size(single)
        if len(data) % size:
            raise CorruptBlock(
                f"{type_name(ptype)} value of {len(data)} bytes is not a multiple of {size}")
        return [_decode_fixed(single, data[i:i + size]) for i in range(0, len(data), size)]

    # ulCount(4) + rgulDataOffsets[ulCount](4 each), then the item bytes
    if not data:
        return []
    if len(data) < 4:
        raise CorruptBlock(f"{type_name(ptype)} value too short")
    count, = struct.unpack_from('<I', data, 0)
    if 4 + count * 4 > len(data):
        raise CorruptBlock(f"{type_name(ptype)} offset table overruns the value")
    offsets = list(struct.unpack_from(f'<{count}I', data, 4)) + [len(data)]
    items = []
    for i in range(count):
        start, end = offsets[i], offsets[i + 1]
        if not 4 + count * 4 <= start <= end <= len(data):
            raise CorruptBlock(f"{type_name(ptype)} item {i} has bad bounds {start}..{end}")
        items.append(_decode_single(single, data[start:end], encoding))
    return items


def decode_value(ptype: int, data: bytes, encoding: str = 'cp1252'):
    """Decode raw property bytes of the given type.

    Args:
        ptype: Property type (low 16 bits of the tag).
        data: Raw value bytes.
        encoding: Codec for PT_STRING8 values.
    """
    if is_multi_valued(ptype):
        return _decode_multi(ptype, data, encoding)
    return _decode_single(ptype, data, encoding)
