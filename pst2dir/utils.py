"""Utility functions for PST decoding."""

import codecs
from datetime import datetime, timedelta, timezone

# Windows FILETIME epoch: January 1, 1601
_FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)
_TICKS_PER_MICROSECOND = 10  # 100-nanosecond intervals

# OLE automation date epoch (PT_APPTIME)
_APPTIME_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)

# Windows code page -> Python codec for the ones Python names differently
_CODEPAGES = {
    1200: 'utf-16-le',
    1201: 'utf-16-be',
    20127: 'ascii',
    20866: 'koi8-r',
    21866: 'koi8-u',
    28591: 'latin-1',
    28592: 'iso8859-2',
    28595: 'iso8859-5',
    28597: 'iso8859-7',
    28605: 'iso8859-15',
    50220: 'iso2022-jp',
    51932: 'euc-jp',
    51949: 'euc-kr',
    52936: 'hz',
    54936: 'gb18030',
    65000: 'utf-7',
    65001: 'utf-8',
}


def filetime_to_datetime(ft: int):
    """Convert a Windows FILETIME (64-bit integer) to an aware UTC datetime.

    Returns None for values outside the range datetime can represent.
    """
    try:
        return _FILETIME_EPOCH + timedelta(microseconds=ft // _TICKS_PER_MICROSECOND)
    except OverflowError:
        return None


def apptime_to_datetime(days: float):
    """Convert an OLE automation date (days since 1899-12-30) to datetime."""
    try:
        return _APPTIME_EPOCH + timedelta(days=days)
    except (OverflowError, ValueError):
        return None


def codepage_to_encoding(codepage, default='cp1252'):
    """Map a Windows code page number to a Python codec name."""
    if not codepage:
        return default
    name = _CODEPAGES.get(codepage, f'cp{codepage}')
    try:
        return codecs.lookup(name).name
    except LookupError:
        return default


def decode_utf16(data: bytes) -> str:
    """Decode a PT_UNICODE value (UTF-16LE, optional null terminator)."""
    if len(data) % 2:
        data = data[:-1]
    return data.decode('utf-16-le', errors='replace').rstrip('\x00')


def decode_string8(data: bytes, encoding='cp1252') -> str:
    """Decode a PT_STRING8 value (8-bit, optional null terminator)."""
    return data.decode(encoding, errors='replace').rstrip('\x00')
