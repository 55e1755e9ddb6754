"""Compressed RTF (PR_RTF_COMPRESSED) decompression.

Header: cbSize(4) + cbRawSize(4) + dwMagic(4) + dwCRC(4), then data.
"LZFu" streams are LZ77-compressed against a 4096-byte dictionary
primed with a fixed RTF prefix; "MELA" streams are stored uncompressed.

See [MS-OXRTFCP].
"""

import struct

from ..crc import compute_crc
from ..errors import CorruptBlock

COMPRESSED = b'LZFu'
UNCOMPRESSED = b'MELA'

HEADER_SIZE = 16
DICT_SIZE = 4096

INITIAL_DICT = (
    b'{\\rtf1\\ansi\\mac\\deff0\\deftab720{\\fonttbl;}'
    b'{\\f0\\fnil \\froman \\fswiss \\fmodern \\fscript \\fdecor MS Sans SerifSymbolArial'
    b'Times New RomanCourier{\\colortbl\\red0\\green0\\blue0\r\n'
    b'\\par \\pard\\plain\\f0\\fs20\\b\\i\\u\\tab\\tx'
)


def decompress_rtf(data: bytes, verify_crc: bool = True) -> bytes:
    """Decompress a PR_RTF_COMPRESSED value to raw RTF bytes.

    Raises:
        CorruptBlock: bad header, checksum or back-reference.
    """
    if len(data) < HEADER_SIZE:
        raise CorruptBlock("Compressed RTF shorter than its header")
    cb_size, raw_size, magic, crc = struct.unpack_from('<II4sI', data, 0)
    end = min(len(data), cb_size + 4)

    if magic == UNCOMPRESSED:
        return bytes(data[HEADER_SIZE:HEADER_SIZE + raw_size])
    if magic != COMPRESSED:
        raise CorruptBlock(f"Unknown compressed RTF type {magic!r}")

    if verify_crc:
        actual = compute_crc(data[HEADER_SIZE:end])
        if actual != crc:
            raise CorruptBlock(
                f"Compressed RTF checksum mismatch (stored 0x{crc:08X}, computed 0x{actual:08X})")

    window = bytearray(DICT_SIZE)
    window[:len(INITIAL_DICT)] = INITIAL_DICT
    write = len(INITIAL_DICT)
    out = bytearray()
    pos = HEADER_SIZE

    while pos < end:
        control = data[pos]
        pos += 1
        for bit in range(8):
            if pos >= end:
                break
            if not control & (1 << bit):
                c = data[pos]
                pos += 1
                out.append(c)
                window[write] = c
                write = (write + 1) % DICT_SIZE
                continue

            if pos + 2 > end:
                raise CorruptBlock("Compressed RTF reference truncated")
            # 12-bit dictionary offset, 4-bit length - 2, big-endian
            token, = struct.unpack_from('>H', data, pos)
            pos += 2
            offset = token >> 4
            length = (token & 0x0F) + 2
            if offset == write:
                return bytes(out[:raw_size])
            for k in range(length):
                c = window[(offset + k) % DICT_SIZE]
                out.append(c)
                window[write] = c
                write = (write + 1) % DICT_SIZE

    return bytes(out[:raw_size])
