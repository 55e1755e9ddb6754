"""PST file header and format variants.

Decodes the HEADER structure from [MS-PST] 2.2.2.6.
ANSI PST:        wVer 14/15, 4-byte BIDs and IBs, ROOT at 0xA4.
Unicode PST:     wVer 23,    8-byte BIDs and IBs, ROOT at 0xB4.
Unicode-4k OST:  wVer 36,    Unicode layout with 4096-byte pages.
"""

import logging
import struct
from dataclasses import dataclass

from ..crc import compute_crc
from ..errors import InvalidFormat

logger = logging.getLogger(__name__)

# Header constants
MAGIC = b'\x21\x42\x44\x4E'  # "!BDN"
MAGIC_CLIENT_PST = b'\x53\x4D'  # "SM"
MAGIC_CLIENT_OST = b'\x53\x4F'  # "SO"
WVER_ANSI = (14, 15)
WVER_UNICODE = 23
WVER_UNICODE_4K = 36

# bCryptMethod
CRYPT_NONE = 0x00
CRYPT_PERMUTE = 0x01
CRYPT_CYCLIC = 0x02
CRYPT_EDP = 0x10

CRYPT_NAMES = {
    CRYPT_NONE: 'none',
    CRYPT_PERMUTE: 'permute',
    CRYPT_CYCLIC: 'cyclic',
    CRYPT_EDP: 'edp',
}

# dwCRCPartial covers 471 bytes starting at wMagicClient
CRC_PARTIAL_OFFSET = 0x08
CRC_PARTIAL_LENGTH = 471

# Minimum bytes needed to decode either header flavour
HEADER_SIZE = 564


@dataclass(frozen=True)
class FormatVariant:
    """Every size and layout that differs between the on-disk variants."""

    name: str
    id_size: int  # BID / IB width in bytes
    page_size: int
    page_meta_offset: int  # cEnt, cEntMax, cbEnt, cLevel
    page_meta_fmt: str
    page_trailer_offset: int
    block_trailer_size: int
    block_align: int
    max_block_size: int
    sl_header_size: int  # SLBLOCK / SIBLOCK header incl. padding

    @property
    def id_fmt(self):
        return 'I' if self.id_size == 4 else 'Q'

    @property
    def is_ansi(self):
        return self.id_size == 4

    @property
    def max_block_payload(self):
        """Maximum raw data bytes a single block can carry."""
        return self.max_block_size - self.block_trailer_size

    @property
    def nbt_entry_size(self):
        # nid + bidData + bidSub + nidParent (+ dwPadding on Unicode)
        return 16 if self.is_ansi else 32

    @property
    def bbt_entry_size(self):
        # BREF + cb + cRef (+ dwPadding on Unicode)
        return 12 if self.is_ansi else 24

    @property
    def bt_entry_size(self):
        # btkey + BREF
        return 12 if self.is_ansi else 24

    @property
    def sl_entry_size(self):
        return 12 if self.is_ansi else 24

    @property
    def si_entry_size(self):
        return 8 if self.is_ansi else 16

    def block_total_size(self, cb: int) -> int:
        """On-disk size of a block carrying cb data bytes."""
        raw = cb + self.block_trailer_size
        return ((raw + self.block_align - 1) // self.block_align) * self.block_align


ANSI = FormatVariant(
    name='ansi',
    id_size=4,
    page_size=512,
    page_meta_offset=496,
    page_meta_fmt='<BBBB',
    page_trailer_offset=500,
    block_trailer_size=12,
    block_align=64,
    max_block_size=8192,
    sl_header_size=4,
)

UNICODE = FormatVariant(
    name='unicode',
    id_size=8,
    page_size=512,
    page_meta_offset=488,
    page_meta_fmt='<BBBB',
    page_trailer_offset=496,
    block_trailer_size=16,
    block_align=64,
    max_block_size=8192,
    sl_header_size=8,
)

UNICODE_4K = FormatVariant(
    name='unicode-4k',
    id_size=8,
    page_size=4096,
    page_meta_offset=4056,
    page_meta_fmt='<HHBB',
    page_trailer_offset=4080,
    block_trailer_size=16,
    block_align=512,
    max_block_size=65536,
    sl_header_size=8,
)


@dataclass(frozen=True)
class BlockRef:
    """BREF: a BID together with the absolute file offset of its data."""

    bid: int
    ib: int


@dataclass(frozen=True)
class Header:
    """Decoded archive header. Immutable once the container is opened."""

    version: int
    client_version: int
    client_magic: bytes
    variant: FormatVariant
    crypt_method: int
    nbt_root: BlockRef
    bbt_root: BlockRef
    file_eof: int
    amap_last: int
    bid_next_b: int
    bid_next_p: int
    unique: int

    @property
    def is_ost(self):
        return self.client_magic == MAGIC_CLIENT_OST

    @property
    def crypt_name(self):
        return CRYPT_NAMES.get(self.crypt_method, f'0x{self.crypt_method:02X}')


def _variant_for(version):
    if version in WVER_ANSI:
        return ANSI
    if version == WVER_UNICODE:
        return UNICODE
    if version == WVER_UNICODE_4K:
        return UNICODE_4K
    raise InvalidFormat(f"Unsupported PST format version {version}")


def parse_header(data: bytes, verify_crc: bool = True) -> Header:
    """Decode and validate the archive header.

    Args:
        data: At least the first HEADER_SIZE bytes of the file.
        verify_crc: Check dwCRCPartial.

    Returns:
        Header.

    Raises:
        InvalidFormat: magic, version, crypt method or header CRC mismatch.
    """
    if len(data) < HEADER_SIZE:
        raise InvalidFormat(f"File too small for a PST header ({len(data)} bytes)")

    magic, crc_partial, client_magic, version, client_version = struct.unpack_from(
        '<4sI2sHH', data, 0)
    if magic != MAGIC:
        raise InvalidFormat(f"Bad magic {magic!r}, expected {MAGIC!r}")
    if client_magic not in (MAGIC_CLIENT_PST, MAGIC_CLIENT_OST):
        raise InvalidFormat(f"Bad client magic {client_magic!r}")

    variant = _variant_for(version)

    if verify_crc:
        actual = compute_crc(data[CRC_PARTIAL_OFFSET:CRC_PARTIAL_OFFSET + CRC_PARTIAL_LENGTH])
        if actual != crc_partial:
            raise InvalidFormat(
                f"Header CRC mismatch (stored 0x{crc_partial:08X}, computed 0x{actual:08X})")

    if variant.is_ansi:
        bid_next_b, bid_next_p, unique = struct.unpack_from('<III', data, 0x18)
        # ROOT (40 bytes) at 0xA4: dwReserved, ibFileEof, ibAMapLast,
        # cbAMapFree, cbPMapFree, BREFNBT, BREFBBT, fAMapValid...
        (file_eof, amap_last, _amap_free, _pmap_free,
         nbt_bid, nbt_ib, bbt_bid, bbt_ib) = struct.unpack_from('<4x IIII II II', data, 0xA4)
        crypt_method = data[0x1CD]
    else:
        bid_next_p, unique = struct.unpack_from('<QI', data, 0x20)
        # ROOT (72 bytes) at 0xB4
        (file_eof, amap_last, _amap_free, _pmap_free,
         nbt_bid, nbt_ib, bbt_bid, bbt_ib) = struct.unpack_from('<4x QQQQ QQ QQ', data, 0xB4)
        crypt_method = data[0x201]
        bid_next_b, = struct.unpack_from('<Q', data, 0x204)

    if crypt_method not in (CRYPT_NONE, CRYPT_PERMUTE):
        raise InvalidFormat(
            f"Unsupported crypt method {CRYPT_NAMES.get(crypt_method, hex(crypt_method))}")

    header = Header(
        version=version,
        client_version=client_version,
        client_magic=client_magic,
        variant=variant,
        crypt_method=crypt_method,
        nbt_root=BlockRef(nbt_bid, nbt_ib),
        bbt_root=BlockRef(bbt_bid, bbt_ib),
        file_eof=file_eof,
        amap_last=amap_last,
        bid_next_b=bid_next_b,
        bid_next_p=bid_next_p,
        unique=unique,
    )
    logger.debug("PST header: version=%d variant=%s crypt=%s nbt=%s bbt=%s",
                 version, variant.name, header.crypt_name,
                 header.nbt_root, header.bbt_root)
    return header
