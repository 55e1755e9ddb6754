"""Tests for compressed RTF decoding."""

import struct

import pytest

from pst2dir.errors import CorruptBlock
from pst2dir.messaging.rtf import INITIAL_DICT, decompress_rtf
from pstbuilder import compress_rtf_literal, lzfu_wrap


class TestDecompressRtf:

    def test_literals(self):
        raw = b'{\\rtf1\\ansi\\deff0 Hello, world!\\par}'
        assert decompress_rtf(compress_rtf_literal(raw)) == raw

    def test_dictionary_reference(self):
        # one reference into the preloaded dictionary: "{\rtf1" at offset 0
        end = struct.pack('>H', (len(INITIAL_DICT) + 6) << 4)
        body = b'\x03' + struct.pack('>H', (0 << 4) | (6 - 2)) + end
        assert decompress_rtf(lzfu_wrap(body, 6)) == b'{\\rtf1'

    def test_overlapping_reference(self):
        # "ab" then copy 6 bytes starting at "a": run-length style expansion
        start = len(INITIAL_DICT)
        ref = struct.pack('>H', (start << 4) | (6 - 2))
        end = struct.pack('>H', (start + 8) << 4)
        body = bytes([0b1100]) + b'ab' + ref + end
        assert decompress_rtf(lzfu_wrap(body, 8)) == b'abababab'

    def test_raw_size_truncates(self):
        raw = b'{\\rtf1 abc}'
        data = bytearray(compress_rtf_literal(raw))
        struct.pack_into('<I', data, 4, 5)
        assert decompress_rtf(bytes(data), verify_crc=False) == raw[:5]

    def test_checksum_mismatch(self):
        data = bytearray(compress_rtf_literal(b'{\\rtf1 x}'))
        data[12] ^= 0x01
        with pytest.raises(CorruptBlock, match='checksum'):
            decompress_rtf(bytes(data))

    def test_checksum_not_verified(self):
        data = bytearray(compress_rtf_literal(b'{\\rtf1 x}'))
        data[12] ^= 0x01
        assert decompress_rtf(bytes(data), verify_crc=False) == b'{\\rtf1 x}'

    def test_uncompressed(self):
        raw = b'{\\rtf1 plain}'
        data = struct.pack('<II4sI', len(raw) + 12, len(raw), b'MELA', 0) + raw
        assert decompress_rtf(data) == raw

    def test_unknown_magic(self):
        data = struct.pack('<II4sI', 12, 0, b'ABCD', 0)
        with pytest.raises(CorruptBlock, match='Unknown'):
            decompress_rtf(data)

    def test_too_short(self):
        with pytest.raises(CorruptBlock):
            decompress_rtf(b'LZFu')

    def test_truncated_reference(self):
        body = b'\x01\x00'
        with pytest.raises(CorruptBlock, match='truncated'):
            decompress_rtf(lzfu_wrap(body, 4))
