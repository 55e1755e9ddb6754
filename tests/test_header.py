"""Tests for header decoding and archive opening."""

import struct

import pytest

from pst2dir.archive import open_archive
from pst2dir.crc import compute_crc
from pst2dir.errors import InvalidFormat
from pst2dir.ndb.header import (
    ANSI, CRYPT_NONE, CRYPT_PERMUTE, HEADER_SIZE, UNICODE, UNICODE_4K, parse_header,
)
from pstbuilder import MailboxBuilder


def _fix_crc(buf):
    struct.pack_into('<I', buf, 4, compute_crc(bytes(buf[8:8 + 471])))


@pytest.fixture
def unicode_image():
    return bytearray(MailboxBuilder(UNICODE).build())


class TestParseHeader:

    def test_variant_detected(self, variant):
        data = MailboxBuilder(variant).build()
        header = parse_header(data[:HEADER_SIZE])
        assert header.variant is variant
        assert header.crypt_method == CRYPT_NONE
        assert header.crypt_name == 'none'
        assert not header.is_ost
        assert header.file_eof == len(data)

    def test_version_numbers(self):
        assert parse_header(MailboxBuilder(ANSI).build()).version == 14
        assert parse_header(MailboxBuilder(UNICODE).build()).version == 23
        assert parse_header(MailboxBuilder(UNICODE_4K).build()).version == 36

    def test_ost_client_magic(self):
        header = parse_header(MailboxBuilder(UNICODE, ost=True).build())
        assert header.is_ost

    def test_permute_crypt_method(self):
        header = parse_header(MailboxBuilder(UNICODE, crypt=CRYPT_PERMUTE).build())
        assert header.crypt_name == 'permute'

    def test_roots_point_inside_file(self, variant):
        data = MailboxBuilder(variant).build()
        header = parse_header(data)
        assert 0 < header.nbt_root.ib < len(data)
        assert 0 < header.bbt_root.ib < len(data)
        assert header.nbt_root.bid != header.bbt_root.bid

    def test_bad_magic(self, unicode_image):
        unicode_image[0:4] = b'XBDN'
        with pytest.raises(InvalidFormat, match='magic'):
            parse_header(bytes(unicode_image))

    def test_bad_client_magic(self, unicode_image):
        unicode_image[8:10] = b'ZZ'
        _fix_crc(unicode_image)
        with pytest.raises(InvalidFormat, match='client magic'):
            parse_header(bytes(unicode_image))

    def test_unsupported_version(self, unicode_image):
        struct.pack_into('<H', unicode_image, 0x0A, 20)
        _fix_crc(unicode_image)
        with pytest.raises(InvalidFormat, match='version 20'):
            parse_header(bytes(unicode_image))

    def test_header_crc_mismatch(self, unicode_image):
        unicode_image[0x14] ^= 0xFF
        with pytest.raises(InvalidFormat, match='CRC'):
            parse_header(bytes(unicode_image))

    def test_header_crc_check_can_be_skipped(self, unicode_image):
        unicode_image[0x14] ^= 0xFF
        header = parse_header(bytes(unicode_image), verify_crc=False)
        assert header.variant is UNICODE

    def test_cyclic_crypt_rejected(self, unicode_image):
        unicode_image[0x201] = 0x02
        with pytest.raises(InvalidFormat, match='cyclic'):
            parse_header(bytes(unicode_image))

    def test_ansi_crypt_byte_is_checked(self):
        image = bytearray(MailboxBuilder(ANSI).build())
        image[0x1CD] = 0x10
        _fix_crc(image)
        with pytest.raises(InvalidFormat, match='crypt'):
            parse_header(bytes(image))

    def test_short_buffer(self):
        with pytest.raises(InvalidFormat, match='too small'):
            parse_header(b'!BDN' + bytes(100))


class TestOpenArchive:

    def test_open_from_bytes(self):
        archive = open_archive(MailboxBuilder(UNICODE).build())
        assert archive.header.variant is UNICODE
        assert archive.name is None

    def test_open_from_path(self, mailbox_file):
        path, _, _ = mailbox_file
        with open_archive(path) as archive:
            assert archive.name == 'sample.pst'
            assert archive.message_store.display_name == 'Personal Folders'

    def test_file_too_small(self, tmp_path):
        path = tmp_path / 'tiny.pst'
        path.write_bytes(b'!BDN' + bytes(60))
        with pytest.raises(InvalidFormat):
            open_archive(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            open_archive(tmp_path / 'missing.pst')

    def test_not_a_pst(self, tmp_path):
        path = tmp_path / 'notes.txt'
        path.write_bytes(b'hello world\n' * 100)
        with pytest.raises(InvalidFormat):
            open_archive(path)
