"""Tests for the messaging layer: store, folders, messages, attachments."""

import uuid

import pytest

from pst2dir.archive import open_archive
from pst2dir.config import ReaderConfig
from pst2dir.errors import ABSENT, CorruptBlock, NotFound
from pst2dir.mapi.properties import (
    MSGFLAG_HASATTACH, NID_ATTACHMENT_TABLE, NID_MESSAGE_STORE, NID_ROOT_FOLDER,
    NID_TYPE_ATTACHMENT, NID_TYPE_HIERARCHY_TABLE, NID_TYPE_NORMAL_MESSAGE, PR_ATTACH_SIZE,
    PR_ATTACH_LONG_FILENAME, PR_HTML, PR_INTERNET_CPID, PR_MESSAGE_CODEPAGE,
    PR_RTF_COMPRESSED, PR_SUBJECT, PSETID_COMMON, PS_PUBLIC_STRINGS, PT_BOOLEAN,
    PT_MV_UNICODE, make_nid, prop_tag, table_nid,
)
from pst2dir.messaging.message import Message
from pst2dir.messaging.store import EntryID
from pst2dir.ndb.header import ANSI, UNICODE, UNICODE_4K
from pstbuilder import (
    ATTACHMENT_COLUMNS, AttachmentSpec, MailboxBuilder, MessageSpec, PSTWriter, attachment,
    compress_rtf_literal, recipient,
)
from samples import ATTACHMENT_DATA, SENT, message_props, populate


def build(mb):
    return open_archive(mb.build())


@pytest.fixture
def sample():
    """(archive, nids) of the sample mailbox in Unicode format."""
    mb = MailboxBuilder(UNICODE)
    nids = populate(mb)
    return build(mb), nids


def all_messages(archive):
    """Every message reachable through the folder tree."""
    for folder in archive.root_folder().walk():
        yield from folder.iter_children()


class TestMessageStore:

    def test_properties(self, sample):
        archive, nids = sample
        store = archive.message_store
        assert store.display_name == 'Personal Folders'
        assert store.record_key == MailboxBuilder().record_key
        assert store.password_crc == 0
        assert store.finder_entry_id is None

    def test_entry_ids(self, sample):
        archive, nids = sample
        store = archive.message_store
        subtree = store.ipm_subtree_entry_id
        assert subtree.nid == nids['top']
        assert subtree.provider_uid == store.record_key
        assert subtree.flags == 0
        assert store.wastebasket_entry_id.nid == nids['deleted']

    def test_password_crc(self):
        archive = build(MailboxBuilder(UNICODE, password_crc=0xDEADBEEF))
        assert archive.message_store.password_crc == 0xDEADBEEF

    def test_short_entry_id(self):
        assert EntryID.parse(b'\x00' * 10) is None
        assert EntryID.parse(None) is None

    def test_missing_store(self):
        mb = MailboxBuilder(UNICODE)
        mb.skip_nodes.add(NID_MESSAGE_STORE)
        archive = build(mb)
        with pytest.raises(CorruptBlock):
            archive.message_store


class TestFolders:

    def test_root_folder(self, sample):
        archive, nids = sample
        root = archive.root_folder()
        assert root.nid == NID_ROOT_FOLDER
        assert root.display_name == 'Top of Personal Folders'
        assert [f.nid for f in root.get_sub_folders()] == [nids['top']]

    def test_folder_properties(self, sample):
        archive, nids = sample
        inbox = archive.get_folder(nids['inbox'])
        assert inbox.display_name == 'Inbox'
        assert inbox.container_class == 'IPF.Note'
        assert inbox.content_count == 2
        assert inbox.unread_count == 0
        assert inbox.has_subfolders
        assert inbox.parent_nid == nids['top']
        assert not inbox.is_search_folder
        sent = archive.get_folder(nids['sent'])
        assert not sent.has_subfolders
        assert sent.container_class is None

    def test_subfolder_order(self, sample):
        archive, nids = sample
        top = archive.get_folder(nids['top'])
        names = [f.display_name for f in top.get_sub_folders()]
        assert names == ['Inbox', 'Sent Items', 'Deleted Items']

    def test_folders_are_cached(self, sample):
        archive, nids = sample
        assert archive.get_folder(nids['inbox']) is archive.get_folder(nids['inbox'])
        assert archive.root_folder().get_sub_folders()[0] is archive.get_folder(nids['top'])

    def test_get_folder_not_found(self, sample):
        archive, nids = sample
        with pytest.raises(NotFound):
            archive.get_folder(nids['hello'])
        with pytest.raises(NotFound):
            archive.get_folder(nids['inbox'] + 0x1000)
        with pytest.raises(CorruptBlock):
            archive.open_folder(nids['inbox'] + 0x1000)

    def test_walk(self, sample):
        archive, _ = sample
        names = [f.display_name for f in archive.root_folder().walk()]
        assert names == ['Top of Personal Folders', 'Top of Outlook data file', 'Inbox',
                         'Projects/2023', 'Sent Items', 'Deleted Items']

    def test_every_message_visited_once(self, variant):
        mb = MailboxBuilder(variant)
        populate(mb)
        archive = build(mb)
        seen = [m.nid for m in all_messages(archive)]
        assert sorted(seen) == sorted(mb.message_nids())

    def test_get_next_child(self, sample):
        archive, nids = sample
        inbox = archive.get_folder(nids['inbox'])
        assert inbox.get_next_child().nid == nids['hello']
        assert inbox.get_next_child().nid == nids['status']
        assert inbox.get_next_child() is None
        assert inbox.get_next_child() is None
        inbox.reset_cursor()
        assert inbox.get_next_child().nid == nids['hello']

    def test_iter_children_leaves_cursor(self, sample):
        archive, nids = sample
        inbox = archive.get_folder(nids['inbox'])
        inbox.get_next_child()
        assert [m.subject for m in inbox.iter_children()] == ['Hello', 'Status report']
        assert inbox.get_next_child().nid == nids['status']

    def test_associated_contents(self):
        mb = MailboxBuilder(UNICODE)
        inbox = mb.add_folder('Inbox')
        mb.add_message(inbox, message_props('Visible'))
        mb.add_message(inbox, {PR_SUBJECT: 'View settings'}, assoc=True)
        archive = build(mb)
        folder = archive.get_folder(inbox)
        assert folder.associated_contents_table().row_count() == 1
        assert [m.subject for m in folder.iter_children()] == ['Visible']

    def test_search_folder(self):
        mb = MailboxBuilder(UNICODE)
        inbox = mb.add_folder('Inbox')
        finder = mb.add_folder('Unread Mail', search=True)
        mb.add_message(inbox, message_props('Normal'))
        found = mb.add_message(finder, message_props('Found'))
        archive = build(mb)

        folder = archive.get_folder(finder)
        assert folder.is_search_folder
        assert folder.get_sub_folders() == []
        assert not folder.has_subfolders
        assert folder.get_next_child().nid == found
        assert folder.get_next_child() is None
        names = [f.display_name for f in archive.root_folder().walk()]
        assert names == ['Top of Personal Folders', 'Inbox', 'Unread Mail']

    def test_missing_hierarchy_table(self):
        mb = MailboxBuilder(UNICODE)
        nids = populate(mb)
        mb.skip_nodes.add(table_nid(nids['inbox'], NID_TYPE_HIERARCHY_TABLE))
        archive = build(mb)
        with pytest.raises(CorruptBlock):
            archive.get_folder(nids['inbox']).get_sub_folders()
        # siblings are unaffected
        assert archive.get_folder(nids['sent']).get_sub_folders() == []


class TestMessages:

    def test_fields(self, sample):
        archive, nids = sample
        msg = archive.get_message(nids['hello'])
        assert isinstance(msg, Message)
        assert msg.subject == 'Hello'
        assert msg.sender_name == 'Alice Example'
        assert msg.sender_email_address == 'alice@example.com'
        assert msg.display_to == 'Bob Example'
        assert msg.client_submit_time == SENT
        assert msg.message_delivery_time == SENT
        assert msg.message_class == 'IPM.Note'
        assert msg.body == 'Body of Hello\r\n'
        assert msg.flags & MSGFLAG_HASATTACH
        assert msg.is_read
        assert msg.has_attachments
        assert msg.display_cc is None
        assert msg.body_html is None
        assert msg.body_rtf is None

    def test_large_body(self, sample):
        archive, nids = sample
        assert archive.get_message(nids['plan']).body == 'x' * 5000

    def test_without_attachments(self, sample):
        archive, nids = sample
        msg = archive.get_message(nids['status'])
        assert not msg.has_attachments
        assert msg.number_of_attachments == 0
        assert msg.recipients == []
        assert list(msg.attachments()) == []

    def test_recipients(self, sample):
        archive, nids = sample
        bob, carol = archive.get_message(nids['hello']).recipients
        assert bob.display_name == 'Bob Example'
        assert bob.email_address == 'bob@example.com'
        assert bob.smtp_address == 'bob@example.com'
        assert bob.address_type == 'SMTP'
        assert bob.recipient_type == 1
        assert carol.recipient_type == 2
        assert carol.as_dict()['display_name'] == 'Carol Example'

    def test_subject_prefix_marker(self):
        mb = MailboxBuilder(UNICODE)
        nid = mb.add_message(NID_ROOT_FOLDER, {PR_SUBJECT: '\x01\x04Re: Hello'})
        assert build(mb).get_message(nid).subject == 'Re: Hello'

    def test_html_body(self):
        mb = MailboxBuilder(UNICODE)
        html = '<p>Grüße</p>'
        nid = mb.add_message(NID_ROOT_FOLDER, {PR_HTML: html.encode('utf-8'),
                                               PR_INTERNET_CPID: 65001})
        assert build(mb).get_message(nid).body_html == html

    def test_rtf_body(self):
        mb = MailboxBuilder(UNICODE)
        rtf = b'{\\rtf1\\ansi hello}'
        nid = mb.add_message(NID_ROOT_FOLDER, {PR_RTF_COMPRESSED: compress_rtf_literal(rtf)})
        assert build(mb).get_message(nid).body_rtf == rtf.decode('ascii')

    def test_corrupt_rtf_body(self):
        mb = MailboxBuilder(UNICODE)
        bad = bytearray(compress_rtf_literal(b'{\\rtf1 x}'))
        bad[12] ^= 0xFF
        nid = mb.add_message(NID_ROOT_FOLDER, {PR_RTF_COMPRESSED: bytes(bad)})
        archive = build(mb)
        msg = archive.get_message(nid)
        with pytest.raises(CorruptBlock) as exc:
            msg.body_rtf
        assert exc.value.nid == nid
        # the rest of the message is still readable
        assert msg.message_class == 'IPM.Note'

    def test_message_code_page(self):
        mb = MailboxBuilder(ANSI)
        mb.writer.string8_encoding = 'cp1251'
        nid = mb.add_message(NID_ROOT_FOLDER, {PR_SUBJECT: 'Привет',
                                               PR_MESSAGE_CODEPAGE: 1251})
        msg = build(mb).get_message(nid)
        assert msg.encoding == 'cp1251'
        assert msg.subject == 'Привет'

    def test_string8_default_encoding(self):
        mb = MailboxBuilder(ANSI)
        nid = mb.add_message(NID_ROOT_FOLDER, {PR_SUBJECT: 'Café'})
        archive = open_archive(mb.build(), ReaderConfig(string8_encoding='latin-1'))
        assert archive.get_message(nid).subject == 'Café'

    def test_as_dict(self, sample):
        archive, nids = sample
        summary = archive.get_message(nids['hello']).as_dict()
        assert summary['nid'] == nids['hello']
        assert summary['subject'] == 'Hello'
        assert [r['email_address'] for r in summary['recipients']] == [
            'bob@example.com', 'carol@example.com']
        assert summary['attachments'][1] == {'filename': 'data.bin',
                                             'size': len(ATTACHMENT_DATA), 'method': 1}

    def test_same_result_for_every_variant(self):
        dumps = []
        for variant in (ANSI, UNICODE, UNICODE_4K):
            mb = MailboxBuilder(variant)
            populate(mb)
            archive = build(mb)
            folders = [(f.nid, f.display_name, f.content_count)
                       for f in archive.root_folder().walk()]
            messages = [m.as_dict() for m in all_messages(archive)]
            dumps.append((folders, messages))
        assert dumps[0] == dumps[1] == dumps[2]


class TestAttachments:

    def test_properties(self, sample):
        archive, nids = sample
        msg = archive.get_message(nids['hello'])
        assert msg.number_of_attachments == 2
        notes = msg.get_attachment(0)
        assert notes.long_filename == 'notes.txt'
        assert notes.best_filename == 'notes.txt'
        assert notes.filename == ''
        assert notes.method == 1
        assert notes.size == notes.data_size == len(b'first attachment\r\n')
        assert notes.read_bytes() == b'first attachment\r\n'
        assert notes.embedded_message() is None

    def test_index_out_of_range(self, sample):
        archive, nids = sample
        with pytest.raises(IndexError):
            archive.get_message(nids['hello']).get_attachment(2)

    def test_streaming(self, sample):
        archive, nids = sample
        data = archive.get_message(nids['hello']).get_attachment(1)
        chunk = bytearray(archive.config.stream_chunk_size)
        received = []
        with data.open_stream() as stream:
            assert stream.size == len(ATTACHMENT_DATA)
            while True:
                n = stream.readinto(chunk)
                if not n:
                    break
                received.append(bytes(chunk[:n]))
            assert stream.readinto(chunk) == 0
        assert [len(c) for c in received] == [8176, len(ATTACHMENT_DATA) - 8176]
        assert b''.join(received) == ATTACHMENT_DATA

    def test_read_after_close(self, sample):
        archive, nids = sample
        stream = archive.get_message(nids['hello']).get_attachment(0).open_stream()
        stream.close()
        with pytest.raises(ValueError):
            stream.readinto(bytearray(10))

    def test_missing_filename(self):
        mb = MailboxBuilder(UNICODE)
        spec = attachment('ignored', b'abc')
        del spec.props[PR_ATTACH_LONG_FILENAME]
        nid = mb.add_message(NID_ROOT_FOLDER, attachments=[spec])
        att = build(mb).get_message(nid).get_attachment(0)
        assert att.long_filename == ''
        assert att.best_filename == ''
        assert att.read_bytes() == b'abc'

    def test_embedded_message(self):
        mb = MailboxBuilder(UNICODE)
        inner = MessageSpec(message_props('Inner'),
                            [recipient('Dan Example', 'dan@example.com')],
                            [attachment('inner.txt', b'inner data')])
        outer = AttachmentSpec({PR_ATTACH_LONG_FILENAME: 'Inner.msg'}, embedded=inner)
        nid = mb.add_message(NID_ROOT_FOLDER, message_props('Outer'), attachments=[outer])
        msg = build(mb).get_message(nid)

        att = msg.get_attachment(0)
        assert att.method == 5
        embedded = att.embedded_message()
        assert embedded.subject == 'Inner'
        assert embedded.recipients[0].email_address == 'dan@example.com'
        assert embedded.get_attachment(0).read_bytes() == b'inner data'


class TestNamedProperties:

    def test_lookup(self, variant):
        mb = MailboxBuilder(variant)
        keywords = mb.named_property(PS_PUBLIC_STRINGS, 'Keywords')
        reminder = mb.named_property(PSETID_COMMON, 0x8503)
        nid = mb.add_message(NID_ROOT_FOLDER, {
            prop_tag(keywords, PT_MV_UNICODE): ['red', 'blue'],
            prop_tag(reminder, PT_BOOLEAN): True,
        })
        archive = build(mb)
        names = archive.named_properties
        assert len(names) == 2
        assert names.lookup(PS_PUBLIC_STRINGS, 'Keywords') == keywords
        assert names.lookup(uuid.UUID(PSETID_COMMON), 0x8503) == reminder
        assert names.lookup(PSETID_COMMON, 0x9999) is None
        assert names.name_of(keywords).name == 'Keywords'
        assert names.name_of(reminder).lid == 0x8503
        assert names.name_of(reminder).guid == uuid.UUID(PSETID_COMMON)

        msg = archive.get_message(nid)
        assert msg.get_named(PS_PUBLIC_STRINGS, 'Keywords') == ['red', 'blue']
        assert msg.get_named(PSETID_COMMON, 0x8503) is True
        assert msg.get_named(PSETID_COMMON, 0x8514) is ABSENT

    def test_no_name_map(self):
        mb = MailboxBuilder(UNICODE, name_map=False)
        nid = mb.add_message(NID_ROOT_FOLDER, message_props('Plain'))
        archive = build(mb)
        assert len(archive.named_properties) == 0
        assert archive.get_message(nid).get_named(PS_PUBLIC_STRINGS, 'Keywords') is ABSENT


class TestCorruption:

    def test_corrupt_message_is_isolated(self):
        mb = MailboxBuilder(UNICODE)
        nids = populate(mb)
        data = bytearray(mb.build())
        bid = mb.writer.node(nids['status'])[0]
        data[mb.writer.block_offsets[bid] + 16] ^= 0x01
        archive = open_archive(bytes(data))

        good = []
        bad = []
        for folder in archive.root_folder().walk():
            while True:
                try:
                    child = folder.get_next_child()
                except CorruptBlock as e:
                    bad.append(e.nid)
                    continue
                if child is None:
                    break
                good.append(child.subject)
        assert bad == [nids['status']]
        assert sorted(good) == ['Hello', 'Plan', 'Re: Hello']

    def test_dangling_contents_row(self):
        mb = MailboxBuilder(UNICODE)
        nids = populate(mb)
        mb.skip_nodes.add(nids['status'])
        archive = build(mb)

        inbox = archive.get_folder(nids['inbox'])
        assert inbox.get_next_child().nid == nids['hello']
        with pytest.raises(CorruptBlock):
            inbox.get_next_child()
        assert inbox.get_next_child() is None
        with pytest.raises(NotFound):
            archive.get_message(nids['status'])
        with pytest.raises(CorruptBlock):
            archive.open_message(nids['status'])

    def test_missing_root_folder(self):
        mb = MailboxBuilder(UNICODE)
        mb.skip_nodes.add(NID_ROOT_FOLDER)
        archive = build(mb)
        with pytest.raises(CorruptBlock):
            archive.root_folder()


    def test_attachment_row_without_subnode(self):
        w = PSTWriter(UNICODE)
        nid = make_nid(NID_TYPE_NORMAL_MESSAGE, 0x400)
        bid, subnodes = w.pc({PR_SUBJECT: 'Lost attachment'})
        rows = [(make_nid(NID_TYPE_ATTACHMENT, 0x100), {PR_ATTACH_SIZE: 3})]
        tc_bid, tc_sub = w.tc(ATTACHMENT_COLUMNS, rows)
        subnodes.append((NID_ATTACHMENT_TABLE, tc_bid, w.store_subnodes(tc_sub)))
        w.add_node(nid, bid, w.store_subnodes(subnodes))
        msg = open_archive(w.to_bytes()).get_message(nid)

        assert msg.number_of_attachments == 1
        with pytest.raises(CorruptBlock, match='missing'):
            msg.get_attachment(0)
