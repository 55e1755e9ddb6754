"""Message objects for PST Messaging layer.

A message has:
- Message PC: Property Context with all message properties
- Recipients TC (subnode 0x692): Table of recipients
- Attachments TC (subnode 0x671): Table of attachments, one row per
  attachment sub-node

See [MS-PST] 2.4.5.
"""

import logging

from ..errors import ABSENT, CorruptBlock, NotFound
from ..ltp.pc import PropertyContext
from ..ltp.tc import TableContext
from ..mapi.properties import (
    MSGFLAG_HASATTACH, MSGFLAG_READ, NID_ATTACHMENT_TABLE, NID_RECIPIENT_TABLE,
    PR_ADDRTYPE, PR_BODY, PR_CLIENT_SUBMIT_TIME, PR_CREATION_TIME, PR_DISPLAY_BCC,
    PR_DISPLAY_CC, PR_DISPLAY_NAME, PR_DISPLAY_TO, PR_EMAIL_ADDRESS, PR_HASATTACH, PR_HTML,
    PR_IMPORTANCE, PR_INTERNET_CPID, PR_INTERNET_MESSAGE_ID, PR_LAST_MODIFICATION_TIME,
    PR_MESSAGE_CLASS, PR_MESSAGE_CODEPAGE, PR_MESSAGE_DELIVERY_TIME, PR_MESSAGE_FLAGS,
    PR_MESSAGE_SIZE, PR_RECIPIENT_TYPE, PR_RTF_COMPRESSED, PR_SENDER_EMAIL_ADDRESS,
    PR_SENDER_NAME, PR_SENSITIVITY, PR_SENT_REPRESENTING_EMAIL, PR_SENT_REPRESENTING_NAME,
    PR_SMTP_ADDRESS, PR_SUBJECT, PR_TRANSPORT_MESSAGE_HEADERS,
)
from ..utils import codepage_to_encoding
from .attachment import Attachment
from .rtf import decompress_rtf

logger = logging.getLogger(__name__)

# Field name -> property tag. Every named Message field reads through here.
MESSAGE_FIELDS = {
    'subject': PR_SUBJECT,
    'sender_name': PR_SENDER_NAME,
    'sender_email_address': PR_SENDER_EMAIL_ADDRESS,
    'sent_representing_name': PR_SENT_REPRESENTING_NAME,
    'sent_representing_email_address': PR_SENT_REPRESENTING_EMAIL,
    'display_to': PR_DISPLAY_TO,
    'display_cc': PR_DISPLAY_CC,
    'display_bcc': PR_DISPLAY_BCC,
    'client_submit_time': PR_CLIENT_SUBMIT_TIME,
    'message_delivery_time': PR_MESSAGE_DELIVERY_TIME,
    'creation_time': PR_CREATION_TIME,
    'last_modification_time': PR_LAST_MODIFICATION_TIME,
    'message_class': PR_MESSAGE_CLASS,
    'body': PR_BODY,
    'transport_headers': PR_TRANSPORT_MESSAGE_HEADERS,
    'internet_message_id': PR_INTERNET_MESSAGE_ID,
    'importance': PR_IMPORTANCE,
    'sensitivity': PR_SENSITIVITY,
    'flags': PR_MESSAGE_FLAGS,
    'message_size': PR_MESSAGE_SIZE,
    'code_page': PR_MESSAGE_CODEPAGE,
}

# Recipient field name -> property tag
RECIPIENT_FIELDS = {
    'display_name': PR_DISPLAY_NAME,
    'email_address': PR_EMAIL_ADDRESS,
    'address_type': PR_ADDRTYPE,
    'recipient_type': PR_RECIPIENT_TYPE,
    'smtp_address': PR_SMTP_ADDRESS,
}

# PR_SUBJECT may start with 0x01 followed by the length of the prefix
SUBJECT_PREFIX_MARKER = '\x01'


class Recipient:
    """One row of a message's recipient table."""

    def __init__(self, row_id, cells):
        self.row_id = row_id
        self._cells = cells

    def __repr__(self):
        return f"<Recipient {self.display_name!r} <{self.email_address}>>"

    def _get(self, field):
        tag = RECIPIENT_FIELDS[field]
        for cell_tag, value in self._cells.items():
            if cell_tag >> 16 == tag >> 16:
                return value
        return None

    @property
    def display_name(self):
        return self._get('display_name')

    @property
    def email_address(self):
        return self._get('email_address')

    @property
    def address_type(self):
        return self._get('address_type')

    @property
    def recipient_type(self):
        return self._get('recipient_type')

    @property
    def smtp_address(self):
        return self._get('smtp_address')

    def as_dict(self):
        return {name: self._get(name) for name in RECIPIENT_FIELDS}


class Message:
    """Read-only view of one message node."""

    def __init__(self, archive, node):
        self.archive = archive
        self.node = node
        self.nid = node.nid
        config = archive.config
        self.pc = PropertyContext(node, config)
        codepage = self.pc.get(PR_MESSAGE_CODEPAGE) or self.pc.get(PR_INTERNET_CPID)
        self.pc.encoding = codepage_to_encoding(codepage, config.string8_encoding)
        self._recipients = None
        self._attachment_tc = None
        self._attachment_tc_loaded = False

    def __repr__(self):
        return f"<Message nid=0x{self.nid:X} {self.subject!r}>"

    def _field(self, name, default=None):
        value = self.pc.get(MESSAGE_FIELDS[name])
        return default if value is ABSENT else value

    def get_property(self, tag):
        """Any property by tag or id; ABSENT when not set."""
        return self.pc.get(tag)

    def get_named(self, guid, name_or_lid):
        """A named property through the archive's name-to-id map."""
        prop = self.archive.named_properties.lookup(guid, name_or_lid)
        if prop is None:
            return ABSENT
        return self.pc.get(prop)

    @property
    def encoding(self):
        return self.pc.encoding

    @property
    def subject(self):
        """PR_SUBJECT with the subject-prefix marker removed."""
        subject = self._field('subject')
        if subject and subject.startswith(SUBJECT_PREFIX_MARKER):
            subject = subject[2:]
        return subject

    @property
    def sender_name(self):
        return self._field('sender_name')

    @property
    def sender_email_address(self):
        return self._field('sender_email_address')

    @property
    def sent_representing_name(self):
        return self._field('sent_representing_name')

    @property
    def sent_representing_email_address(self):
        return self._field('sent_representing_email_address')

    @property
    def display_to(self):
        return self._field('display_to')

    @property
    def display_cc(self):
        return self._field('display_cc')

    @property
    def display_bcc(self):
        return self._field('display_bcc')

    @property
    def client_submit_time(self):
        return self._field('client_submit_time')

    @property
    def message_delivery_time(self):
        return self._field('message_delivery_time')

    @property
    def creation_time(self):
        return self._field('creation_time')

    @property
    def last_modification_time(self):
        return self._field('last_modification_time')

    @property
    def message_class(self):
        return self._field('message_class')

    @property
    def body(self):
        return self._field('body')

    @property
    def body_html(self):
        """HTML body as text, decoded with the internet code page."""
        value = self.pc.get(PR_HTML)
        if value is ABSENT:
            return None
        if isinstance(value, bytes):
            cpid = self.pc.get(PR_INTERNET_CPID) or self.pc.get(PR_MESSAGE_CODEPAGE)
            return value.decode(codepage_to_encoding(cpid, 'utf-8'), errors='replace')
        return value

    @property
    def body_rtf(self):
        """Decompressed PR_RTF_COMPRESSED, or None."""
        value = self.pc.get(PR_RTF_COMPRESSED)
        if value is ABSENT or not value:
            return None
        try:
            raw = decompress_rtf(value, self.archive.config.verify_crc)
        except CorruptBlock as e:
            e.nid = self.nid
            raise
        return raw.decode(self.pc.encoding, errors='replace')

    @property
    def transport_headers(self):
        return self._field('transport_headers')

    @property
    def internet_message_id(self):
        return self._field('internet_message_id')

    @property
    def importance(self):
        return self._field('importance')

    @property
    def sensitivity(self):
        return self._field('sensitivity')

    @property
    def flags(self):
        return self._field('flags', 0)

    @property
    def message_size(self):
        return self._field('message_size')

    @property
    def code_page(self):
        return self._field('code_page')

    @property
    def is_read(self):
        return bool(self.flags & MSGFLAG_READ)

    @property
    def has_attachments(self):
        value = self.pc.get(PR_HASATTACH)
        if value is not ABSENT:
            return value
        return bool(self.flags & MSGFLAG_HASATTACH) or self.number_of_attachments > 0

    # --- recipients ---

    def _table(self, nid):
        """Optional message sub-table; None when the message has none."""
        if not self.node.has_subnode(nid):
            logger.debug("Message 0x%X has no sub-table 0x%X", self.nid, nid)
            return None
        return TableContext(self.node.get_subnode(nid), self.archive.config, self.pc.encoding)

    @property
    def recipients(self):
        if self._recipients is None:
            tc = self._table(NID_RECIPIENT_TABLE)
            if tc is None:
                self._recipients = []
            else:
                self._recipients = [Recipient(tc.row_id(i), tc.row(i))
                                    for i in range(tc.row_count())]
        return self._recipients

    # --- attachments ---

    def _attachments(self):
        if not self._attachment_tc_loaded:
            self._attachment_tc = self._table(NID_ATTACHMENT_TABLE)
            self._attachment_tc_loaded = True
        return self._attachment_tc

    @property
    def number_of_attachments(self):
        tc = self._attachments()
        return tc.row_count() if tc is not None else 0

    def get_attachment(self, index) -> Attachment:
        """Attachment at index in attachment-table order.

        Raises:
            IndexError: index outside the attachment table.
            CorruptBlock: the row names a sub-node that does not exist.
        """
        tc = self._attachments()
        count = tc.row_count() if tc is not None else 0
        if not 0 <= index < count:
            raise IndexError(f"Attachment {index} out of range ({count} attachments)")
        nid = tc.row_id(index)
        try:
            node = self.node.get_subnode(nid)
        except NotFound:
            raise CorruptBlock(f"Attachment sub-node 0x{nid:X} missing", nid=self.nid) from None
        return Attachment(self.archive, node, self)

    def attachments(self):
        for i in range(self.number_of_attachments):
            yield self.get_attachment(i)

    def as_dict(self) -> dict:
        """Named fields plus recipient and attachment summaries."""
        result = {'nid': self.nid}
        for name in MESSAGE_FIELDS:
            result[name] = self._field(name)
        result['subject'] = self.subject
        result['body_html'] = self.body_html
        result['has_attachments'] = self.has_attachments
        result['recipients'] = [r.as_dict() for r in self.recipients]
        result['attachments'] = [
            {'filename': a.long_filename or a.filename, 'size': a.size, 'method': a.method}
            for a in self.attachments()]
        return result
