"""Sample mailbox contents shared by the tests."""

from datetime import datetime, timezone

from pst2dir.mapi.properties import (
    PR_BODY, PR_CLIENT_SUBMIT_TIME, PR_DISPLAY_TO, PR_MESSAGE_DELIVERY_TIME,
    PR_SENDER_EMAIL_ADDRESS, PR_SENDER_NAME, PR_SUBJECT,
)
from pstbuilder import attachment, recipient

SENT = datetime(2023, 3, 14, 9, 26, 53, tzinfo=timezone.utc)

ATTACHMENT_DATA = bytes(range(256)) * 40


def message_props(subject, sender='Alice Example', address='alice@example.com',
                  to='Bob Example', body=None, when=SENT):
    return {
        PR_SUBJECT: subject,
        PR_SENDER_NAME: sender,
        PR_SENDER_EMAIL_ADDRESS: address,
        PR_DISPLAY_TO: to,
        PR_BODY: body if body is not None else f"Body of {subject}\r\n",
        PR_CLIENT_SUBMIT_TIME: when,
        PR_MESSAGE_DELIVERY_TIME: when,
    }


def populate(mb):
    """A small mailbox: four folders under the top folder, four messages.

    Returns a dict of the interesting NIDs.
    """
    top = mb.add_folder('Top of Outlook data file')
    mb.ipm_subtree = top
    inbox = mb.add_folder('Inbox', parent=top, container_class='IPF.Note')
    projects = mb.add_folder('Projects/2023', parent=inbox)
    sent = mb.add_folder('Sent Items', parent=top)
    deleted = mb.add_folder('Deleted Items', parent=top)
    mb.wastebasket = deleted

    nids = {'top': top, 'inbox': inbox, 'projects': projects, 'sent': sent,
            'deleted': deleted}
    nids['hello'] = mb.add_message(
        inbox, message_props('Hello'),
        recipients=[recipient('Bob Example', 'bob@example.com'),
                    recipient('Carol Example', 'carol@example.com', 2)],
        attachments=[attachment('notes.txt', b'first attachment\r\n'),
                     attachment('data.bin', ATTACHMENT_DATA)])
    nids['status'] = mb.add_message(inbox, message_props('Status report'))
    nids['plan'] = mb.add_message(projects, message_props('Plan', body='x' * 5000))
    nids['reply'] = mb.add_message(sent, message_props('Re: Hello', sender='Bob Example',
                                                      address='bob@example.com',
                                                      to='Alice Example'))
    return nids
