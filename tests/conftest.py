"""
Pytest configuration and shared fixtures.
"""
import os
import sys

import pytest

# Project root for pst2dir, this directory for the archive builder
tests_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(tests_dir)
for path in (project_root, tests_dir):
    if path not in sys.path:
        sys.path.insert(0, path)

from pst2dir.ndb.header import ANSI, UNICODE, UNICODE_4K  # noqa: E402
from pstbuilder import MailboxBuilder  # noqa: E402
from samples import populate  # noqa: E402

VARIANTS = {'ansi': ANSI, 'unicode': UNICODE, 'unicode-4k': UNICODE_4K}


@pytest.fixture(params=sorted(VARIANTS))
def variant(request):
    """Every on-disk variant in turn."""
    return VARIANTS[request.param]


@pytest.fixture
def mailbox(variant):
    """(builder, nids, file bytes) of the sample mailbox in one variant."""
    mb = MailboxBuilder(variant)
    nids = populate(mb)
    return mb, nids, mb.build()


@pytest.fixture
def mailbox_file(tmp_path):
    """Sample Unicode mailbox written to disk: (path, builder, nids)."""
    mb = MailboxBuilder(UNICODE)
    nids = populate(mb)
    path = tmp_path / 'sample.pst'
    path.write_bytes(mb.build())
    return path, mb, nids
