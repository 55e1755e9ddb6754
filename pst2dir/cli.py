"""Command-line interface for pst2dir."""

import argparse
import logging
import re
import sys
from pathlib import Path

from tqdm import tqdm

from .archive import open_archive
from .config import ReaderConfig
from .errors import CorruptBlock, InvalidFormat
from .messaging.message import Message

logger = logging.getLogger('pst2dir')

_UNSAFE_NAME = re.compile(r'[^a-zA-Z0-9\-_ ]')
_UNSAFE_FILE = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def sanitize_folder_name(name):
    """Folder name reduced to [A-Za-z0-9-_ ], 'unknown_folder' when empty."""
    if not name:
        return 'unknown_folder'
    return _UNSAFE_NAME.sub('_', name)


def sanitize_file_name(name):
    """Strip path separators and control characters from a file name."""
    return _UNSAFE_FILE.sub('_', name).strip() or 'unnamed'


def format_sender(msg):
    sender = msg.sender_name or 'Unknown'
    address = msg.sender_email_address
    if address and sender != address:
        sender += f" ({address})"
    return sender


def format_message(msg):
    """Text dump of a message, CRLF line endings."""
    submit = msg.client_submit_time
    lines = [
        submit.isoformat() if submit else '',
        f"Type: {msg.message_class or ''}",
        f"From: {format_sender(msg)}",
        f"To: {msg.display_to or 'Unknown'}",
        f"Subject: {msg.subject or ''}",
    ]
    return '\r\n'.join(lines) + '\r\n' + (msg.body or '')


def _save_attachments(msg, folder_path, stats, chunk_size):
    for i in range(msg.number_of_attachments):
        try:
            attachment = msg.get_attachment(i)
            name = attachment.long_filename or attachment.filename or f"attachment{i}"
            target = folder_path / f"{msg.nid}-{sanitize_file_name(name)}"
            buffer = bytearray(chunk_size)
            with attachment.open_stream() as stream, open(target, 'wb') as out:
                while True:
                    n = stream.readinto(buffer)
                    if not n:
                        break
                    out.write(buffer[:n])
            stats['attachments'] += 1
            logger.debug("Saved attachment %s", target)
        except CorruptBlock as e:
            stats['errors'] += 1
            logger.warning("Skipping attachment %d of message 0x%X: %s", i, msg.nid, e)


def _save_message(msg, folder_path, stats, args, chunk_size):
    text = format_message(msg)
    target = folder_path / f"{msg.nid}.txt"
    with open(target, 'w', encoding='utf-8', newline='') as f:
        f.write(text)
    stats['messages'] += 1
    if not args.no_attachments:
        _save_attachments(msg, folder_path, stats, chunk_size)


def _process_folder(folder, parent_path, stats, args, progress, chunk_size, seen):
    """Mirror one folder and everything below it."""
    if folder.nid in seen:
        stats['errors'] += 1
        logger.warning("Skipping folder 0x%X %r: hierarchy revisits it",
                       folder.nid, folder.display_name)
        return
    seen.add(folder.nid)

    folder_path = parent_path / sanitize_folder_name(folder.display_name)
    folder_path.mkdir(parents=True, exist_ok=True)
    stats['folders'] += 1

    try:
        subfolders = folder.get_sub_folders() if folder.has_subfolders else []
    except CorruptBlock as e:
        stats['errors'] += 1
        logger.warning("Cannot list subfolders of %r: %s", folder.display_name, e)
        subfolders = []
    for sub in subfolders:
        _process_folder(sub, folder_path, stats, args, progress, chunk_size, seen)

    try:
        folder.contents_table()
    except CorruptBlock as e:
        stats['errors'] += 1
        logger.warning("Cannot read contents of %r: %s", folder.display_name, e)
        return

    # the cursor moves past a child before decoding it
    folder.reset_cursor()
    while True:
        try:
            child = folder.get_next_child()
        except CorruptBlock as e:
            stats['errors'] += 1
            logger.warning("Skipping corrupt item in %r: %s", folder.display_name, e)
            continue
        if child is None:
            break
        if not isinstance(child, Message):
            continue
        try:
            _save_message(child, folder_path, stats, args, chunk_size)
        except CorruptBlock as e:
            stats['errors'] += 1
            logger.warning("Skipping message 0x%X: %s", child.nid, e)
        progress.update(1)


def _print_info(archive):
    header = archive.header
    store = archive.message_store
    print(f"File:          {archive.name or '-'}")
    print(f"Format:        {header.variant.name} (wVer {header.version})"
          f"{' OST' if header.is_ost else ''}")
    print(f"Encryption:    {header.crypt_name}")
    print(f"File size:     {header.file_eof}")
    print(f"NBT root:      bid=0x{header.nbt_root.bid:X} ib=0x{header.nbt_root.ib:X}")
    print(f"BBT root:      bid=0x{header.bbt_root.bid:X} ib=0x{header.bbt_root.ib:X}")
    print(f"Store name:    {store.display_name or ''}")
    print(f"Password:      {'set' if store.password_crc else 'none'}")
    print(f"Named props:   {len(archive.named_properties)}")


def _print_tree(folder, depth=0, seen=None):
    seen = set() if seen is None else seen
    if folder.nid in seen:
        logger.warning("Folder 0x%X %r revisited, not listed again",
                       folder.nid, folder.display_name)
        return
    seen.add(folder.nid)
    try:
        count = folder.content_count
    except CorruptBlock:
        count = '?'
    print(f"{'  ' * depth}|- {folder.display_name or '(unnamed)'} ({count})")
    try:
        subfolders = folder.get_sub_folders()
    except CorruptBlock as e:
        logger.warning("Cannot list subfolders of %r: %s", folder.display_name, e)
        return
    for sub in subfolders:
        _print_tree(sub, depth + 1, seen)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='pst2dir',
        description='Extract a PST/OST archive into a directory tree.',
    )
    parser.add_argument(
        'archive',
        type=Path,
        help='PST or OST file to read',
    )
    parser.add_argument(
        '-o', '--output',
        type=Path,
        default=Path('output'),
        help='Output directory (default: output)',
    )
    parser.add_argument(
        '--no-attachments',
        action='store_true',
        help='Do not save attachments',
    )
    parser.add_argument(
        '--list',
        action='store_true',
        help='Print the folder tree with message counts and exit',
    )
    parser.add_argument(
        '--info',
        action='store_true',
        help='Print header and message store information and exit',
    )
    parser.add_argument(
        '--no-verify-crc',
        action='store_true',
        help='Skip header, page and block checksum validation',
    )
    parser.add_argument(
        '--encoding',
        default=None,
        help='Codec for 8-bit strings without a code page (default: cp1252)',
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='count', default=0,
                           help='More logging (-vv for debug)')
    verbosity.add_argument('-q', '--quiet', action='store_true',
                           help='Only log errors, no progress bar')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.quiet:
        level = logging.ERROR
    elif args.verbose >= 2:
        level = logging.DEBUG
    elif args.verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s',
                        stream=sys.stderr)

    config = ReaderConfig.from_env(
        verify_crc=False if args.no_verify_crc else None,
        string8_encoding=args.encoding,
    )

    try:
        archive = open_archive(args.archive, config)
    except (InvalidFormat, OSError) as e:
        print(f"Error: cannot open '{args.archive}': {e}", file=sys.stderr)
        return 1

    with archive:
        try:
            if args.info:
                _print_info(archive)
                return 0
            root = archive.root_folder()
            if args.list:
                _print_tree(root)
                return 0

            output_root = args.output / sanitize_folder_name(args.archive.stem)
            output_root.mkdir(parents=True, exist_ok=True)
            if not args.quiet:
                print(f"Processing {args.archive}...", file=sys.stderr)

            stats = {'folders': 0, 'messages': 0, 'attachments': 0, 'errors': 0}
            disable = args.quiet or not sys.stderr.isatty()
            with tqdm(desc="Extracting", unit="msg", ncols=80, disable=disable) as progress:
                _process_folder(root, output_root, stats, args, progress,
                                config.stream_chunk_size, set())
        except (CorruptBlock, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    if not args.quiet:
        print(f"\nDone: {stats['messages']} messages, {stats['folders']} folders, "
              f"{stats['attachments']} attachments", file=sys.stderr)
        if stats['errors']:
            print(f"  ({stats['errors']} errors)", file=sys.stderr)
    return 0


if __name__ == '__main__':
    sys.exit(main())
