"""Incremental header parsing of a mailbox's pending list."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from lib.header_cache import HeaderCache
from lib.rfc822 import MessageParseError, read_header
from maildir_scan.mailbox import Mailbox, MailboxType, Message, PendingEntry
from maildir_scan.options import ScanOptions
from maildir_scan.progress import ProgressSink
from maildir_scan.readers.flags import parse_maildir_flags
from maildir_scan.readers.ordering import cmp_inode, sort_entries

logger = logging.getLogger(__name__)


def parse_message(
    kind: MailboxType,
    filename: Path,
    *,
    is_old: bool,
    message: Message,
    flag_safe: bool = False,
) -> Message:
    """Fill ``message`` from the header of ``filename``.

    Size and body offset always come from a fresh stat of the open file.
    For maildir the filename is the only source of flags.
    Raises ``OSError`` or ``MessageParseError``.
    """

    with filename.open("rb") as handle:
        header = read_header(handle)
        st = os.fstat(handle.fileno())

    message.envelope = header.envelope
    message.date_sent = header.date_sent
    message.received = header.received or header.date_sent
    message.header_offset = header.header_offset
    message.size = max(st.st_size - header.header_offset, 0)
    message.index = -1

    if kind is MailboxType.MAILDIR:
        message.old = is_old
        parse_maildir_flags(message, filename.name, flag_safe=flag_safe)
    return message


def hcache_key(kind: MailboxType, path: str) -> str:
    """Return the header cache key for a message path.

    Maildir keys drop the ``cur/``/``new/`` prefix and the flag suffix so a
    message keeps its key when it moves or its flags change.
    """

    if kind is MailboxType.MH:
        return path
    key = path[3:]
    head, sep, _ = key.rpartition(":")
    return head if sep else key


def mark_duplicates(kind: MailboxType, entries: list[PendingEntry], start: int) -> int:
    """Tombstone entries that repeat the identity of their live predecessor.

    Only adjacent duplicates (after the inode sort) are detected. Returns
    the number of entries tombstoned.
    """

    dropped = 0
    previous_key: str | None = None
    for entry in entries[start:]:
        if entry.message is None:
            continue
        key = hcache_key(kind, entry.message.path)
        if key == previous_key:
            logger.debug("dropping duplicate %s", entry.message.path)
            entry.message = None
            dropped += 1
            continue
        previous_key = key
    return dropped


def _skip_resolved(entries: list[PendingEntry], position: int) -> int:
    while position < len(entries) and (entries[position].message is None or entries[position].parsed):
        position += 1
    return position


def _cached_message(
    mailbox: Mailbox,
    entry: PendingEntry,
    filename: Path,
    *,
    options: ScanOptions,
    cache: HeaderCache,
) -> Message | None:
    message = entry.message
    cached = cache.fetch(hcache_key(mailbox.kind, message.path))
    if cached is None:
        return None

    if options.header_cache_verify:
        try:
            mtime = int(filename.stat().st_mtime)
        except OSError:
            return None
        if mtime > cached.validity:
            logger.debug("cached header for %s is stale", message.path)
            return None

    replacement = cached.message
    replacement.old = message.old
    replacement.path = message.path
    replacement.index = -1
    if mailbox.kind is MailboxType.MAILDIR:
        parse_maildir_flags(replacement, filename.name, flag_safe=options.flag_safe)
    return replacement


def delayed_parsing(
    mailbox: Mailbox,
    entries: list[PendingEntry],
    *,
    options: ScanOptions,
    cache: HeaderCache | None = None,
    progress: ProgressSink | None = None,
) -> list[PendingEntry]:
    """Parse every unresolved entry of ``entries``, in inode order.

    Entries already parsed by an earlier call, and tombstones, are left
    alone. The first time an unresolved entry is met, the rest of the list
    is sorted by inode (once) and adjacent duplicates are tombstoned.
    Entries that cannot be parsed are tombstoned; they never abort the
    scan. Returns the list, which is also updated in place.
    """

    total = len(entries)
    sorted_tail = False
    position = 0
    while position < len(entries):
        entry = entries[position]
        if entry.message is None or entry.parsed:
            position += 1
            continue

        if not sorted_tail:
            logger.debug("need to sort %s by inode", mailbox.path)
            entries[position:] = sort_entries(entries[position:], cmp_inode)
            mark_duplicates(mailbox.kind, entries, position)
            sorted_tail = True
            position = _skip_resolved(entries, position)
            if position == len(entries):
                break
            entry = entries[position]

        message = entry.message
        filename = mailbox.path / message.path

        replacement = None
        if cache is not None:
            replacement = _cached_message(mailbox, entry, filename, options=options, cache=cache)

        if replacement is not None:
            entry.message = replacement
            entry.parsed = True
        else:
            try:
                parse_message(
                    mailbox.kind,
                    filename,
                    is_old=message.old,
                    message=message,
                    flag_safe=options.flag_safe,
                )
            except (OSError, MessageParseError) as exc:
                logger.debug("discarding %s: %s", message.path, exc)
                entry.message = None
            else:
                entry.parsed = True
                if cache is not None:
                    cache.store(hcache_key(mailbox.kind, message.path), message)

        position += 1
        if mailbox.verbose and progress is not None:
            progress.update(position, total)

    return entries


__all__ = [
    "delayed_parsing",
    "hcache_key",
    "mark_duplicates",
    "parse_message",
]
