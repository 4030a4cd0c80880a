"""Enumerate the message files of a maildir or MH directory."""

from __future__ import annotations

import logging
import os

from maildir_scan.interrupt import CancelToken
from maildir_scan.mailbox import Mailbox, MailboxType, Message, PendingEntry
from maildir_scan.options import ScanOptions
from maildir_scan.progress import ProgressSink
from maildir_scan.readers.flags import parse_maildir_flags

logger = logging.getLogger(__name__)

MH_SEQUENCES_FILE = ".mh_sequences"


class ScanAborted(Exception):
    """Enumeration was cancelled; ``entries`` holds what was found so far."""

    def __init__(self, entries: list[PendingEntry]) -> None:
        super().__init__(f"scan aborted after {len(entries)} entries")
        self.entries = entries


def is_valid_mh_name(name: str) -> bool:
    return bool(name) and name.isascii() and name.isdigit()


def parse_dir(
    mailbox: Mailbox,
    subdir: str | None,
    *,
    options: ScanOptions,
    cancel: CancelToken | None = None,
    progress: ProgressSink | None = None,
    offset: int = 0,
) -> list[PendingEntry]:
    """Queue one pending entry per message file in ``subdir`` of ``mailbox``.

    Raises ``OSError`` if the directory cannot be opened and ``ScanAborted``
    if ``cancel`` is set while iterating. ``offset`` is the number of
    entries already queued from other subdirectories, for progress output.
    """

    if subdir:
        directory = mailbox.path / subdir
        is_old = options.mark_old and subdir == "cur"
    else:
        directory = mailbox.path
        is_old = False

    entries: list[PendingEntry] = []
    with os.scandir(directory) as iterator:
        for dir_entry in iterator:
            if cancel is not None and cancel.is_set():
                break

            name = dir_entry.name
            if mailbox.kind is MailboxType.MH and not is_valid_mh_name(name):
                continue
            if mailbox.kind is MailboxType.MAILDIR and name.startswith("."):
                continue

            logger.debug("queueing %s", name)
            message = Message(path=f"{subdir}/{name}" if subdir else name, old=is_old)
            if mailbox.kind is MailboxType.MAILDIR:
                parse_maildir_flags(message, name, flag_safe=options.flag_safe)

            entries.append(PendingEntry(inode=dir_entry.inode(), message=message, canon_name=name))
            if mailbox.verbose and progress is not None:
                progress.update(offset + len(entries), 0)

    # Also catches a cancel that arrived while the last entry was handled.
    if cancel is not None and cancel.is_set():
        cancel.clear()
        raise ScanAborted(entries)
    return entries


def update_mtime(mailbox: Mailbox) -> None:
    """Record the directory mtimes used to detect later external changes."""

    if mailbox.kind is MailboxType.MAILDIR:
        cur_path = mailbox.path / "cur"
        main_path = mailbox.path / "new"
    else:
        cur_path = mailbox.path / MH_SEQUENCES_FILE
        main_path = mailbox.path

    try:
        mailbox.mtime_cur = cur_path.stat().st_mtime
    except OSError:
        pass
    try:
        mailbox.mtime = main_path.stat().st_mtime
    except OSError:
        pass


__all__ = [
    "MH_SEQUENCES_FILE",
    "ScanAborted",
    "is_valid_mh_name",
    "parse_dir",
    "update_mtime",
]
