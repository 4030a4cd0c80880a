"""High-level workflows for reading a maildir or MH folder into a mailbox index."""

from __future__ import annotations

import enum
import json
import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from lib.header_cache import open_header_cache
from maildir_scan.interrupt import CancelToken
from maildir_scan.mailbox import Mailbox, MailboxType, PendingEntry, move_to_mailbox
from maildir_scan.options import ScanOptions
from maildir_scan.progress import ProgressSink
from maildir_scan.readers import mh_sequences
from maildir_scan.readers.directory import (
    MH_SEQUENCES_FILE,
    ScanAborted,
    is_valid_mh_name,
    parse_dir,
    update_mtime,
)
from maildir_scan.readers.ordering import sort_natural
from maildir_scan.readers.parser import delayed_parsing

logger = logging.getLogger(__name__)

MAILDIR_SUBDIRS = ("new", "cur")


class ScanStatus(enum.Enum):
    OK = "ok"
    IO_ERROR = "io_error"
    ABORTED = "aborted"


@dataclass
class ScanResult:
    """Outcome of one scan call.

    ``count`` is the number of messages added to the mailbox index. When the
    scan was aborted nothing is added and ``pending`` holds the entries
    enumerated before the cancellation.
    """

    status: ScanStatus
    count: int = 0
    error: Exception | None = None
    pending: list[PendingEntry] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is ScanStatus.OK


def detect_mailbox_type(path: Path) -> MailboxType | None:
    if (path / "cur").is_dir() and (path / "new").is_dir():
        return MailboxType.MAILDIR
    if (path / MH_SEQUENCES_FILE).exists():
        return MailboxType.MH
    try:
        if any(child.is_file() and is_valid_mh_name(child.name) for child in path.iterdir()):
            return MailboxType.MH
    except (FileNotFoundError, NotADirectoryError):
        return None
    return None


def open_mailbox(
    path: Path,
    *,
    kind: MailboxType | None = None,
    verbose: bool = False,
) -> Mailbox:
    """Return an empty mailbox for ``path``, detecting its type if needed."""

    if not path.exists():
        raise FileNotFoundError(f"Mailbox not found: {path}")
    if kind is None:
        kind = detect_mailbox_type(path)
        if kind is None:
            raise ValueError(f"Not a maildir or MH folder: {path}")
    return Mailbox(path=path, kind=kind, verbose=verbose)


def read_dir(
    mailbox: Mailbox,
    subdir: str | None,
    *,
    options: ScanOptions | None = None,
    cancel: CancelToken | None = None,
    progress: ProgressSink | None = None,
) -> ScanResult:
    """Scan a single directory of ``mailbox`` and add its messages to the index."""

    subdirs = (subdir,) if subdir else (None,)
    return _read_subdirs(mailbox, subdirs, options=options, cancel=cancel, progress=progress)


def read_maildir(
    mailbox: Mailbox,
    *,
    options: ScanOptions | None = None,
    cancel: CancelToken | None = None,
    progress: ProgressSink | None = None,
) -> ScanResult:
    """Scan ``new/`` then ``cur/`` of a maildir into one pending list."""

    return _read_subdirs(
        mailbox, MAILDIR_SUBDIRS, options=options, cancel=cancel, progress=progress
    )


def read_mh(
    mailbox: Mailbox,
    *,
    options: ScanOptions | None = None,
    cancel: CancelToken | None = None,
    progress: ProgressSink | None = None,
) -> ScanResult:
    return read_dir(mailbox, None, options=options, cancel=cancel, progress=progress)


def read_mailbox(
    mailbox: Mailbox,
    *,
    options: ScanOptions | None = None,
    cancel: CancelToken | None = None,
    progress: ProgressSink | None = None,
) -> ScanResult:
    if mailbox.kind is MailboxType.MAILDIR:
        return read_maildir(mailbox, options=options, cancel=cancel, progress=progress)
    return read_mh(mailbox, options=options, cancel=cancel, progress=progress)


def _read_subdirs(
    mailbox: Mailbox,
    subdirs: Sequence[str | None],
    *,
    options: ScanOptions | None,
    cancel: CancelToken | None,
    progress: ProgressSink | None,
) -> ScanResult:
    options = options or ScanOptions()

    update_mtime(mailbox)

    entries: list[PendingEntry] = []
    for subdir in subdirs:
        if cancel is not None and cancel.is_set():
            cancel.clear()
            return ScanResult(ScanStatus.ABORTED, pending=entries)
        try:
            entries.extend(
                parse_dir(
                    mailbox,
                    subdir,
                    options=options,
                    cancel=cancel,
                    progress=progress,
                    offset=len(entries),
                )
            )
        except ScanAborted as exc:
            logger.debug("scan of %s aborted", mailbox.path)
            entries.extend(exc.entries)
            return ScanResult(ScanStatus.ABORTED, error=exc, pending=entries)
        except OSError as exc:
            logger.warning("Failed to open %s: %s", exc.filename or mailbox.path, exc)
            return ScanResult(ScanStatus.IO_ERROR, error=exc)

    # Only a scan of the whole mailbox knows which cached keys are gone.
    complete = mailbox.kind is MailboxType.MH or tuple(subdirs) == MAILDIR_SUBDIRS
    cache_context = (
        open_header_cache(options.header_cache, mailbox.path, prune=complete)
        if options.header_cache is not None
        else nullcontext()
    )
    with cache_context as cache:
        delayed_parsing(mailbox, entries, options=options, cache=cache, progress=progress)

    if mailbox.kind is MailboxType.MH:
        try:
            sequences = mh_sequences.read_sequences(mailbox.path, options=options)
        except (OSError, mh_sequences.MhSequenceError) as exc:
            logger.warning("Failed to read sequences for %s: %s", mailbox.path, exc)
            return ScanResult(ScanStatus.IO_ERROR, error=exc)
        mh_sequences.update_messages(entries, sequences)

    entries = sort_natural(mailbox, entries, options=options)
    count = move_to_mailbox(mailbox, entries)
    return ScanResult(ScanStatus.OK, count=count)


def report_to_dict(mailbox: Mailbox, result: ScanResult) -> dict:
    timestamp = datetime.now(timezone.utc).isoformat()
    return {
        "generated_at": timestamp,
        "mailbox": str(mailbox.path),
        "type": mailbox.kind.value,
        "status": result.status.value,
        "summary": {
            "added_messages": result.count,
            "total_messages": mailbox.msg_count,
            "unread_messages": mailbox.msg_unread,
            "new_messages": mailbox.msg_new,
            "flagged_messages": mailbox.msg_flagged,
            "deleted_messages": mailbox.msg_deleted,
            "total_bytes": mailbox.size,
        },
        "messages": [
            {
                "index": message.index,
                "path": message.path,
                "subject": message.envelope.subject if message.envelope else "",
                "read": message.read,
                "replied": message.replied,
                "flagged": message.flagged,
                "trashed": message.trashed,
                "deleted": message.deleted,
                "old": message.old,
                "size": message.size,
            }
            for message in mailbox.iter_messages()
        ],
    }


def write_report(report_path: Path, mailbox: Mailbox, result: ScanResult) -> None:
    report_path.parent.mkdir(parents=True, exist_ok=True)
    data = report_to_dict(mailbox, result)
    report_path.write_text(json.dumps(data, indent=2), encoding="utf-8")


__all__ = [
    "ScanResult",
    "ScanStatus",
    "detect_mailbox_type",
    "open_mailbox",
    "read_dir",
    "read_maildir",
    "read_mailbox",
    "read_mh",
    "report_to_dict",
    "write_report",
]
